"""Persistent simulation core for a 16th-century Goa trading game."""

from .game import TradeGame
from .config import Config, DEFAULT_CONFIG, load_config, save_config

__version__ = "0.1.0"

__all__ = [
    "TradeGame",
    "Config",
    "DEFAULT_CONFIG",
    "load_config",
    "save_config",
]
