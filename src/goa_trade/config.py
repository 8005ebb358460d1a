"""
User configuration persistence.

Settings live in `.goa_trade_config.json` inside the directory the CLI
starts from. Unknown keys in the file are ignored, so an old or hand-edited
file never leaks stray settings into a session.
"""

import json
import logging
from pathlib import Path
from typing import Any, TypedDict

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".goa_trade_config.json"


class Config(TypedDict, total=False):
    save_dir: str
    log_level: str
    autosave_on_location_change: bool
    quest_dirs: list[str]  # loaded after the bundled quests
    rng_seed: int | None
    starting_gold: int


DEFAULT_CONFIG: Config = {
    "save_dir": "saves",
    "log_level": "WARNING",
    "autosave_on_location_change": True,
    "quest_dirs": [],
    "rng_seed": None,
    "starting_gold": 100,
}


def get_config_path(config_dir: Path | str = "saves") -> Path:
    return Path(config_dir) / CONFIG_FILENAME


def _defaults() -> Config:
    config = DEFAULT_CONFIG.copy()
    config["quest_dirs"] = list(DEFAULT_CONFIG["quest_dirs"])
    return config


def merge_config(base: Config, changes: dict[str, Any]) -> Config:
    """
    Return `base` updated with the known keys of `changes`.

    Unknown keys are logged and dropped.
    """
    merged: Config = dict(base)  # type: ignore[assignment]
    for key, value in changes.items():
        if key not in DEFAULT_CONFIG:
            logger.warning(f"Ignoring unknown config key: {key}")
            continue
        merged[key] = value  # type: ignore[literal-required]
    return merged


def load_config(config_dir: Path | str = "saves") -> Config:
    """Load config from file, or return defaults if missing or unreadable."""
    path = get_config_path(config_dir)
    if not path.exists():
        return _defaults()

    try:
        saved = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Could not read config {path}: {e}")
        return _defaults()

    if not isinstance(saved, dict):
        logger.warning(f"Config {path} is not a JSON object, using defaults")
        return _defaults()
    return merge_config(_defaults(), saved)


def save_config(config: Config, config_dir: Path | str = "saves") -> bool:
    """Write config to file. Returns True on success."""
    path = get_config_path(config_dir)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    except OSError as e:
        logger.error(f"Could not write config {path}: {e}")
        return False
    logger.debug(f"Saved config to {path}")
    return True
