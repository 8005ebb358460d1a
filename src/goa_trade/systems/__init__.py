"""Simulation subsystems. Each takes its collaborators explicitly."""

from .factions import FactionLedger, DEFAULT_FACTIONS
from .npc_memory import NPCMemoryBook
from .progression import ProgressionLadder, RANKS
from .quests import QuestEngine, QuestDataError, load_quests
from .contracts import ContractTracker, DEFAULT_TEMPLATES
from .expeditions import ExpeditionResolver, DEFAULT_ROUTES
from .achievements import AchievementTracker, DEFAULT_ACHIEVEMENTS
from .saves import SaveOrchestrator, SAVE_SLOTS, SAVE_VERSION, compare_versions

__all__ = [
    "FactionLedger",
    "DEFAULT_FACTIONS",
    "NPCMemoryBook",
    "ProgressionLadder",
    "RANKS",
    "QuestEngine",
    "QuestDataError",
    "load_quests",
    "ContractTracker",
    "DEFAULT_TEMPLATES",
    "ExpeditionResolver",
    "DEFAULT_ROUTES",
    "AchievementTracker",
    "DEFAULT_ACHIEVEMENTS",
    "SaveOrchestrator",
    "SAVE_SLOTS",
    "SAVE_VERSION",
    "compare_versions",
]
