"""State models, event plumbing and storage for the Goa trade simulation."""

from .schema import (
    ActionOutcome,
    ActiveContract,
    ActiveQuestState,
    Achievement,
    AchievementProgress,
    AttitudeLevel,
    ContractOffer,
    ContractStatus,
    ContractTemplate,
    Expedition,
    ExpeditionStatus,
    Faction,
    NPCMemory,
    NoticeSeverity,
    ProgressionState,
    Quest,
    RankProfile,
    ReputationLevel,
    SaveEnvelope,
    TradeRoute,
)
from .event_bus import EventBus, EventType, GameEvent, notify
from .store import JsonSaveStore, MemorySaveStore, SaveStore, StorageError
from .collaborators import GameClock, GameQueries, PlayerLedger

__all__ = [
    # Schema
    "ActionOutcome",
    "ActiveContract",
    "ActiveQuestState",
    "Achievement",
    "AchievementProgress",
    "AttitudeLevel",
    "ContractOffer",
    "ContractStatus",
    "ContractTemplate",
    "Expedition",
    "ExpeditionStatus",
    "Faction",
    "NPCMemory",
    "NoticeSeverity",
    "ProgressionState",
    "Quest",
    "RankProfile",
    "ReputationLevel",
    "SaveEnvelope",
    "TradeRoute",
    # Events
    "EventBus",
    "EventType",
    "GameEvent",
    "notify",
    # Store
    "SaveStore",
    "JsonSaveStore",
    "MemorySaveStore",
    "StorageError",
    # Collaborators
    "GameClock",
    "GameQueries",
    "PlayerLedger",
]
