"""
Pydantic models for the Goa trade simulation.

Every subsystem keeps its state in these models so a save is just a
`model_dump` of each section. Game time is a single integer count of
in-game hours (hour + day * 24).
"""

from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class ReputationLevel(str, Enum):
    HOSTILE = "hostile"
    UNFRIENDLY = "unfriendly"
    NEUTRAL = "neutral"
    FRIENDLY = "friendly"
    HONORED = "honored"
    CHAMPION = "champion"


class AttitudeLevel(str, Enum):
    HOSTILE = "hostile"
    UNFRIENDLY = "unfriendly"
    NEUTRAL = "neutral"
    FRIENDLY = "friendly"
    TRUSTED = "trusted"


class StageKind(str, Enum):
    DELIVER = "deliver"
    COLLECT = "collect"
    TALK = "talk"
    TRAVEL = "travel"
    TRADE = "trade"
    WAIT = "wait"


class RequirementKind(str, Enum):
    GOLD = "gold"
    REPUTATION = "reputation"
    ITEM = "item"
    QUEST = "quest"
    FLAG = "flag"


class Comparison(str, Enum):
    GTE = "gte"
    LTE = "lte"
    EQ = "eq"
    NEQ = "neq"


class EffectKind(str, Enum):
    GOLD = "gold"
    REPUTATION = "reputation"
    ITEM = "item"
    FLAG = "flag"


class RewardKind(str, Enum):
    GOLD = "gold"
    ITEM = "item"
    REPUTATION = "reputation"
    FLAG = "flag"
    UNLOCK = "unlock"


class ContractStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ExpeditionStatus(str, Enum):
    OUTBOUND = "outbound"
    RETURNING = "returning"
    COMPLETED = "completed"
    LOST = "lost"


class AchievementCategory(str, Enum):
    TRADING = "trading"
    WEALTH = "wealth"
    EXPLORATION = "exploration"
    SOCIAL = "social"
    STORY = "story"


class AchievementRequirementKind(str, Enum):
    GOLD_EARNED = "gold_earned"
    GOLD_HELD = "gold_held"
    TRADES_COMPLETED = "trades_completed"
    CONTRACTS_COMPLETED = "contracts_completed"
    ROUTES_COMPLETED = "routes_completed"
    NPCS_MET = "npcs_met"
    QUESTS_COMPLETED = "quests_completed"
    FACTION_HONORED = "faction_honored"
    RANK_ACHIEVED = "rank_achieved"
    DAYS_SURVIVED = "days_survived"


class AchievementRewardKind(str, Enum):
    GOLD = "gold"
    CAPACITY = "capacity"
    UNLOCK = "unlock"
    REPUTATION = "reputation"
    SKILL = "skill"


class NoticeSeverity(str, Enum):
    """Severity levels for player-facing notifications."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    CRITICAL = "critical"


# -----------------------------------------------------------------------------
# Core Models
# -----------------------------------------------------------------------------

HOURS_PER_DAY = 24


def generate_id() -> str:
    return str(uuid4())[:8]


class ActionOutcome(BaseModel):
    """
    Result of a player-initiated action that can be refused.

    Refusals never mutate state; `reasons` explains why.
    """
    success: bool
    reasons: list[str] = Field(default_factory=list)
    id: str | None = None  # ID of whatever was created on success

    @classmethod
    def refused(cls, *reasons: str) -> "ActionOutcome":
        return cls(success=False, reasons=list(reasons))

    @classmethod
    def accepted(cls, id: str | None = None) -> "ActionOutcome":
        return cls(success=True, id=id)


# -----------------------------------------------------------------------------
# Factions
# -----------------------------------------------------------------------------

class Faction(BaseModel):
    """A political or economic power the player trades under."""
    id: str
    name: str
    description: str = ""
    philosophy: str = ""
    key_npcs: list[str] = Field(default_factory=list)


# Minimum reputation for each level - highest match wins
REPUTATION_THRESHOLDS: list[tuple[int, ReputationLevel]] = [
    (80, ReputationLevel.CHAMPION),
    (50, ReputationLevel.HONORED),
    (10, ReputationLevel.FRIENDLY),
    (-10, ReputationLevel.NEUTRAL),
    (-50, ReputationLevel.UNFRIENDLY),
    (-100, ReputationLevel.HOSTILE),
]

REPUTATION_MIN = -100
REPUTATION_MAX = 100


def reputation_to_level(value: int) -> ReputationLevel:
    """Convert a reputation scalar to its level bucket."""
    for threshold, level in REPUTATION_THRESHOLDS:
        if value >= threshold:
            return level
    return ReputationLevel.HOSTILE


def level_threshold(level: ReputationLevel) -> int:
    """Minimum reputation value that reaches a level."""
    for threshold, candidate in REPUTATION_THRESHOLDS:
        if candidate == level:
            return threshold
    return REPUTATION_MIN


class ReputationRequirement(BaseModel):
    """Gate on standing with one faction. Either bound may be omitted."""
    faction: str
    min_level: ReputationLevel | None = None
    min_value: int | None = None


# -----------------------------------------------------------------------------
# Quests
# -----------------------------------------------------------------------------

QUEST_COMPLETE = "complete"
QUEST_FAIL = "fail"


class Requirement(BaseModel):
    """A condition checked against player state before starting or choosing."""
    kind: RequirementKind
    target: str | None = None  # faction id, item id, quest id or flag name
    value: bool | int | str = 0
    comparison: Comparison = Comparison.GTE


class Effect(BaseModel):
    """A state change published when a stage or choice resolves."""
    kind: EffectKind
    target: str | None = None
    value: bool | int | str = 0


class Reward(BaseModel):
    """Granted once when a quest completes."""
    kind: RewardKind
    target: str | None = None
    value: bool | int | str = 0


class QuestChoice(BaseModel):
    id: str
    text: str
    next_stage_id: str
    effects: list[Effect] = Field(default_factory=list)
    condition: Requirement | None = None


class QuestStage(BaseModel):
    id: str
    objective: str
    kind: StageKind
    target: str  # NPC for talk/deliver, item for collect, location for travel
    item: str | None = None  # Deliver stages may name the item handed over
    quantity: int | None = None
    choices: list[QuestChoice] = Field(default_factory=list)
    on_complete: list[Effect] = Field(default_factory=list)


class Quest(BaseModel):
    """Static quest definition, usually loaded from a YAML data file."""
    id: str
    title: str
    description: str = ""
    faction: str | None = None
    giver: str
    stages: list[QuestStage] = Field(min_length=1)
    requirements: list[Requirement] = Field(default_factory=list)
    rewards: list[Reward] = Field(default_factory=list)
    repeatable: bool = False
    time_limit: int | None = None  # Game hours from start

    def stage_index(self, stage_id: str) -> int | None:
        for index, stage in enumerate(self.stages):
            if stage.id == stage_id:
                return index
        return None


class ActiveQuestState(BaseModel):
    """Runtime position of the player inside a started quest."""
    quest_id: str
    stage_index: int = 0
    stage_id: str
    progress: int = 0
    start_time: int = 0
    flags: dict[str, Any] = Field(default_factory=dict)


class QuestsSection(BaseModel):
    active: list[ActiveQuestState] = Field(default_factory=list)
    completed: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Contracts
# -----------------------------------------------------------------------------

class ContractTemplate(BaseModel):
    """
    A delivery request a client can post on the contract board.

    Offers are stamped from templates with a fresh ID; the reward may be
    scaled up for clients whose faction favors the player.
    """
    client_id: str
    client_name: str
    faction: str
    good: str
    quantity: int
    deadline_hours: int
    reward: int
    penalty: int = 0
    reputation_reward: int = 0
    reputation_penalty: int = 0  # Stored as a negative delta
    description: str = ""
    difficulty: Difficulty = Difficulty.EASY


class ContractOffer(ContractTemplate):
    """A contract currently posted on the board."""
    id: str = Field(default_factory=generate_id)


class ActiveContract(ContractOffer):
    """A contract the player has accepted."""
    accepted_at: int
    expires_at: int
    delivered: int = 0
    status: ContractStatus = ContractStatus.ACTIVE


class ContractsSection(BaseModel):
    active: list[ActiveContract] = Field(default_factory=list)
    completed_count: int = 0
    failed_count: int = 0
    total_offered: int = 0
    last_refresh_time: int | None = None


# -----------------------------------------------------------------------------
# Trade expeditions
# -----------------------------------------------------------------------------

class TradeRoute(BaseModel):
    id: str
    name: str
    origin: str
    destination: str
    description: str = ""
    travel_time: int  # One-way, in game hours
    base_risk: float
    profit_multiplier: float
    goods_affinity: list[str] = Field(default_factory=list)
    faction: str
    unlock_requirement: str | None = None


class CargoItem(BaseModel):
    good: str
    quantity: int


class Expedition(BaseModel):
    id: str = Field(default_factory=generate_id)
    route_id: str
    goods: list[CargoItem]
    departure_time: int
    return_time: int
    status: ExpeditionStatus = ExpeditionStatus.OUTBOUND
    investment: int
    expected_return: int
    actual_return: int | None = None
    resolved_at: int | None = None

    @property
    def midpoint(self) -> int:
        return self.departure_time + (self.return_time - self.departure_time) // 2

    @property
    def is_resolved(self) -> bool:
        return self.status in (ExpeditionStatus.COMPLETED, ExpeditionStatus.LOST)


class ExpeditionsSection(BaseModel):
    expeditions: list[Expedition] = Field(default_factory=list)
    completed_count: int = 0
    lost_count: int = 0
    total_profit: int = 0


# -----------------------------------------------------------------------------
# NPC memory
# -----------------------------------------------------------------------------

class TradeHistory(BaseModel):
    profitable: int = 0  # Trades where the NPC came out ahead
    total: int = 0
    last_trade_time: int | None = None
    average_value: float = 0.0


class NPCMemory(BaseModel):
    """What one NPC remembers about the player."""
    npc_id: str
    name: str = ""
    first_met: int = 0
    last_interaction: int = 0
    interaction_count: int = 0
    trade_history: TradeHistory = Field(default_factory=TradeHistory)
    quest_history: list[str] = Field(default_factory=list)
    attitude: int = 0  # -100 to +100
    flags: dict[str, Any] = Field(default_factory=dict)


# Format: (max_attitude, level) - first match wins
ATTITUDE_THRESHOLDS: list[tuple[int, AttitudeLevel]] = [
    (-50, AttitudeLevel.HOSTILE),
    (-20, AttitudeLevel.UNFRIENDLY),
    (20, AttitudeLevel.NEUTRAL),
    (50, AttitudeLevel.FRIENDLY),
]


def attitude_to_level(attitude: int) -> AttitudeLevel:
    """Convert a numeric attitude to its level."""
    for threshold, level in ATTITUDE_THRESHOLDS:
        if attitude <= threshold:
            return level
    return AttitudeLevel.TRUSTED


class NPCMemorySection(BaseModel):
    records: dict[str, NPCMemory] = Field(default_factory=dict)


# -----------------------------------------------------------------------------
# Progression
# -----------------------------------------------------------------------------

class RankProfile(BaseModel):
    rank: int
    name: str
    title: str
    gold_threshold: int
    carry_capacity: int
    buy_modifier: float
    sell_modifier: float
    unlocks: list[str] = Field(default_factory=list)


class ProgressionState(BaseModel):
    rank: int = 0
    highest_gold: int = 0
    total_trades: int = 0
    total_gold_earned: int = 0
    bonus_capacity: int = 0
    granted_unlocks: list[str] = Field(default_factory=list)  # From quests and achievements


# -----------------------------------------------------------------------------
# Achievements
# -----------------------------------------------------------------------------

class AchievementRequirement(BaseModel):
    kind: AchievementRequirementKind
    target: int
    faction: str | None = None  # Only for faction_honored


class AchievementReward(BaseModel):
    kind: AchievementRewardKind
    value: int | str
    description: str = ""


class Achievement(BaseModel):
    id: str
    name: str
    description: str
    category: AchievementCategory
    requirement: AchievementRequirement
    reward: AchievementReward | None = None
    hidden: bool = False


class AchievementProgress(BaseModel):
    achievement_id: str
    current: int = 0
    unlocked: bool = False
    unlocked_at: int | None = None


class AchievementsSection(BaseModel):
    progress: dict[str, AchievementProgress] = Field(default_factory=dict)


# -----------------------------------------------------------------------------
# Saves
# -----------------------------------------------------------------------------

class FactionsSection(BaseModel):
    reputation: dict[str, int] = Field(default_factory=dict)


class PlayerSnapshot(BaseModel):
    gold: int = 0
    inventory: dict[str, int] = Field(default_factory=dict)
    flags: dict[str, Any] = Field(default_factory=dict)
    location: str | None = None


class WorldSection(BaseModel):
    """Clock and player holdings, owned by the game coordinator."""
    game_time: int = 0
    player: PlayerSnapshot = Field(default_factory=PlayerSnapshot)

    @property
    def day(self) -> int:
        return self.game_time // HOURS_PER_DAY


# Section name -> model used to validate and backfill it on load
SECTION_MODELS: dict[str, type[BaseModel]] = {
    "factions": FactionsSection,
    "quests": QuestsSection,
    "contracts": ContractsSection,
    "expeditions": ExpeditionsSection,
    "npc_memory": NPCMemorySection,
    "progression": ProgressionState,
    "achievements": AchievementsSection,
}


class SaveEnvelope(BaseModel):
    """
    One complete snapshot of the simulation.

    Each section is stored as the plain dict its owning subsystem produced;
    the subsystem validates it against its own model on restore.
    """
    version: str
    timestamp: float
    world: dict[str, Any] = Field(default_factory=dict)
    factions: dict[str, Any]
    quests: dict[str, Any]
    contracts: dict[str, Any]
    expeditions: dict[str, Any]
    npc_memory: dict[str, Any]
    progression: dict[str, Any]
    achievements: dict[str, Any]
