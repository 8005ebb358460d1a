"""
Achievement tracker.

A pure observer: it listens to what the other systems publish, keeps a
counter per achievement, and grants each reward once when the counter
reaches its target. It never changes another system's state directly.
"""

from __future__ import annotations

import logging

from ..state.collaborators import GameQueries
from ..state.event_bus import EventBus, EventType, notify
from ..state.schema import (
    Achievement,
    AchievementCategory,
    AchievementProgress,
    AchievementRequirement,
    AchievementRequirementKind as Req,
    AchievementReward,
    AchievementRewardKind,
    AchievementsSection,
    NoticeSeverity,
    ReputationLevel,
    SaveEnvelope,
)

logger = logging.getLogger(__name__)


# FEATURE_UNLOCKED source for unlock rewards
ACHIEVEMENT_SOURCE = "achievement"

# Counters that track a current level rather than a running total
ABSOLUTE_KINDS = {Req.GOLD_HELD, Req.RANK_ACHIEVED, Req.DAYS_SURVIVED}

HONORED_LEVELS = {ReputationLevel.HONORED.value, ReputationLevel.CHAMPION.value}


def _achievement(
    id: str,
    name: str,
    description: str,
    category: AchievementCategory,
    kind: Req,
    target: int,
    reward: AchievementReward | None = None,
    hidden: bool = False,
    faction: str | None = None,
) -> Achievement:
    return Achievement(
        id=id,
        name=name,
        description=description,
        category=category,
        requirement=AchievementRequirement(kind=kind, target=target, faction=faction),
        reward=reward,
        hidden=hidden,
    )


_W = AchievementCategory.WEALTH
_T = AchievementCategory.TRADING
_E = AchievementCategory.EXPLORATION
_S = AchievementCategory.SOCIAL
_Q = AchievementCategory.STORY
_R = AchievementRewardKind

DEFAULT_ACHIEVEMENTS: list[Achievement] = [
    # Wealth
    _achievement("first_hundred", "Pocket Money", "Hold 100 gold", _W, Req.GOLD_HELD, 100),
    _achievement(
        "first_thousand", "Comfortable", "Hold 1,000 gold", _W, Req.GOLD_HELD, 1000,
        AchievementReward(kind=_R.CAPACITY, value=5, description="+5 carry capacity"),
    ),
    _achievement(
        "five_thousand", "Wealthy", "Hold 5,000 gold", _W, Req.GOLD_HELD, 5000,
        AchievementReward(kind=_R.UNLOCK, value="price_information", description="Market price reports"),
    ),
    _achievement("merchant_prince", "Merchant Prince", "Hold 50,000 gold", _W, Req.GOLD_HELD, 50000),
    _achievement("big_earner", "Big Earner", "Earn 10,000 gold from sales", _W, Req.GOLD_EARNED, 10000),

    # Trading
    _achievement("first_trade", "First Deal", "Complete your first trade", _T, Req.TRADES_COMPLETED, 1),
    _achievement(
        "ten_trades", "Haggler", "Complete 10 trades", _T, Req.TRADES_COMPLETED, 10,
        AchievementReward(kind=_R.SKILL, value="negotiation_5", description="+5 negotiation"),
    ),
    _achievement(
        "fifty_trades", "Market Regular", "Complete 50 trades", _T, Req.TRADES_COMPLETED, 50,
        AchievementReward(kind=_R.GOLD, value=100, description="100 gold"),
    ),
    _achievement(
        "hundred_trades", "Seasoned Dealer", "Complete 100 trades", _T, Req.TRADES_COMPLETED, 100,
        AchievementReward(kind=_R.SKILL, value="negotiation_10", description="+10 negotiation"),
    ),
    _achievement(
        "first_contract", "Under Contract", "Complete a delivery contract", _T,
        Req.CONTRACTS_COMPLETED, 1,
    ),
    _achievement(
        "reliable_supplier", "Reliable Supplier", "Complete 10 delivery contracts", _T,
        Req.CONTRACTS_COMPLETED, 10,
        AchievementReward(kind=_R.REPUTATION, value="all_10", description="+10 reputation with every faction"),
    ),

    # Exploration
    _achievement("first_voyage", "Sea Legs", "Complete a trade expedition", _E, Req.ROUTES_COMPLETED, 1),
    _achievement(
        "seasoned_voyager", "Seasoned Voyager", "Complete 10 trade expeditions", _E,
        Req.ROUTES_COMPLETED, 10,
        AchievementReward(kind=_R.SKILL, value="navigation_10", description="+10 navigation"),
    ),

    # Social
    _achievement("social_butterfly", "Well Connected", "Meet 10 people", _S, Req.NPCS_MET, 10),
    _achievement(
        "crown_friend", "Friend of the Crown", "Be honored by the Crown", _S,
        Req.FACTION_HONORED, 1,
        AchievementReward(kind=_R.UNLOCK, value="crown_warehouse", description="Crown warehouse access"),
        faction="crown",
    ),
    _achievement(
        "free_spirit", "Free Spirit", "Be honored by the Free Traders", _S,
        Req.FACTION_HONORED, 1,
        AchievementReward(kind=_R.UNLOCK, value="smuggler_contacts", description="Smuggler contacts"),
        faction="free_traders",
    ),
    _achievement(
        "keeper_traditions", "Keeper of Traditions", "Be honored by the Old Routes", _S,
        Req.FACTION_HONORED, 1,
        AchievementReward(kind=_R.UNLOCK, value="ancient_routes", description="Ancient route maps"),
        faction="old_routes",
    ),

    # Story
    _achievement("first_quest", "Errand Runner", "Complete a quest", _Q, Req.QUESTS_COMPLETED, 1),
    _achievement(
        "quest_master", "Fixer", "Complete 3 quests", _Q, Req.QUESTS_COMPLETED, 3, hidden=True,
    ),
    _achievement("week_survivor", "First Week", "Survive 7 days in Goa", _Q, Req.DAYS_SURVIVED, 7),
    _achievement(
        "month_veteran", "Old Hand", "Survive 30 days in Goa", _Q, Req.DAYS_SURVIVED, 30,
        AchievementReward(kind=_R.GOLD, value=500, description="500 gold"),
    ),
    _achievement("rank_trader", "Licensed", "Reach the rank of Trader", _W, Req.RANK_ACHIEVED, 1),
    _achievement("rank_merchant", "Respected", "Reach the rank of Merchant", _W, Req.RANK_ACHIEVED, 2),
    _achievement("rank_master", "Mastery", "Reach the rank of Master", _W, Req.RANK_ACHIEVED, 3),
]


def _split_amount(value: str) -> tuple[str, int]:
    """Split reward values like "negotiation_5" into ("negotiation", 5)."""
    name, _, amount = str(value).rpartition("_")
    return name, int(amount)


class AchievementTracker:
    """Progress counters and one-time rewards for every achievement."""

    def __init__(
        self,
        bus: EventBus,
        queries: GameQueries | None = None,
        achievements: list[Achievement] | None = None,
        faction_ids: list[str] | None = None,
    ):
        self.bus = bus
        self.queries = queries or GameQueries()
        self.achievements: dict[str, Achievement] = {
            a.id: a for a in (achievements if achievements is not None else DEFAULT_ACHIEVEMENTS)
        }
        self.faction_ids = faction_ids or ["crown", "free_traders", "old_routes"]
        self._progress: dict[str, AchievementProgress] = {
            aid: AchievementProgress(achievement_id=aid) for aid in self.achievements
        }

        bus.on(EventType.GOLD_UPDATED, self._on_gold_updated)
        bus.on(EventType.PLAYER_BUY, self._on_trade)
        bus.on(EventType.PLAYER_SELL, self._on_trade)
        bus.on(EventType.PLAYER_SELL, self._on_sale_earnings)
        bus.on(EventType.CONTRACT_COMPLETED, self._on_contract_completed)
        bus.on(EventType.EXPEDITION_COMPLETED, self._on_expedition_completed)
        bus.on(EventType.NPC_MET, self._on_npc_met)
        bus.on(EventType.QUEST_COMPLETED, self._on_quest_completed)
        bus.on(EventType.REPUTATION_LEVEL_CHANGED, self._on_reputation_level)
        bus.on(EventType.RANK_UP, self._on_rank_up)
        bus.on(EventType.DAY_TICK, self._on_day)
        bus.on(EventType.STATE_GATHER, self._on_gather)
        bus.on(EventType.STATE_RESTORE, self._on_restore)

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    def record(self, kind: Req, amount: int, faction: str | None = None) -> list[str]:
        """
        Feed progress into every achievement of a requirement kind.

        Level-style kinds (gold held, rank, days) take `amount` as the new
        value; count-style kinds add it. Returns IDs unlocked by this call.
        """
        unlocked: list[str] = []
        for aid, achievement in self.achievements.items():
            requirement = achievement.requirement
            if requirement.kind != kind:
                continue
            if requirement.faction is not None and requirement.faction != faction:
                continue

            progress = self._progress[aid]
            if progress.unlocked:
                continue

            if kind in ABSOLUTE_KINDS:
                progress.current = amount
            else:
                progress.current += amount

            if progress.current >= requirement.target:
                self._unlock(achievement, progress)
                unlocked.append(aid)
        return unlocked

    def _unlock(self, achievement: Achievement, progress: AchievementProgress) -> None:
        # Unlocked before any reward is published
        progress.unlocked = True
        progress.unlocked_at = self.queries.now()
        logger.info(f"Achievement unlocked: {achievement.name}")

        if achievement.reward is not None:
            self._grant(achievement.reward)

        self.bus.emit(
            EventType.ACHIEVEMENT_UNLOCKED,
            achievement_id=achievement.id,
            name=achievement.name,
            category=achievement.category.value,
        )
        message = achievement.description
        if achievement.reward is not None and achievement.reward.description:
            message = f"{message} (Reward: {achievement.reward.description})"
        notify(self.bus, f"Achievement: {achievement.name}", message, NoticeSeverity.SUCCESS)

    def _grant(self, reward: AchievementReward) -> None:
        if reward.kind == AchievementRewardKind.GOLD:
            self.bus.emit(EventType.GOLD_CHANGED, amount=int(reward.value))
        elif reward.kind == AchievementRewardKind.CAPACITY:
            self.bus.emit(EventType.CAPACITY_BONUS, amount=int(reward.value))
        elif reward.kind == AchievementRewardKind.UNLOCK:
            self.bus.emit(
                EventType.FEATURE_UNLOCKED, feature=str(reward.value), source=ACHIEVEMENT_SOURCE
            )
        elif reward.kind == AchievementRewardKind.REPUTATION:
            target, amount = _split_amount(reward.value)
            factions = self.faction_ids if target == "all" else [target]
            for faction in factions:
                self.bus.emit(EventType.REPUTATION_GRANT, faction=faction, amount=amount)
        elif reward.kind == AchievementRewardKind.SKILL:
            skill, amount = _split_amount(reward.value)
            self.bus.emit(EventType.SKILL_BONUS, skill=skill, amount=amount)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def progress(self, achievement_id: str) -> AchievementProgress | None:
        return self._progress.get(achievement_id)

    def is_unlocked(self, achievement_id: str) -> bool:
        progress = self._progress.get(achievement_id)
        return bool(progress and progress.unlocked)

    def unlocked(self) -> list[Achievement]:
        return [a for aid, a in self.achievements.items() if self._progress[aid].unlocked]

    def locked(self, include_hidden: bool = False) -> list[Achievement]:
        return [
            a for aid, a in self.achievements.items()
            if not self._progress[aid].unlocked and (include_hidden or not a.hidden)
        ]

    def completion_percentage(self) -> float:
        if not self.achievements:
            return 0.0
        return round(100.0 * len(self.unlocked()) / len(self.achievements), 1)

    # -------------------------------------------------------------------------
    # Event handlers
    # -------------------------------------------------------------------------

    def _on_gold_updated(self, event) -> None:
        self.record(Req.GOLD_HELD, int(event.data["gold"]))

    def _on_trade(self, event) -> None:
        self.record(Req.TRADES_COMPLETED, 1)

    def _on_sale_earnings(self, event) -> None:
        self.record(Req.GOLD_EARNED, int(event.data.get("price", 0)))

    def _on_contract_completed(self, event) -> None:
        self.record(Req.CONTRACTS_COMPLETED, 1)

    def _on_expedition_completed(self, event) -> None:
        self.record(Req.ROUTES_COMPLETED, 1)

    def _on_npc_met(self, event) -> None:
        self.record(Req.NPCS_MET, 1)

    def _on_quest_completed(self, event) -> None:
        self.record(Req.QUESTS_COMPLETED, 1)

    def _on_reputation_level(self, event) -> None:
        if event.data["new_level"] in HONORED_LEVELS:
            self.record(Req.FACTION_HONORED, 1, faction=event.data["faction"])

    def _on_rank_up(self, event) -> None:
        self.record(Req.RANK_ACHIEVED, int(event.data["new_rank"]))

    def _on_day(self, event) -> None:
        self.record(Req.DAYS_SURVIVED, int(event.data["day"]))

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def snapshot(self) -> AchievementsSection:
        return AchievementsSection(
            progress={k: v.model_copy() for k, v in self._progress.items()}
        )

    def restore(self, section: AchievementsSection) -> None:
        self._progress = {
            aid: AchievementProgress(achievement_id=aid) for aid in self.achievements
        }
        for aid, progress in section.progress.items():
            if aid in self._progress:
                self._progress[aid] = progress.model_copy()

    def _on_gather(self, event) -> None:
        self.bus.emit(
            EventType.STATE_SECTION,
            system="achievements",
            data=self.snapshot().model_dump(mode="json"),
        )

    def _on_restore(self, event) -> None:
        envelope: SaveEnvelope = event.data["envelope"]
        self.restore(AchievementsSection.model_validate(envelope.achievements))
