"""
Merchant rank ladder.

Rank is earned from the most gold the player has ever held, so it never
drops when money is spent. Each rank raises carry capacity, improves
market prices, and unlocks feature tokens other systems check with
has_unlock().
"""

from __future__ import annotations

import logging

from ..state.event_bus import EventBus, EventType, notify
from ..state.schema import (
    NoticeSeverity,
    ProgressionState,
    RankProfile,
    SaveEnvelope,
)

logger = logging.getLogger(__name__)


RANKS: list[RankProfile] = [
    RankProfile(
        rank=0,
        name="Peddler",
        title="Humble Peddler",
        gold_threshold=0,
        carry_capacity=20,
        buy_modifier=1.0,
        sell_modifier=1.0,
    ),
    RankProfile(
        rank=1,
        name="Trader",
        title="Licensed Trader",
        gold_threshold=500,
        carry_capacity=30,
        buy_modifier=0.95,
        sell_modifier=1.05,
        unlocks=["contracts", "warehouse_access"],
    ),
    RankProfile(
        rank=2,
        name="Merchant",
        title="Respected Merchant",
        gold_threshold=2000,
        carry_capacity=50,
        buy_modifier=0.90,
        sell_modifier=1.10,
        unlocks=["trade_routes", "bulk_trading", "special_contracts"],
    ),
    RankProfile(
        rank=3,
        name="Master",
        title="Master Merchant",
        gold_threshold=10000,
        carry_capacity=100,
        buy_modifier=0.85,
        sell_modifier=1.15,
        unlocks=["luxury_goods", "exclusive_contracts", "price_information"],
    ),
    RankProfile(
        rank=4,
        name="Magnate",
        title="Trade Magnate",
        gold_threshold=50000,
        carry_capacity=200,
        buy_modifier=0.80,
        sell_modifier=1.20,
        unlocks=["win_condition", "crown_audience", "monopoly_rights"],
    ),
]

MAX_RANK = RANKS[-1].rank

# FEATURE_UNLOCKED sources this ladder publishes itself
RANK_SOURCE = "rank"


def rank_for_gold(gold: int) -> int:
    """Highest rank whose threshold the given gold meets."""
    rank = 0
    for profile in RANKS:
        if gold >= profile.gold_threshold:
            rank = profile.rank
    return rank


class ProgressionLadder:
    """Rank, trade counters and feature unlocks."""

    def __init__(self, bus: EventBus):
        self.bus = bus
        self.state = ProgressionState()

        bus.on(EventType.GOLD_UPDATED, self._on_gold_updated)
        bus.on(EventType.PLAYER_BUY, self._on_buy)
        bus.on(EventType.PLAYER_SELL, self._on_sell)
        bus.on(EventType.CAPACITY_BONUS, self._on_capacity_bonus)
        bus.on(EventType.FEATURE_UNLOCKED, self._on_feature_unlocked)
        bus.on(EventType.STATE_GATHER, self._on_gather)
        bus.on(EventType.STATE_RESTORE, self._on_restore)

    @property
    def rank(self) -> int:
        return self.state.rank

    @property
    def profile(self) -> RankProfile:
        return RANKS[self.state.rank]

    def observe_gold(self, gold: int) -> int:
        """
        Feed the current gold balance into the ladder.

        Raises the highest-gold watermark and promotes through every rank
        the new watermark crosses. Returns the current rank.
        """
        if gold <= self.state.highest_gold:
            return self.state.rank

        self.state.highest_gold = gold
        new_rank = rank_for_gold(gold)
        if new_rank <= self.state.rank:
            return self.state.rank

        previous = self.state.rank
        self.state.rank = new_rank
        profile = RANKS[new_rank]
        logger.info(f"Rank up: {RANKS[previous].name} -> {profile.name}")

        self.bus.emit(
            EventType.RANK_UP,
            previous_rank=previous,
            new_rank=new_rank,
            rank_name=profile.name,
            title=profile.title,
        )
        notify(
            self.bus,
            "Rank Up!",
            f"You are now a {profile.title}.",
            NoticeSeverity.SUCCESS,
        )
        for crossed in RANKS[previous + 1:new_rank + 1]:
            for token in crossed.unlocks:
                self.bus.emit(
                    EventType.FEATURE_UNLOCKED,
                    feature=token,
                    source=RANK_SOURCE,
                    rank=crossed.rank,
                )
        return new_rank

    def has_unlock(self, token: str) -> bool:
        """True if any rank reached so far, or a granted reward, unlocks the token."""
        if token in self.state.granted_unlocks:
            return True
        return any(token in profile.unlocks for profile in RANKS[: self.state.rank + 1])

    def all_unlocks(self) -> list[str]:
        tokens = [t for profile in RANKS[: self.state.rank + 1] for t in profile.unlocks]
        tokens.extend(t for t in self.state.granted_unlocks if t not in tokens)
        return tokens

    @property
    def carry_capacity(self) -> int:
        return self.profile.carry_capacity + self.state.bonus_capacity

    @property
    def price_modifier(self) -> float:
        return self.profile.buy_modifier

    @property
    def sell_modifier(self) -> float:
        return self.profile.sell_modifier

    def progress_to_next_rank(self) -> dict:
        """
        Progress toward the next rank.

        Returns:
            Dict with next_rank (None at the top), needed, current, percent
        """
        if self.state.rank >= MAX_RANK:
            return {"next_rank": None, "needed": 0, "current": self.state.highest_gold, "percent": 100.0}

        current = RANKS[self.state.rank]
        upcoming = RANKS[self.state.rank + 1]
        span = upcoming.gold_threshold - current.gold_threshold
        gained = self.state.highest_gold - current.gold_threshold
        return {
            "next_rank": upcoming.name,
            "needed": max(0, upcoming.gold_threshold - self.state.highest_gold),
            "current": self.state.highest_gold,
            "percent": round(min(100.0, 100.0 * gained / span), 1),
        }

    def summary(self) -> dict:
        return {
            "rank": self.state.rank,
            "name": self.profile.name,
            "title": self.profile.title,
            "highest_gold": self.state.highest_gold,
            "total_trades": self.state.total_trades,
            "total_gold_earned": self.state.total_gold_earned,
            "carry_capacity": self.carry_capacity,
            "unlocks": self.all_unlocks(),
        }

    # -------------------------------------------------------------------------
    # Event handlers
    # -------------------------------------------------------------------------

    def _on_gold_updated(self, event) -> None:
        self.observe_gold(int(event.data["gold"]))

    def _on_buy(self, event) -> None:
        self.state.total_trades += 1

    def _on_sell(self, event) -> None:
        self.state.total_trades += 1
        self.state.total_gold_earned += int(event.data.get("price", 0))

    def _on_capacity_bonus(self, event) -> None:
        self.state.bonus_capacity += int(event.data.get("amount", 0))

    def _on_feature_unlocked(self, event) -> None:
        if event.data.get("source") == RANK_SOURCE:
            return
        feature = event.data["feature"]
        if feature not in self.state.granted_unlocks:
            self.state.granted_unlocks.append(feature)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def restore(self, state: ProgressionState) -> None:
        self.state = state.model_copy(deep=True)

    def _on_gather(self, event) -> None:
        self.bus.emit(
            EventType.STATE_SECTION,
            system="progression",
            data=self.state.model_dump(mode="json"),
        )

    def _on_restore(self, event) -> None:
        envelope: SaveEnvelope = event.data["envelope"]
        self.restore(ProgressionState.model_validate(envelope.progression))
