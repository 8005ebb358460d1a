"""
NPC relationship memory.

Each NPC keeps a record of how often the player has visited, how trades
went for them, which quests involved them, and a running attitude score.
Records are created lazily the first time the player touches an NPC.
Attitude drives price modifiers and which dialogue variant is shown.
"""

from __future__ import annotations

import logging
from typing import Any

from ..state.collaborators import GameQueries
from ..state.event_bus import EventBus, EventType
from ..state.schema import (
    AttitudeLevel,
    NPCMemory,
    NPCMemorySection,
    SaveEnvelope,
    attitude_to_level,
)

logger = logging.getLogger(__name__)


ATTITUDE_MIN = -100
ATTITUDE_MAX = 100

# Familiarity: repeat visits warm an NPC up, but only so far
FAMILIARITY_AFTER_VISITS = 5
FAMILIARITY_CAP = 30
FAMILIARITY_BONUS = 1

# Good trading record
FAIR_TRADE_MIN_TRADES = 3
FAIR_TRADE_RATIO = 0.6
FAIR_TRADE_BONUS = 2

QUEST_COMPLETION_BONUS = 5

# Special deals
SPECIAL_DEAL_ATTITUDE = 50
SPECIAL_DEAL_TRADES = 5

# Format: (min_attitude, modifier) - first match wins
BUY_PRICE_MODIFIERS: list[tuple[int, float]] = [
    (80, 0.85),
    (50, 0.90),
    (20, 0.95),
    (-20, 1.0),
    (-50, 1.10),
]
BUY_PRICE_FLOOR = 1.25

SELL_PRICE_MODIFIERS: list[tuple[int, float]] = [
    (80, 1.15),
    (50, 1.10),
    (20, 1.05),
    (-20, 1.0),
    (-50, 0.90),
]
SELL_PRICE_FLOOR = 0.75


class NPCMemoryBook:
    """Per-NPC relationship records."""

    def __init__(self, bus: EventBus, queries: GameQueries | None = None):
        self.bus = bus
        self.queries = queries or GameQueries()
        self._records: dict[str, NPCMemory] = {}

        bus.on(EventType.NPC_INTERACTION, self._on_interaction)
        bus.on(EventType.PLAYER_BUY, self._on_buy)
        bus.on(EventType.PLAYER_SELL, self._on_sell)
        bus.on(EventType.QUEST_CHOICE_MADE, self._on_quest_choice)
        bus.on(EventType.QUEST_COMPLETED, self._on_quest_completed)
        bus.on(EventType.STATE_GATHER, self._on_gather)
        bus.on(EventType.STATE_RESTORE, self._on_restore)

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def get(self, npc_id: str) -> NPCMemory | None:
        return self._records.get(npc_id)

    def get_or_create(self, npc_id: str, name: str | None = None) -> NPCMemory:
        """Fetch an NPC's record, creating it on first contact."""
        record = self._records.get(npc_id)
        if record is None:
            now = self.queries.now()
            record = NPCMemory(
                npc_id=npc_id,
                name=name or npc_id,
                first_met=now,
                last_interaction=now,
            )
            self._records[npc_id] = record
            logger.debug(f"Met {npc_id}")
            self.bus.emit(EventType.NPC_MET, npc_id=npc_id, name=record.name)
        elif name and record.name == npc_id:
            record.name = name
        return record

    def known_npcs(self) -> list[str]:
        return list(self._records.keys())

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def record_interaction(self, npc_id: str, name: str | None = None) -> NPCMemory:
        """Note a conversation. Regular visitors slowly win the NPC over."""
        record = self.get_or_create(npc_id, name)
        record.interaction_count += 1
        record.last_interaction = self.queries.now()

        if (
            record.interaction_count > FAMILIARITY_AFTER_VISITS
            and record.attitude < FAMILIARITY_CAP
        ):
            self.adjust_attitude(npc_id, FAMILIARITY_BONUS)
        return record

    def record_trade(self, npc_id: str, value: int, npc_profited: bool) -> NPCMemory:
        """
        Note a completed trade with an NPC.

        Args:
            npc_id: Trading partner
            value: Total value of the trade
            npc_profited: True if the NPC came out ahead
        """
        record = self.get_or_create(npc_id)
        history = record.trade_history
        history.total += 1
        if npc_profited:
            history.profitable += 1
        history.average_value += (value - history.average_value) / history.total
        history.last_trade_time = self.queries.now()
        record.last_interaction = history.last_trade_time

        if (
            history.total >= FAIR_TRADE_MIN_TRADES
            and history.profitable / history.total >= FAIR_TRADE_RATIO
        ):
            self.adjust_attitude(npc_id, FAIR_TRADE_BONUS)
        return record

    def record_quest_involvement(self, npc_id: str, quest_id: str) -> NPCMemory:
        record = self.get_or_create(npc_id)
        if quest_id not in record.quest_history:
            record.quest_history.append(quest_id)
        return record

    def adjust_attitude(self, npc_id: str, delta: int) -> int:
        """Shift an NPC's attitude, publishing the change and any level crossing."""
        record = self.get_or_create(npc_id)
        previous = record.attitude
        record.attitude = max(ATTITUDE_MIN, min(ATTITUDE_MAX, previous + delta))

        self.bus.emit(
            EventType.NPC_ATTITUDE_CHANGED,
            npc_id=npc_id,
            previous=previous,
            attitude=record.attitude,
        )

        previous_level = attitude_to_level(previous)
        new_level = attitude_to_level(record.attitude)
        if new_level != previous_level:
            self.bus.emit(
                EventType.NPC_ATTITUDE_LEVEL_CHANGED,
                npc_id=npc_id,
                previous_level=previous_level.value,
                new_level=new_level.value,
            )
        return record.attitude

    # -------------------------------------------------------------------------
    # Derived behaviour
    # -------------------------------------------------------------------------

    def attitude(self, npc_id: str) -> int:
        record = self._records.get(npc_id)
        return record.attitude if record else 0

    def attitude_level(self, npc_id: str) -> AttitudeLevel:
        return attitude_to_level(self.attitude(npc_id))

    def price_modifier(self, npc_id: str) -> float:
        """Multiplier on what the player pays this NPC."""
        attitude = self.attitude(npc_id)
        for threshold, modifier in BUY_PRICE_MODIFIERS:
            if attitude >= threshold:
                return modifier
        return BUY_PRICE_FLOOR

    def sell_modifier(self, npc_id: str) -> float:
        """Multiplier on what this NPC pays the player."""
        attitude = self.attitude(npc_id)
        for threshold, modifier in SELL_PRICE_MODIFIERS:
            if attitude >= threshold:
                return modifier
        return SELL_PRICE_FLOOR

    def will_offer_special_deal(self, npc_id: str) -> bool:
        record = self._records.get(npc_id)
        if record is None:
            return False
        return (
            record.attitude >= SPECIAL_DEAL_ATTITUDE
            and record.trade_history.total >= SPECIAL_DEAL_TRADES
        )

    def dialogue_key(self, npc_id: str) -> str:
        """
        Pick a dialogue variant for this NPC.

        Returns "stranger" before first contact, "first_meeting" on the
        first conversation, "returning_<level>" for the next few, and the
        bare attitude level once the player is a regular.
        """
        record = self._records.get(npc_id)
        if record is None:
            return "stranger"
        if record.interaction_count <= 1:
            return "first_meeting"
        level = attitude_to_level(record.attitude).value
        if record.interaction_count <= FAMILIARITY_AFTER_VISITS:
            return f"returning_{level}"
        return level

    def relationship_summary(self) -> list[dict]:
        """All known NPCs, warmest first."""
        records = sorted(self._records.values(), key=lambda r: r.attitude, reverse=True)
        return [
            {
                "npc_id": r.npc_id,
                "name": r.name,
                "attitude": r.attitude,
                "level": attitude_to_level(r.attitude).value,
                "interactions": r.interaction_count,
                "trades": r.trade_history.total,
            }
            for r in records
        ]

    # -------------------------------------------------------------------------
    # Flags
    # -------------------------------------------------------------------------

    def set_flag(self, npc_id: str, flag: str, value: Any = True) -> None:
        self.get_or_create(npc_id).flags[flag] = value

    def get_flag(self, npc_id: str, flag: str) -> Any:
        record = self._records.get(npc_id)
        return record.flags.get(flag) if record else None

    def has_flag(self, npc_id: str, flag: str) -> bool:
        record = self._records.get(npc_id)
        return bool(record and flag in record.flags)

    # -------------------------------------------------------------------------
    # Event handlers
    # -------------------------------------------------------------------------

    def _on_interaction(self, event) -> None:
        self.record_interaction(event.data["npc_id"], event.data.get("npc_name"))

    def _on_buy(self, event) -> None:
        npc_id = event.data.get("npc_id")
        if npc_id:
            self.record_trade(npc_id, int(event.data.get("price", 0)), npc_profited=True)

    def _on_sell(self, event) -> None:
        npc_id = event.data.get("npc_id")
        if npc_id:
            self.record_trade(
                npc_id,
                int(event.data.get("price", 0)),
                npc_profited=bool(event.data.get("npc_profited", False)),
            )

    def _on_quest_choice(self, event) -> None:
        npc_id = event.data.get("npc_id")
        if npc_id:
            self.record_quest_involvement(npc_id, event.data["quest_id"])

    def _on_quest_completed(self, event) -> None:
        npc_id = event.data.get("npc_id")
        if npc_id:
            self.record_quest_involvement(npc_id, event.data["quest_id"])
            self.adjust_attitude(npc_id, QUEST_COMPLETION_BONUS)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def snapshot(self) -> NPCMemorySection:
        return NPCMemorySection(
            records={k: v.model_copy(deep=True) for k, v in self._records.items()}
        )

    def restore(self, section: NPCMemorySection) -> None:
        self._records = {k: v.model_copy(deep=True) for k, v in section.records.items()}

    def _on_gather(self, event) -> None:
        self.bus.emit(
            EventType.STATE_SECTION,
            system="npc_memory",
            data=self.snapshot().model_dump(mode="json"),
        )

    def _on_restore(self, event) -> None:
        envelope: SaveEnvelope = event.data["envelope"]
        self.restore(NPCMemorySection.model_validate(envelope.npc_memory))
