"""
Faction reputation ledger.

Tracks one reputation scalar per faction, clamped to [-100, 100], and
publishes every change. Level transitions (neutral -> friendly, ...) are
published as a separate event so listeners can react only to crossings.

Other subsystems never call adjust() on each other's behalf: they emit
REPUTATION_GRANT and the ledger applies it.
"""

from __future__ import annotations

import logging

from ..state.event_bus import EventBus, EventType
from ..state.schema import (
    REPUTATION_MAX,
    REPUTATION_MIN,
    Faction,
    FactionsSection,
    ReputationLevel,
    ReputationRequirement,
    SaveEnvelope,
    level_threshold,
    reputation_to_level,
)

logger = logging.getLogger(__name__)


DEFAULT_FACTIONS: list[Faction] = [
    Faction(
        id="crown",
        name="The Crown",
        description="The Portuguese Estado da India and its viceroy in Goa.",
        philosophy="Order, licence and the royal fifth.",
        key_npcs=["npc_crown_representative", "crown_officer", "warehouse_master"],
    ),
    Faction(
        id="free_traders",
        name="Free Traders",
        description="Independent merchants working the gaps between empires.",
        philosophy="A fair price to whoever pays it.",
        key_npcs=["silk_merchant", "spice_vendor_1", "luxury_merchant", "bulk_merchant"],
    ),
    Faction(
        id="old_routes",
        name="Old Routes",
        description="Arab, Gujarati and Persian houses that ran the sea lanes long before the Portuguese.",
        philosophy="Trust is earned over generations.",
        key_npcs=["arab_trader", "yusuf_broker"],
    ),
]

LEVEL_DESCRIPTIONS: dict[ReputationLevel, str] = {
    ReputationLevel.HOSTILE: "They will not deal with you and may act against you.",
    ReputationLevel.UNFRIENDLY: "They deal with you grudgingly, at poor terms.",
    ReputationLevel.NEUTRAL: "You are one merchant among many.",
    ReputationLevel.FRIENDLY: "They know your name and offer fair terms.",
    ReputationLevel.HONORED: "You are a valued partner with access to better work.",
    ReputationLevel.CHAMPION: "You are counted among their own.",
}


def _clamp(value: int) -> int:
    return max(REPUTATION_MIN, min(REPUTATION_MAX, value))


class FactionLedger:
    """Reputation per faction, with change and level-change events."""

    def __init__(self, bus: EventBus, factions: list[Faction] | None = None):
        self.bus = bus
        self._factions: dict[str, Faction] = {
            f.id: f for f in (factions if factions is not None else DEFAULT_FACTIONS)
        }
        self._reputation: dict[str, int] = {fid: 0 for fid in self._factions}

        bus.on(EventType.REPUTATION_GRANT, self._on_grant)
        bus.on(EventType.STATE_GATHER, self._on_gather)
        bus.on(EventType.STATE_RESTORE, self._on_restore)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def faction(self, faction_id: str) -> Faction | None:
        return self._factions.get(faction_id)

    def factions(self) -> list[Faction]:
        return list(self._factions.values())

    def get(self, faction_id: str) -> int:
        """Current reputation. Unknown factions read as 0."""
        return self._reputation.get(faction_id, 0)

    def get_level(self, faction_id: str) -> ReputationLevel:
        return reputation_to_level(self.get(faction_id))

    def npc_faction(self, npc_id: str) -> str | None:
        """Faction an NPC belongs to, if any."""
        for faction in self._factions.values():
            if npc_id in faction.key_npcs:
                return faction.id
        return None

    def meets_requirements(self, requirements: list[ReputationRequirement]) -> bool:
        """True if every requirement holds. An empty list always holds."""
        for req in requirements:
            value = self.get(req.faction)
            if req.min_value is not None and value < req.min_value:
                return False
            if req.min_level is not None and value < level_threshold(req.min_level):
                return False
        return True

    @staticmethod
    def level_description(level: ReputationLevel) -> str:
        return LEVEL_DESCRIPTIONS[level]

    def summary(self) -> list[dict]:
        """Reputation, level and display name for every faction."""
        return [
            {
                "id": faction.id,
                "name": faction.name,
                "reputation": self.get(faction.id),
                "level": self.get_level(faction.id).value,
            }
            for faction in self._factions.values()
        ]

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def adjust(self, faction_id: str, delta: int) -> int | None:
        """
        Apply a reputation delta.

        Args:
            faction_id: Faction to adjust
            delta: Signed change, applied then clamped

        Returns:
            The new reputation, or None if the faction is unknown
        """
        if faction_id not in self._factions:
            logger.warning(f"Reputation change for unknown faction: {faction_id}")
            return None

        previous = self._reputation[faction_id]
        value = _clamp(previous + delta)
        self._reputation[faction_id] = value

        self.bus.emit(
            EventType.REPUTATION_CHANGED,
            faction=faction_id,
            previous=previous,
            value=value,
            delta=value - previous,
        )

        previous_level = reputation_to_level(previous)
        new_level = reputation_to_level(value)
        if new_level != previous_level:
            logger.info(f"{faction_id} standing: {previous_level.value} -> {new_level.value}")
            self.bus.emit(
                EventType.REPUTATION_LEVEL_CHANGED,
                faction=faction_id,
                previous_level=previous_level.value,
                new_level=new_level.value,
            )

        return value

    def set_reputation(self, faction_id: str, value: int) -> bool:
        """Set reputation directly, without publishing. Used when loading."""
        if faction_id not in self._factions:
            logger.warning(f"Ignoring saved reputation for unknown faction: {faction_id}")
            return False
        self._reputation[faction_id] = _clamp(value)
        return True

    def reset(self) -> None:
        for faction_id in self._reputation:
            self._reputation[faction_id] = 0

    def _on_grant(self, event) -> None:
        self.adjust(event.data["faction"], int(event.data.get("amount", 0)))

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def snapshot(self) -> FactionsSection:
        return FactionsSection(reputation=dict(self._reputation))

    def restore(self, section: FactionsSection) -> None:
        self.reset()
        for faction_id, value in section.reputation.items():
            self.set_reputation(faction_id, value)
        self.bus.emit(EventType.REPUTATION_LOADED, reputation=dict(self._reputation))

    def _on_gather(self, event) -> None:
        self.bus.emit(
            EventType.STATE_SECTION,
            system="factions",
            data=self.snapshot().model_dump(mode="json"),
        )

    def _on_restore(self, event) -> None:
        envelope: SaveEnvelope = event.data["envelope"]
        self.restore(FactionsSection.model_validate(envelope.factions))
