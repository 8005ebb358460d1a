"""
Top-level coordinator.

TradeGame owns the event bus and builds every subsystem with exactly the
collaborators it needs. It also owns the order in which subsystems see
the hour tick, so that order is a property of the game rather than of
who subscribed first:

    quests (time limits) -> contracts (deadlines, board) -> expeditions
"""

from __future__ import annotations

import logging
import random
from pathlib import Path

from .state.collaborators import GameClock, GameQueries, PlayerLedger
from .state.event_bus import EventBus, EventType
from .state.schema import SaveEnvelope, WorldSection
from .state.store import MemorySaveStore, SaveStore
from .systems.achievements import AchievementTracker
from .systems.contracts import ContractTracker
from .systems.expeditions import ExpeditionResolver
from .systems.factions import FactionLedger
from .systems.npc_memory import NPCMemoryBook
from .systems.progression import ProgressionLadder
from .systems.quests import QuestEngine
from .systems.saves import SaveOrchestrator

logger = logging.getLogger(__name__)


class TradeGame:
    """
    One running simulation.

    Args:
        store: Where saves go (in-memory if omitted)
        rng: Random source for the contract board and voyages
        starting_gold: Gold the player begins with
        quest_paths: Quest data files or directories (bundled quests if omitted)
        autosave_on_location_change: Autosave whenever the player moves
    """

    def __init__(
        self,
        store: SaveStore | None = None,
        rng: random.Random | None = None,
        starting_gold: int = 0,
        quest_paths: list[Path | str | None] | None = None,
        autosave_on_location_change: bool = True,
    ):
        self.bus = EventBus()
        self.rng = rng or random.Random()

        # Outside world
        self.clock = GameClock(self.bus)
        self.player = PlayerLedger(self.bus, gold=starting_gold)

        # Leaves first
        self.factions = FactionLedger(self.bus)
        self.progression = ProgressionLadder(self.bus)

        self.queries = GameQueries(
            gold=lambda: self.player.gold,
            reputation=self.factions.get,
            has_item=self.player.has_item,
            flag=self.player.get_flag,
            now=self.clock.now,
            has_unlock=self.progression.has_unlock,
        )

        self.npcs = NPCMemoryBook(self.bus, self.queries)
        self.quests = QuestEngine(self.bus, self.queries)
        self.contracts = ContractTracker(self.bus, self.queries, rng=self.rng)
        self.expeditions = ExpeditionResolver(self.bus, self.queries, rng=self.rng)
        self.achievements = AchievementTracker(
            self.bus,
            self.queries,
            faction_ids=[f.id for f in self.factions.factions()],
        )
        self.saves = SaveOrchestrator(
            self.bus,
            store or MemorySaveStore(),
            autosave_on_location_change=autosave_on_location_change,
        )

        for path in quest_paths if quest_paths is not None else [None]:
            self.quests.load_quests(path)

        self.bus.on(EventType.HOUR_TICK, self._on_hour)
        self.bus.on(EventType.STATE_GATHER, self._on_gather)
        self.bus.on(EventType.STATE_RESTORE, self._on_restore)

        # Let the ladder and achievements see the opening balance
        self.player.publish_balance()
        self.contracts.refresh()

    @property
    def now(self) -> int:
        return self.clock.game_time

    def advance(self, hours: int = 1) -> None:
        """Run the clock forward."""
        self.clock.advance(hours)

    def save(self, slot: str) -> bool:
        return self.saves.save(slot)

    def load(self, slot: str) -> SaveEnvelope | None:
        return self.saves.load(slot)

    def _on_hour(self, event) -> None:
        now = event.data["game_time"]
        hour = event.data["hour"]
        logger.debug(f"Hour tick {now}")
        self.quests.on_hour(now)
        self.contracts.on_hour(now, hour)
        self.expeditions.on_hour(now)

    def _on_gather(self, event) -> None:
        world = WorldSection(game_time=self.clock.game_time, player=self.player.snapshot())
        self.bus.emit(EventType.STATE_SECTION, system="world", data=world.model_dump(mode="json"))

    def _on_restore(self, event) -> None:
        envelope: SaveEnvelope = event.data["envelope"]
        world = WorldSection.model_validate(envelope.world)
        self.clock.game_time = world.game_time
        self.player.restore(world.player)
