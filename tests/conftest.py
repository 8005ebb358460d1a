"""
Pytest fixtures for Goa trade simulation tests.

Provides a bare event bus, a hand-driven fake world behind GameQueries,
and a fully wired TradeGame on an in-memory store.
"""

import random
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from goa_trade.game import TradeGame
from goa_trade.state.collaborators import GameQueries
from goa_trade.state.event_bus import EventBus, EventType
from goa_trade.state.store import MemorySaveStore


class FakeWorld:
    """Player state the tests set by hand."""

    def __init__(self):
        self.gold = 0
        self.reputation: dict[str, int] = {}
        self.items: dict[str, int] = {}
        self.flags: dict = {}
        self.now = 0
        self.unlocks: set[str] = set()

    def queries(self) -> GameQueries:
        return GameQueries(
            gold=lambda: self.gold,
            reputation=lambda faction: self.reputation.get(faction, 0),
            has_item=lambda item, qty: self.items.get(item, 0) >= qty,
            flag=lambda name: self.flags.get(name),
            now=lambda: self.now,
            has_unlock=lambda token: token in self.unlocks,
        )


class EventRecorder:
    """Collects every event of the given types, unbounded by bus history."""

    def __init__(self, bus: EventBus):
        self.bus = bus
        self.events = []

    def watch(self, *event_types: EventType) -> "EventRecorder":
        for event_type in event_types:
            self.bus.on(event_type, self.events.append)
        return self

    def of(self, event_type: EventType) -> list:
        return [e for e in self.events if e.type == event_type]

    def data(self, event_type: EventType) -> list[dict]:
        return [e.data for e in self.of(event_type)]


@pytest.fixture
def bus():
    """Fresh event bus."""
    return EventBus()


@pytest.fixture
def world():
    """Hand-driven player state."""
    return FakeWorld()


@pytest.fixture
def queries(world):
    return world.queries()


@pytest.fixture
def recorder(bus):
    """Recorder attached to the bare bus fixture."""
    return EventRecorder(bus)


@pytest.fixture
def memory_store():
    """In-memory save store for testing."""
    return MemorySaveStore()


@pytest.fixture
def game(memory_store):
    """Fully wired game with a fixed seed and the bundled quests."""
    return TradeGame(store=memory_store, rng=random.Random(1234))


@pytest.fixture
def game_recorder(game):
    """Recorder attached to the game's own bus."""
    return EventRecorder(game.bus)
