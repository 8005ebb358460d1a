"""
Tests for trade expeditions.

Rolls are scripted so loss and variance are deterministic.
"""

import random

import pytest

from goa_trade.state.event_bus import EventType
from goa_trade.state.schema import CargoItem, ExpeditionsSection, ExpeditionStatus
from goa_trade.systems.expeditions import DEFAULT_ROUTES, ExpeditionResolver


class ScriptedRandom(random.Random):
    """Returns queued values from random(), counting the calls."""

    def __init__(self, *values: float):
        super().__init__(0)
        self.values = list(values)
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self.values.pop(0)


def routes_by_id():
    return {r.id: r for r in DEFAULT_ROUTES}


@pytest.fixture
def open_world(world):
    """A world where trade routes are open and the hold is full of silk."""
    world.unlocks.add("trade_routes")
    world.items.update({"silk": 10, "pepper": 10})
    return world


def make_resolver(bus, world, *rolls):
    return ExpeditionResolver(bus, world.queries(), rng=ScriptedRandom(*rolls))


class TestLaunch:

    def test_start_removes_cargo_and_sets_times(self, bus, open_world, recorder):
        recorder.watch(EventType.ITEM_LOST, EventType.EXPEDITION_STARTED)
        open_world.now = 168
        resolver = make_resolver(bus, open_world)

        outcome = resolver.start("route_malacca", {"silk": 4})

        assert outcome.success
        expedition = resolver.get_expedition(outcome.id)
        assert expedition.status == ExpeditionStatus.OUTBOUND
        assert expedition.midpoint == 264
        assert expedition.return_time == 360
        assert expedition.investment == 200
        assert recorder.data(EventType.ITEM_LOST) == [{"item": "silk", "quantity": 4}]
        assert len(recorder.of(EventType.EXPEDITION_STARTED)) == 1

    def test_locked_route_refused(self, bus, world):
        world.items["silk"] = 5
        resolver = make_resolver(bus, world)

        outcome = resolver.start("route_hormuz", {"silk": 1})

        assert not outcome.success
        assert resolver.all_expeditions() == []

    def test_refusal_lists_every_reason(self, bus, world):
        ok, reasons = make_resolver(bus, world).can_start("route_hormuz", {"silk": 3})
        assert not ok
        assert len(reasons) == 2

    def test_unknown_route(self, bus, open_world):
        ok, reasons = make_resolver(bus, open_world).can_start("route_atlantis", {"silk": 1})
        assert not ok
        assert "Unknown route" in reasons[0]

    def test_empty_hold_refused(self, bus, open_world):
        ok, reasons = make_resolver(bus, open_world).can_start("route_hormuz", {"silk": 0})
        assert not ok
        assert reasons == ["No cargo loaded"]

    def test_angry_faction_closes_route(self, bus, open_world):
        open_world.reputation["old_routes"] = -21
        resolver = make_resolver(bus, open_world)
        assert not resolver.is_route_available("route_hormuz")
        assert "route_hormuz" not in [r.id for r in resolver.available_routes()]

    def test_slot_limit(self, bus, open_world):
        resolver = make_resolver(bus, open_world)
        for _ in range(3):
            assert resolver.start("route_malabar", {"pepper": 1}).success

        outcome = resolver.start("route_malabar", {"pepper": 1})
        assert not outcome.success
        assert resolver.max_expeditions() == 3


class TestModifiers:

    def test_affinity_share_raises_multiplier(self, bus, open_world):
        resolver = make_resolver(bus, open_world)
        route = routes_by_id()["route_hormuz"]

        all_match = resolver.profit_multiplier(route, [CargoItem(good="silk", quantity=4)])
        half = resolver.profit_multiplier(
            route, [CargoItem(good="silk", quantity=2), CargoItem(good="pepper", quantity=2)]
        )

        assert all_match == pytest.approx(2.1)
        assert half == pytest.approx(1.95)

    def test_reputation_bonus_is_cumulative(self, bus, open_world):
        open_world.reputation["old_routes"] = 80
        resolver = make_resolver(bus, open_world)
        route = routes_by_id()["route_hormuz"]
        assert resolver.profit_multiplier(route, []) == pytest.approx(2.0)

    @pytest.mark.parametrize(
        "reputation,risk",
        [(0, 0.15), (50, 0.10), (80, 0.05), (-1, 0.25)],
    )
    def test_effective_risk(self, bus, open_world, reputation, risk):
        open_world.reputation["old_routes"] = reputation
        resolver = make_resolver(bus, open_world)
        assert resolver.effective_risk(routes_by_id()["route_hormuz"]) == pytest.approx(risk)

    def test_risk_is_clamped(self, bus, open_world):
        open_world.reputation["crown"] = 100
        resolver = make_resolver(bus, open_world)
        assert resolver.effective_risk(routes_by_id()["route_malabar"]) == pytest.approx(0.01)


class TestResolution:

    def test_lifecycle_rolls_once(self, bus, open_world, recorder):
        """Outbound at the midpoint, resolved at return, never re-rolled."""
        recorder.watch(EventType.EXPEDITION_RETURNING, EventType.EXPEDITION_COMPLETED, EventType.GOLD_CHANGED)
        open_world.now = 168
        rng = ScriptedRandom(0.9, 0.5)
        resolver = ExpeditionResolver(bus, open_world.queries(), rng=rng)
        expedition_id = resolver.start("route_malacca", {"silk": 4}).id
        expedition = resolver.get_expedition(expedition_id)

        resolver.on_hour(263)
        assert expedition.status == ExpeditionStatus.OUTBOUND

        resolver.on_hour(264)
        assert expedition.status == ExpeditionStatus.RETURNING
        assert len(recorder.of(EventType.EXPEDITION_RETURNING)) == 1

        resolver.on_hour(359)
        assert rng.calls == 0

        resolver.on_hour(360)
        assert expedition.status == ExpeditionStatus.COMPLETED
        # variance roll 0.5 -> 1.0x expected
        assert expedition.actual_return == expedition.expected_return
        assert recorder.data(EventType.GOLD_CHANGED) == [{"amount": expedition.expected_return}]

        resolver.on_hour(361)
        resolver.on_hour(362)
        assert rng.calls == 2
        assert len(recorder.of(EventType.EXPEDITION_COMPLETED)) == 1

    def test_lost_expedition_pays_nothing(self, bus, open_world, recorder):
        recorder.watch(EventType.EXPEDITION_LOST, EventType.GOLD_CHANGED)
        rng = ScriptedRandom(0.01)
        resolver = ExpeditionResolver(bus, open_world.queries(), rng=rng)
        expedition_id = resolver.start("route_malabar", {"pepper": 2}).id

        resolver.on_hour(12)
        resolver.on_hour(24)

        expedition = resolver.get_expedition(expedition_id)
        assert expedition.status == ExpeditionStatus.LOST
        assert expedition.actual_return == 0
        assert recorder.of(EventType.GOLD_CHANGED) == []
        assert rng.calls == 1
        assert resolver.stats()["lost"] == 1

    def test_late_tick_still_passes_through_returning(self, bus, open_world):
        """A long gap turns the ship for home first and resolves it next tick."""
        rng = ScriptedRandom(0.9, 0.0)
        resolver = ExpeditionResolver(bus, open_world.queries(), rng=rng)
        expedition_id = resolver.start("route_malabar", {"pepper": 1}).id

        resolver.on_hour(100)
        assert resolver.get_expedition(expedition_id).status == ExpeditionStatus.RETURNING

        resolver.on_hour(101)
        expedition = resolver.get_expedition(expedition_id)
        assert expedition.status == ExpeditionStatus.COMPLETED
        assert expedition.actual_return == int(expedition.expected_return * 0.8)

    def test_resolved_expedition_dropped_after_a_tick(self, bus, open_world):
        resolver = make_resolver(bus, open_world, 0.9, 0.5)
        expedition_id = resolver.start("route_malabar", {"pepper": 1}).id

        resolver.on_hour(12)
        resolver.on_hour(24)
        assert resolver.get_expedition(expedition_id) is not None
        assert resolver.active_expeditions() == []

        resolver.on_hour(25)
        assert resolver.get_expedition(expedition_id) is None
        assert resolver.stats()["completed"] == 1

    def test_progress(self, bus, open_world):
        resolver = make_resolver(bus, open_world)
        expedition_id = resolver.start("route_malabar", {"pepper": 1}).id
        open_world.now = 6

        progress = resolver.expedition_progress(expedition_id)

        assert progress["time_remaining"] == 18
        assert progress["percent"] == 25.0
        assert progress["status"] == "outbound"


class TestPersistence:

    def test_round_trip(self, bus, open_world):
        resolver = make_resolver(bus, open_world)
        resolver.start("route_hormuz", {"silk": 2})
        snapshot = resolver.snapshot()

        fresh = make_resolver(bus, open_world)
        fresh.restore(ExpeditionsSection.model_validate(snapshot.model_dump(mode="json")))

        assert fresh.snapshot() == snapshot
