"""
Tests for the merchant rank ladder.

Rank follows the highest gold ever held, so it only goes up.
"""

import pytest

from goa_trade.state.event_bus import EventType
from goa_trade.state.schema import ProgressionState
from goa_trade.systems.progression import RANKS, ProgressionLadder, rank_for_gold


@pytest.fixture
def ladder(bus):
    return ProgressionLadder(bus)


class TestRanks:
    """Test the rank table."""

    @pytest.mark.parametrize(
        "gold,rank",
        [(0, 0), (499, 0), (500, 1), (1999, 1), (2000, 2), (10000, 3), (49999, 3), (50000, 4)],
    )
    def test_rank_for_gold(self, gold, rank):
        assert rank_for_gold(gold) == rank

    def test_rank_titles(self):
        assert [r.title for r in RANKS] == [
            "Humble Peddler",
            "Licensed Trader",
            "Respected Merchant",
            "Master Merchant",
            "Trade Magnate",
        ]


class TestObserveGold:
    """Test promotion."""

    def test_rank_never_drops(self, ladder):
        """Spending money keeps the rank earned."""
        ladder.observe_gold(2000)
        assert ladder.rank == 2
        assert ladder.has_unlock("trade_routes")

        ladder.observe_gold(100)

        assert ladder.rank == 2
        assert ladder.state.highest_gold == 2000
        assert ladder.has_unlock("trade_routes")

    def test_rank_up_publishes_rank_and_every_crossed_unlock(self, bus, ladder, recorder):
        recorder.watch(EventType.RANK_UP, EventType.FEATURE_UNLOCKED, EventType.NOTIFICATION)

        ladder.observe_gold(2500)

        assert recorder.data(EventType.RANK_UP) == [
            {"previous_rank": 0, "new_rank": 2, "rank_name": "Merchant", "title": "Respected Merchant"}
        ]
        features = [d["feature"] for d in recorder.data(EventType.FEATURE_UNLOCKED)]
        assert features == [
            "contracts", "warehouse_access", "trade_routes", "bulk_trading", "special_contracts",
        ]
        assert recorder.data(EventType.NOTIFICATION)[0]["title"] == "Rank Up!"

    def test_no_event_without_rank_change(self, ladder, recorder):
        recorder.watch(EventType.RANK_UP)
        ladder.observe_gold(400)
        assert recorder.events == []
        assert ladder.state.highest_gold == 400

    def test_gold_updated_event_drives_ladder(self, bus, ladder):
        bus.emit(EventType.GOLD_UPDATED, gold=600, delta=600)
        assert ladder.rank == 1


class TestUnlocksAndStats:

    def test_has_unlock_includes_lower_ranks(self, ladder):
        ladder.observe_gold(10000)
        assert ladder.has_unlock("contracts")
        assert ladder.has_unlock("exclusive_contracts")
        assert not ladder.has_unlock("crown_audience")

    def test_granted_unlocks_count(self, bus, ladder):
        bus.emit(EventType.FEATURE_UNLOCKED, feature="price_information", source="achievement")
        assert ladder.has_unlock("price_information")
        assert "price_information" in ladder.all_unlocks()

    def test_trade_counters(self, bus, ladder):
        bus.emit(EventType.PLAYER_BUY, good="pepper", price=30, quantity=2)
        bus.emit(EventType.PLAYER_SELL, good="pepper", price=45, quantity=2)

        assert ladder.state.total_trades == 2
        assert ladder.state.total_gold_earned == 45

    def test_capacity_bonus(self, bus, ladder):
        bus.emit(EventType.CAPACITY_BONUS, amount=5)
        assert ladder.carry_capacity == 25

    def test_modifiers_follow_rank(self, ladder):
        ladder.observe_gold(500)
        assert ladder.price_modifier == 0.95
        assert ladder.sell_modifier == 1.05

    def test_progress_to_next_rank(self, ladder):
        ladder.observe_gold(1250)
        progress = ladder.progress_to_next_rank()

        assert progress["next_rank"] == "Merchant"
        assert progress["needed"] == 750
        assert progress["percent"] == 50.0

    def test_progress_at_top_rank(self, ladder):
        ladder.observe_gold(60000)
        assert ladder.progress_to_next_rank()["next_rank"] is None

    def test_restore_round_trip(self, bus, ladder):
        ladder.observe_gold(3000)
        bus.emit(EventType.PLAYER_SELL, good="silk", price=70)
        dumped = ladder.state.model_dump(mode="json")

        fresh = ProgressionLadder(bus)
        fresh.restore(ProgressionState.model_validate(dumped))

        assert fresh.state == ladder.state
