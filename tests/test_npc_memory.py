"""
Tests for NPC relationship memory.
"""

import pytest

from goa_trade.state.event_bus import EventType
from goa_trade.state.schema import AttitudeLevel, NPCMemorySection, attitude_to_level
from goa_trade.systems.npc_memory import NPCMemoryBook


@pytest.fixture
def book(bus, queries):
    return NPCMemoryBook(bus, queries)


class TestRecords:
    """Records are created lazily and announced once."""

    def test_unknown_npc_has_no_record(self, book):
        assert book.get("yusuf_broker") is None
        assert book.attitude("yusuf_broker") == 0

    def test_first_contact_creates_record_and_emits_met(self, book, world, recorder):
        recorder.watch(EventType.NPC_MET)
        world.now = 30

        book.record_interaction("yusuf_broker", "Yusuf")
        book.record_interaction("yusuf_broker")

        record = book.get("yusuf_broker")
        assert record.name == "Yusuf"
        assert record.first_met == 30
        assert record.interaction_count == 2
        assert len(recorder.of(EventType.NPC_MET)) == 1

    def test_interaction_event_is_recorded(self, bus, book):
        bus.emit(EventType.NPC_INTERACTION, npc_id="arab_trader", npc_name="Hassan")
        assert book.get("arab_trader").interaction_count == 1


class TestAttitude:
    """Test attitude drift rules."""

    def test_familiarity_bonus_after_five_visits(self, book):
        """Visits beyond the fifth add +1 each."""
        for _ in range(5):
            book.record_interaction("crown_officer")
        assert book.attitude("crown_officer") == 0

        book.record_interaction("crown_officer")
        assert book.attitude("crown_officer") == 1

    def test_familiarity_stops_at_thirty(self, book):
        book.adjust_attitude("crown_officer", 30)
        for _ in range(10):
            book.record_interaction("crown_officer")
        assert book.attitude("crown_officer") == 30

    def test_profitable_trades_raise_attitude(self, book):
        """Three trades where the NPC profited earn +2 on the third."""
        book.record_trade("spice_vendor_1", 100, npc_profited=True)
        book.record_trade("spice_vendor_1", 200, npc_profited=True)
        assert book.attitude("spice_vendor_1") == 0

        book.record_trade("spice_vendor_1", 300, npc_profited=False)

        record = book.get("spice_vendor_1")
        assert record.trade_history.total == 3
        assert record.trade_history.profitable == 2
        assert record.trade_history.average_value == pytest.approx(200.0)
        assert record.attitude == 2

    def test_unprofitable_record_earns_nothing(self, book):
        for _ in range(3):
            book.record_trade("spice_vendor_1", 50, npc_profited=False)
        assert book.attitude("spice_vendor_1") == 0

    def test_buy_counts_as_profitable_for_npc(self, bus, book):
        for _ in range(3):
            bus.emit(EventType.PLAYER_BUY, good="pepper", price=15, quantity=1, npc_id="spice_vendor_1")
        assert book.get("spice_vendor_1").trade_history.profitable == 3
        assert book.attitude("spice_vendor_1") == 2

    def test_quest_completion_bonus(self, bus, book):
        bus.emit(EventType.QUEST_COMPLETED, quest_id="q1", npc_id="npc_crown_representative")

        record = book.get("npc_crown_representative")
        assert record.attitude == 5
        assert record.quest_history == ["q1"]

    def test_attitude_clamped_and_level_event(self, book, recorder):
        recorder.watch(EventType.NPC_ATTITUDE_LEVEL_CHANGED)

        assert book.adjust_attitude("bulk_merchant", 500) == 100
        assert book.attitude_level("bulk_merchant") == AttitudeLevel.TRUSTED
        assert recorder.data(EventType.NPC_ATTITUDE_LEVEL_CHANGED)[-1]["new_level"] == "trusted"

    @pytest.mark.parametrize(
        "attitude,level",
        [
            (-50, AttitudeLevel.HOSTILE),
            (-49, AttitudeLevel.UNFRIENDLY),
            (-20, AttitudeLevel.UNFRIENDLY),
            (20, AttitudeLevel.NEUTRAL),
            (50, AttitudeLevel.FRIENDLY),
            (51, AttitudeLevel.TRUSTED),
        ],
    )
    def test_attitude_levels(self, attitude, level):
        assert attitude_to_level(attitude) == level


class TestDerivedBehaviour:
    """Prices, deals and dialogue depend on attitude."""

    @pytest.mark.parametrize(
        "attitude,buy,sell",
        [
            (90, 0.85, 1.15),
            (50, 0.90, 1.10),
            (20, 0.95, 1.05),
            (0, 1.0, 1.0),
            (-30, 1.10, 0.90),
            (-80, 1.25, 0.75),
        ],
    )
    def test_price_modifiers(self, book, attitude, buy, sell):
        book.adjust_attitude("silk_merchant", attitude)
        assert book.price_modifier("silk_merchant") == buy
        assert book.sell_modifier("silk_merchant") == sell

    def test_special_deal_needs_attitude_and_history(self, book):
        book.adjust_attitude("luxury_merchant", 60)
        assert not book.will_offer_special_deal("luxury_merchant")

        for _ in range(5):
            book.record_trade("luxury_merchant", 100, npc_profited=False)
        assert book.will_offer_special_deal("luxury_merchant")

    def test_dialogue_keys(self, book):
        assert book.dialogue_key("arab_trader") == "stranger"

        book.record_interaction("arab_trader")
        assert book.dialogue_key("arab_trader") == "first_meeting"

        book.record_interaction("arab_trader")
        assert book.dialogue_key("arab_trader") == "returning_neutral"

        for _ in range(5):
            book.record_interaction("arab_trader")
        assert book.dialogue_key("arab_trader") == "neutral"

    def test_relationship_summary_sorted_warmest_first(self, book):
        book.adjust_attitude("a", -10)
        book.adjust_attitude("b", 40)
        book.adjust_attitude("c", 5)

        assert [row["npc_id"] for row in book.relationship_summary()] == ["b", "c", "a"]

    def test_flags(self, book):
        assert not book.has_flag("yusuf_broker", "owed_favor")
        book.set_flag("yusuf_broker", "owed_favor")
        assert book.has_flag("yusuf_broker", "owed_favor")
        assert book.get_flag("yusuf_broker", "owed_favor") is True


class TestPersistence:

    def test_restore_round_trip(self, bus, book):
        book.record_interaction("arab_trader", "Hassan")
        book.record_trade("arab_trader", 120, npc_profited=True)
        book.set_flag("arab_trader", "met_at_port", "mandovi")
        snapshot = book.snapshot()

        fresh = NPCMemoryBook(bus)
        fresh.restore(NPCMemorySection.model_validate(snapshot.model_dump(mode="json")))

        assert fresh.snapshot() == snapshot
