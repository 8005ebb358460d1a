"""
Tests for the event bus.

The bus is synchronous and instance-owned: every game builds its own,
and a failing listener never stops the others.
"""

import logging

from goa_trade.state.event_bus import EventBus, EventType, GameEvent, notify
from goa_trade.state.schema import NoticeSeverity


class TestSubscription:
    """Test on/off and dispatch."""

    def test_emit_calls_listener_with_data(self, bus):
        """Listeners receive a GameEvent carrying the keyword data."""
        received = []
        bus.on(EventType.REPUTATION_CHANGED, received.append)

        bus.emit(EventType.REPUTATION_CHANGED, faction="crown", value=15)

        assert len(received) == 1
        assert isinstance(received[0], GameEvent)
        assert received[0].data == {"faction": "crown", "value": 15}

    def test_duplicate_subscription_ignored(self, bus):
        """The same handler registered twice runs once."""
        calls = []

        def handler(event):
            calls.append(event)

        bus.on(EventType.HOUR_TICK, handler)
        bus.on(EventType.HOUR_TICK, handler)
        bus.emit(EventType.HOUR_TICK, hour=1)

        assert len(calls) == 1
        assert bus.listener_count(EventType.HOUR_TICK) == 1

    def test_off_removes_listener(self, bus):
        """Unsubscribed handlers stop receiving events."""
        calls = []

        def handler(event):
            calls.append(event)

        bus.on(EventType.DAY_TICK, handler)
        bus.off(EventType.DAY_TICK, handler)
        bus.emit(EventType.DAY_TICK, day=1)

        assert calls == []

    def test_separate_buses_are_isolated(self):
        """Two games never hear each other's events."""
        first, second = EventBus(), EventBus()
        heard = []
        second.on(EventType.GOLD_CHANGED, heard.append)

        first.emit(EventType.GOLD_CHANGED, amount=10)

        assert heard == []

    def test_listener_may_emit_during_dispatch(self, bus):
        """Handlers can publish follow-up events synchronously."""
        order = []
        bus.on(EventType.REPUTATION_GRANT, lambda e: (order.append("grant"), bus.emit(EventType.REPUTATION_CHANGED)))
        bus.on(EventType.REPUTATION_CHANGED, lambda e: order.append("changed"))

        bus.emit(EventType.REPUTATION_GRANT, faction="crown", amount=1)

        assert order == ["grant", "changed"]


class TestErrorIsolation:
    """A failing listener must not break the rest."""

    def test_failing_handler_is_logged_and_skipped(self, bus, caplog):
        """Later listeners still run when an earlier one raises."""
        calls = []

        def broken(event):
            raise RuntimeError("boom")

        bus.on(EventType.NOTIFICATION, broken)
        bus.on(EventType.NOTIFICATION, calls.append)

        with caplog.at_level(logging.ERROR):
            bus.emit(EventType.NOTIFICATION, title="t", message="m")

        assert len(calls) == 1
        assert "ui.notification" in caplog.text


class TestHistory:
    """Test the bounded debug history."""

    def test_history_filtered_by_type(self, bus):
        bus.emit(EventType.HOUR_TICK, hour=1)
        bus.emit(EventType.DAY_TICK, day=1)

        assert len(bus.get_history()) == 2
        assert len(bus.get_history(EventType.DAY_TICK)) == 1

    def test_history_is_bounded(self):
        """Only the most recent events are kept."""
        bus = EventBus(history_limit=5)
        for hour in range(10):
            bus.emit(EventType.HOUR_TICK, hour=hour)

        history = bus.get_history()
        assert len(history) == 5
        assert history[0].data["hour"] == 5

    def test_notify_publishes_severity_value(self, bus):
        """notify() sends a NOTIFICATION with the severity as a plain string."""
        event = notify(bus, "Title", "Body", NoticeSeverity.WARNING)

        assert event.type == EventType.NOTIFICATION
        assert event.data == {"title": "Title", "message": "Body", "severity": "warning"}
