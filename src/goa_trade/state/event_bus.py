"""
Event bus for the Goa trade simulation.

Every subsystem talks to the rest of the game through one bus instance,
owned by the game coordinator and passed in at construction. Writes to
shared player state (gold, inventory, reputation) travel as request
events; the owner of that state applies them and publishes the result.

Usage:
    bus = EventBus()
    bus.on(EventType.REPUTATION_CHANGED, my_handler)
    bus.emit(EventType.REPUTATION_GRANT, faction="crown", amount=5)

    def my_handler(event: GameEvent):
        print(f"{event.data['faction']} is now {event.data['value']}")
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

from .schema import NoticeSeverity

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Game events that can be published."""

    # Clock
    HOUR_TICK = "clock.hour"
    DAY_TICK = "clock.day"

    # Player holdings - *_CHANGED/GAINED/LOST/SET are requests,
    # the rest are facts published by the holder
    GOLD_CHANGED = "player.gold_changed"
    GOLD_UPDATED = "player.gold_updated"
    ITEM_GAINED = "player.item_gained"
    ITEM_LOST = "player.item_lost"
    ITEM_ACQUIRED = "player.item_acquired"
    ITEM_DELIVERED = "player.item_delivered"
    FLAG_SET = "player.flag_set"
    LOCATION_CHANGED = "player.location_changed"

    # Market
    PLAYER_BUY = "trade.buy"
    PLAYER_SELL = "trade.sell"

    # Factions
    REPUTATION_GRANT = "faction.grant"
    REPUTATION_CHANGED = "faction.changed"
    REPUTATION_LEVEL_CHANGED = "faction.level_changed"
    REPUTATION_LOADED = "faction.loaded"

    # NPCs
    NPC_INTERACTION = "npc.interaction"
    NPC_MET = "npc.met"
    NPC_ATTITUDE_CHANGED = "npc.attitude_changed"
    NPC_ATTITUDE_LEVEL_CHANGED = "npc.attitude_level_changed"

    # Quests
    QUEST_STARTED = "quest.started"
    QUEST_STAGE_ADVANCED = "quest.stage_advanced"
    QUEST_PROGRESS = "quest.progress"
    QUEST_CHOICE_MADE = "quest.choice_made"
    QUEST_COMPLETED = "quest.completed"
    QUEST_FAILED = "quest.failed"

    # Contracts
    CONTRACTS_REFRESHED = "contract.refreshed"
    CONTRACT_ACCEPTED = "contract.accepted"
    CONTRACT_PROGRESS = "contract.progress"
    CONTRACT_COMPLETED = "contract.completed"
    CONTRACT_FAILED = "contract.failed"
    CONTRACT_CANCELED = "contract.canceled"

    # Expeditions
    EXPEDITION_STARTED = "expedition.started"
    EXPEDITION_RETURNING = "expedition.returning"
    EXPEDITION_COMPLETED = "expedition.completed"
    EXPEDITION_LOST = "expedition.lost"

    # Progression
    RANK_UP = "progression.rank_up"
    FEATURE_UNLOCKED = "progression.feature_unlocked"
    CAPACITY_BONUS = "progression.capacity_bonus"
    SKILL_BONUS = "progression.skill_bonus"

    # Achievements
    ACHIEVEMENT_UNLOCKED = "achievement.unlocked"

    # Player-facing feed
    NOTIFICATION = "ui.notification"

    # Persistence
    STATE_GATHER = "save.gather"
    STATE_SECTION = "save.section"
    STATE_RESTORE = "save.restore"
    QUICK_SAVE = "save.quick"
    GAME_SAVED = "save.saved"
    GAME_LOADED = "save.loaded"
    SAVE_FAILED = "save.failed"


@dataclass
class GameEvent:
    """
    Event payload for the event bus.

    Attributes:
        type: The event type (from EventType enum)
        data: Event-specific payload as dict
        timestamp: Wall-clock time the event was emitted
    """

    type: EventType
    data: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.data}"


# Type alias for event handlers
EventHandler = Callable[[GameEvent], None]


class EventBus:
    """
    Synchronous event bus.

    Listeners run immediately inside emit(), in subscription order, and
    may emit further events. A failing listener is logged and skipped so
    the remaining listeners still run.
    """

    def __init__(self, history_limit: int = 100):
        self._listeners: dict[EventType, list[EventHandler]] = {}
        self._history: list[GameEvent] = []
        self._history_limit = history_limit

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: The type of event to listen for
            handler: Callback function that receives GameEvent
        """
        if event_type not in self._listeners:
            self._listeners[event_type] = []
        if handler not in self._listeners[event_type]:
            self._listeners[event_type].append(handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe a handler from an event type."""
        if event_type in self._listeners and handler in self._listeners[event_type]:
            self._listeners[event_type].remove(handler)

    def emit(self, event_type: EventType, **data) -> GameEvent:
        """
        Emit an event to all subscribers.

        Args:
            event_type: The type of event
            **data: Event-specific data

        Returns:
            The emitted GameEvent (for chaining/testing)
        """
        event = GameEvent(type=event_type, data=data)

        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit :]

        # Copy so handlers can subscribe or unsubscribe mid-dispatch
        for handler in list(self._listeners.get(event_type, [])):
            try:
                handler(event)
            except Exception:
                logger.exception("Error in handler for %s", event_type.value)

        return event

    def clear(self) -> None:
        """Clear all listeners. Useful for testing."""
        self._listeners.clear()

    def get_history(self, event_type: EventType | None = None) -> list[GameEvent]:
        """
        Get recent event history.

        Args:
            event_type: Filter by type, or None for all events

        Returns:
            List of recent events
        """
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.type == event_type]

    def listener_count(self, event_type: EventType) -> int:
        """Get number of listeners for an event type."""
        return len(self._listeners.get(event_type, []))


def notify(
    bus: EventBus,
    title: str,
    message: str,
    severity: NoticeSeverity = NoticeSeverity.INFO,
) -> GameEvent:
    """Publish a player-facing notification."""
    return bus.emit(
        EventType.NOTIFICATION,
        title=title,
        message=message,
        severity=severity.value,
    )
