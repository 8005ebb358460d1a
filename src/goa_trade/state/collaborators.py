"""
Interfaces to the parts of the game that live outside the simulation core.

Subsystems read player state through `GameQueries` and never hold the
wallet or inventory directly. `PlayerLedger` and `GameClock` are small
reference implementations of the outside world: enough to drive the core
from tests and the command line.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from .event_bus import EventBus, EventType
from .schema import HOURS_PER_DAY, PlayerSnapshot

logger = logging.getLogger(__name__)


def _no_gold() -> int:
    return 0


def _no_reputation(faction: str) -> int:
    return 0


def _no_items(item: str, quantity: int) -> bool:
    return False


def _no_flag(name: str) -> Any:
    return None


def _no_time() -> int:
    return 0


def _no_unlock(token: str) -> bool:
    return False


@dataclass
class GameQueries:
    """
    Synchronous read-only views onto state owned elsewhere.

    Every field defaults to an empty world so tests only wire what
    they exercise.
    """
    gold: Callable[[], int] = _no_gold
    reputation: Callable[[str], int] = _no_reputation
    has_item: Callable[[str, int], bool] = _no_items
    flag: Callable[[str], Any] = _no_flag
    now: Callable[[], int] = _no_time
    has_unlock: Callable[[str], bool] = _no_unlock


class PlayerLedger:
    """
    Wallet, inventory and story flags.

    Applies the write requests the core publishes (GOLD_CHANGED,
    ITEM_GAINED, ITEM_LOST, FLAG_SET) and announces the results.
    The buy/sell/deliver helpers stand in for the market and dialogue UI.
    """

    def __init__(self, bus: EventBus, gold: int = 0):
        self.bus = bus
        self.gold = gold
        self.inventory: dict[str, int] = {}
        self.flags: dict[str, Any] = {}
        self.location: str | None = None

        bus.on(EventType.GOLD_CHANGED, self._on_gold_changed)
        bus.on(EventType.ITEM_GAINED, self._on_item_gained)
        bus.on(EventType.ITEM_LOST, self._on_item_lost)
        bus.on(EventType.FLAG_SET, self._on_flag_set)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def has_item(self, item: str, quantity: int = 1) -> bool:
        return self.inventory.get(item, 0) >= quantity

    def get_flag(self, name: str) -> Any:
        return self.flags.get(name)

    # -------------------------------------------------------------------------
    # Write requests
    # -------------------------------------------------------------------------

    def _on_gold_changed(self, event) -> None:
        amount = int(event.data.get("amount", 0))
        self.gold = max(0, self.gold + amount)
        self.publish_balance(amount)

    def _on_item_gained(self, event) -> None:
        item = event.data["item"]
        quantity = int(event.data.get("quantity", 1))
        self.inventory[item] = self.inventory.get(item, 0) + quantity
        self.bus.emit(EventType.ITEM_ACQUIRED, item=item, quantity=quantity)

    def _on_item_lost(self, event) -> None:
        self._remove_item(event.data["item"], int(event.data.get("quantity", 1)))

    def _on_flag_set(self, event) -> None:
        self.flags[event.data["flag"]] = event.data.get("value", True)

    def publish_balance(self, delta: int = 0) -> None:
        """Announce the current gold balance."""
        self.bus.emit(EventType.GOLD_UPDATED, gold=self.gold, delta=delta)

    # -------------------------------------------------------------------------
    # Market and dialogue stand-ins
    # -------------------------------------------------------------------------

    def buy(self, good: str, quantity: int, price: int, npc_id: str | None = None) -> bool:
        """Buy goods for a total price. Returns False if the player can't afford it."""
        if price > self.gold:
            logger.warning(f"Cannot afford {quantity} {good} for {price}")
            return False
        self.gold -= price
        self.inventory[good] = self.inventory.get(good, 0) + quantity
        self.publish_balance(-price)
        self.bus.emit(
            EventType.PLAYER_BUY, good=good, quantity=quantity, price=price, npc_id=npc_id
        )
        return True

    def sell(self, good: str, quantity: int, price: int, npc_id: str | None = None) -> bool:
        """Sell goods for a total price. Returns False if the player lacks them."""
        if not self.has_item(good, quantity):
            logger.warning(f"Cannot sell {quantity} {good}: not held")
            return False
        self._remove_item(good, quantity)
        self.gold += price
        self.publish_balance(price)
        self.bus.emit(
            EventType.PLAYER_SELL, good=good, quantity=quantity, price=price, npc_id=npc_id
        )
        return True

    def deliver(self, npc_id: str, item: str, quantity: int = 1) -> bool:
        """Hand items to an NPC."""
        if not self.has_item(item, quantity):
            logger.warning(f"Cannot deliver {quantity} {item} to {npc_id}: not held")
            return False
        self._remove_item(item, quantity)
        self.bus.emit(EventType.ITEM_DELIVERED, npc_id=npc_id, item=item, quantity=quantity)
        return True

    def talk_to(self, npc_id: str, npc_name: str = "") -> None:
        self.bus.emit(EventType.NPC_INTERACTION, npc_id=npc_id, npc_name=npc_name)

    def travel_to(self, location: str) -> None:
        previous = self.location
        self.location = location
        self.bus.emit(EventType.LOCATION_CHANGED, location=location, previous=previous)

    def _remove_item(self, item: str, quantity: int) -> None:
        remaining = self.inventory.get(item, 0) - quantity
        if remaining > 0:
            self.inventory[item] = remaining
        else:
            self.inventory.pop(item, None)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def snapshot(self) -> PlayerSnapshot:
        return PlayerSnapshot(
            gold=self.gold,
            inventory=dict(self.inventory),
            flags=dict(self.flags),
            location=self.location,
        )

    def restore(self, snapshot: PlayerSnapshot) -> None:
        """Replace holdings without publishing anything."""
        self.gold = snapshot.gold
        self.inventory = dict(snapshot.inventory)
        self.flags = dict(snapshot.flags)
        self.location = snapshot.location


class GameClock:
    """
    Monotonic hour counter.

    Publishes HOUR_TICK for every hour passed and DAY_TICK whenever the
    hour wraps to midnight.
    """

    def __init__(self, bus: EventBus, game_time: int = 0):
        self.bus = bus
        self.game_time = game_time

    @property
    def hour(self) -> int:
        return self.game_time % HOURS_PER_DAY

    @property
    def day(self) -> int:
        return self.game_time // HOURS_PER_DAY

    def now(self) -> int:
        return self.game_time

    def advance(self, hours: int = 1) -> None:
        """Advance the clock one hour at a time, ticking each hour."""
        for _ in range(max(0, hours)):
            self.game_time += 1
            self.bus.emit(
                EventType.HOUR_TICK,
                hour=self.hour,
                day=self.day,
                game_time=self.game_time,
            )
            if self.hour == 0:
                self.bus.emit(EventType.DAY_TICK, day=self.day)
