"""
Trade expeditions along long-distance sea routes.

The player loads goods onto a ship bound for a distant port. The ship is
outbound for the route's travel time, returning for the same again, and
then resolves exactly once: either it comes home with a profit scaled by
the route, the cargo and the player's standing, or it is lost at sea.
"""

from __future__ import annotations

import logging
import random

from ..state.collaborators import GameQueries
from ..state.event_bus import EventBus, EventType, notify
from ..state.schema import (
    ActionOutcome,
    CargoItem,
    Expedition,
    ExpeditionsSection,
    ExpeditionStatus,
    NoticeSeverity,
    SaveEnvelope,
    TradeRoute,
)

logger = logging.getLogger(__name__)


DEFAULT_ROUTES: list[TradeRoute] = [
    TradeRoute(
        id="route_malabar",
        name="Malabar Coast",
        origin="Goa",
        destination="Cochin",
        description="A short coastal run south to the pepper ports.",
        travel_time=12,
        base_risk=0.05,
        profit_multiplier=1.3,
        goods_affinity=["pepper", "ginger", "cinnamon"],
        faction="crown",
        unlock_requirement="trade_routes",
    ),
    TradeRoute(
        id="route_hormuz",
        name="Strait of Hormuz",
        origin="Goa",
        destination="Hormuz",
        description="North-west across the Arabian Sea to the Persian Gulf markets.",
        travel_time=48,
        base_risk=0.15,
        profit_multiplier=1.8,
        goods_affinity=["silk", "porcelain", "cloves"],
        faction="old_routes",
        unlock_requirement="trade_routes",
    ),
    TradeRoute(
        id="route_malacca",
        name="Malacca Strait",
        origin="Goa",
        destination="Malacca",
        description="East around Ceylon to the gateway of the spice islands.",
        travel_time=96,
        base_risk=0.25,
        profit_multiplier=2.2,
        goods_affinity=["cloves", "nutmeg", "silk"],
        faction="free_traders",
        unlock_requirement="trade_routes",
    ),
    TradeRoute(
        id="route_macau",
        name="China Voyage",
        origin="Goa",
        destination="Macau",
        description="The long, rich and dangerous voyage to the China trade.",
        travel_time=144,
        base_risk=0.30,
        profit_multiplier=2.8,
        goods_affinity=["silk", "porcelain", "pepper"],
        faction="crown",
        unlock_requirement="bulk_trading",
    ),
    TradeRoute(
        id="route_africa",
        name="East African Coast",
        origin="Goa",
        destination="Mozambique",
        description="South-west to the fortress ports of the African coast.",
        travel_time=72,
        base_risk=0.20,
        profit_multiplier=1.6,
        goods_affinity=["indigo", "cinnamon"],
        faction="crown",
        unlock_requirement="trade_routes",
    ),
]

BASE_PRICES: dict[str, int] = {
    "pepper": 15,
    "cinnamon": 25,
    "cloves": 40,
    "silk": 50,
    "porcelain": 35,
    "ginger": 12,
    "nutmeg": 45,
    "indigo": 30,
}
DEFAULT_BASE_PRICE = 10

AFFINITY_BONUS = 0.3

# Format: (min reputation, multiplier bonus) - cumulative
REPUTATION_PROFIT_BONUSES: list[tuple[int, float]] = [
    (50, 0.1),
    (80, 0.1),
]
# Format: (min reputation, risk change) - cumulative
REPUTATION_RISK_REDUCTIONS: list[tuple[int, float]] = [
    (50, -0.05),
    (80, -0.05),
]
NEGATIVE_REPUTATION_RISK = 0.10
MIN_RISK = 0.01
MAX_RISK = 0.5

# Routes controlled by factions this angry are closed
MIN_ROUTE_REPUTATION = -20

# Format: (unlock, max concurrent expeditions) - last held unlock wins
EXPEDITION_SLOT_UNLOCKS: list[tuple[str, int]] = [
    ("trade_routes", 3),
    ("bulk_trading", 5),
]
BASE_EXPEDITION_SLOTS = 1

RETURN_VARIANCE_MIN = 0.8
RETURN_VARIANCE_SPAN = 0.4


def base_price(good: str) -> int:
    return BASE_PRICES.get(good, DEFAULT_BASE_PRICE)


class ExpeditionResolver:
    """Launches expeditions and resolves them as the clock runs."""

    def __init__(
        self,
        bus: EventBus,
        queries: GameQueries | None = None,
        routes: list[TradeRoute] | None = None,
        rng: random.Random | None = None,
    ):
        self.bus = bus
        self.queries = queries or GameQueries()
        self.routes: dict[str, TradeRoute] = {
            r.id: r for r in (routes if routes is not None else DEFAULT_ROUTES)
        }
        self.rng = rng or random.Random()

        self._expeditions: list[Expedition] = []
        self.completed_count = 0
        self.lost_count = 0
        self.total_profit = 0

        bus.on(EventType.STATE_GATHER, self._on_gather)
        bus.on(EventType.STATE_RESTORE, self._on_restore)

    # -------------------------------------------------------------------------
    # Routes
    # -------------------------------------------------------------------------

    def is_route_available(self, route_id: str) -> bool:
        route = self.routes.get(route_id)
        if route is None:
            return False
        if route.unlock_requirement and not self.queries.has_unlock(route.unlock_requirement):
            return False
        return self.queries.reputation(route.faction) >= MIN_ROUTE_REPUTATION

    def available_routes(self) -> list[TradeRoute]:
        return [r for r in self.routes.values() if self.is_route_available(r.id)]

    def max_expeditions(self) -> int:
        slots = BASE_EXPEDITION_SLOTS
        for token, unlocked_slots in EXPEDITION_SLOT_UNLOCKS:
            if self.queries.has_unlock(token):
                slots = unlocked_slots
        return slots

    def effective_risk(self, route: TradeRoute) -> float:
        """Route risk adjusted for standing with its controlling faction."""
        reputation = self.queries.reputation(route.faction)
        risk = route.base_risk
        for threshold, change in REPUTATION_RISK_REDUCTIONS:
            if reputation >= threshold:
                risk += change
        if reputation < 0:
            risk += NEGATIVE_REPUTATION_RISK
        return max(MIN_RISK, min(MAX_RISK, risk))

    def profit_multiplier(self, route: TradeRoute, goods: list[CargoItem]) -> float:
        """Route multiplier plus bonuses for favored cargo and standing."""
        multiplier = route.profit_multiplier

        total = sum(item.quantity for item in goods)
        if total:
            matching = sum(i.quantity for i in goods if i.good in route.goods_affinity)
            multiplier += AFFINITY_BONUS * matching / total

        reputation = self.queries.reputation(route.faction)
        for threshold, bonus in REPUTATION_PROFIT_BONUSES:
            if reputation >= threshold:
                multiplier += bonus
        return multiplier

    # -------------------------------------------------------------------------
    # Launch
    # -------------------------------------------------------------------------

    def can_start(self, route_id: str, goods: dict[str, int]) -> tuple[bool, list[str]]:
        """
        Check whether an expedition could launch.

        Returns:
            (can_start, reasons)
        """
        route = self.routes.get(route_id)
        if route is None:
            return (False, [f"Unknown route: {route_id}"])

        reasons: list[str] = []
        if not self.is_route_available(route_id):
            reasons.append(f"{route.name} is not open to you")

        limit = self.max_expeditions()
        if len(self.active_expeditions()) >= limit:
            reasons.append(f"Already running {limit} expeditions")

        cargo = {good: qty for good, qty in goods.items() if qty > 0}
        if not cargo:
            reasons.append("No cargo loaded")
        for good, qty in cargo.items():
            if not self.queries.has_item(good, qty):
                reasons.append(f"Not enough {good} (need {qty})")

        return (not reasons, reasons)

    def start(self, route_id: str, goods: dict[str, int]) -> ActionOutcome:
        """Load cargo and send a ship out. Nothing changes if any check fails."""
        ok, reasons = self.can_start(route_id, goods)
        if not ok:
            logger.warning(f"Cannot launch on {route_id}: {'; '.join(reasons)}")
            return ActionOutcome.refused(*reasons)

        route = self.routes[route_id]
        cargo = [CargoItem(good=g, quantity=q) for g, q in goods.items() if q > 0]
        investment = sum(base_price(i.good) * i.quantity for i in cargo)
        expected = int(investment * self.profit_multiplier(route, cargo))
        now = self.queries.now()

        for item in cargo:
            self.bus.emit(EventType.ITEM_LOST, item=item.good, quantity=item.quantity)

        expedition = Expedition(
            route_id=route_id,
            goods=cargo,
            departure_time=now,
            return_time=now + 2 * route.travel_time,
            investment=investment,
            expected_return=expected,
        )
        self._expeditions.append(expedition)

        logger.info(f"Expedition {expedition.id} sailed for {route.destination}")
        self.bus.emit(
            EventType.EXPEDITION_STARTED,
            expedition_id=expedition.id,
            route_id=route_id,
            investment=investment,
            expected_return=expected,
            return_time=expedition.return_time,
        )
        notify(
            self.bus,
            "Expedition Launched",
            f"Your ship sails for {route.destination}. Expected back in "
            f"{2 * route.travel_time} hours.",
        )
        return ActionOutcome.accepted(expedition.id)

    # -------------------------------------------------------------------------
    # Clock
    # -------------------------------------------------------------------------

    def on_hour(self, now: int) -> None:
        """
        Move expeditions along.

        Expeditions resolved on an earlier tick are dropped first. Each
        remaining expedition takes at most one step per tick, so one that
        crossed both its midpoint and its return time since the last tick
        turns for home now and resolves on the next tick.
        """
        self._expeditions = [
            e for e in self._expeditions
            if not (e.is_resolved and e.resolved_at is not None and e.resolved_at < now)
        ]

        for expedition in list(self._expeditions):
            if expedition.status == ExpeditionStatus.OUTBOUND and now >= expedition.midpoint:
                expedition.status = ExpeditionStatus.RETURNING
                self.bus.emit(
                    EventType.EXPEDITION_RETURNING,
                    expedition_id=expedition.id,
                    route_id=expedition.route_id,
                )
            elif expedition.status == ExpeditionStatus.RETURNING and now >= expedition.return_time:
                self._resolve(expedition, now)

    def _resolve(self, expedition: Expedition, now: int) -> None:
        route = self.routes.get(expedition.route_id)
        risk = self.effective_risk(route) if route else MAX_RISK
        expedition.resolved_at = now
        destination = route.destination if route else expedition.route_id

        if self.rng.random() < risk:
            expedition.status = ExpeditionStatus.LOST
            expedition.actual_return = 0
            self.lost_count += 1
            logger.info(f"Expedition {expedition.id} lost at sea")
            self.bus.emit(
                EventType.EXPEDITION_LOST,
                expedition_id=expedition.id,
                route_id=expedition.route_id,
                investment=expedition.investment,
            )
            notify(
                self.bus,
                "Ship Lost",
                f"Your ship from {destination} never returned.",
                NoticeSeverity.CRITICAL,
            )
            return

        variance = RETURN_VARIANCE_MIN + self.rng.random() * RETURN_VARIANCE_SPAN
        actual = int(expedition.expected_return * variance)
        expedition.status = ExpeditionStatus.COMPLETED
        expedition.actual_return = actual
        self.completed_count += 1
        self.total_profit += actual - expedition.investment

        logger.info(f"Expedition {expedition.id} returned with {actual} gold")
        self.bus.emit(EventType.GOLD_CHANGED, amount=actual)
        self.bus.emit(
            EventType.EXPEDITION_COMPLETED,
            expedition_id=expedition.id,
            route_id=expedition.route_id,
            investment=expedition.investment,
            actual_return=actual,
        )
        notify(
            self.bus,
            "Ship Returned",
            f"Your ship from {destination} brought home {actual} gold.",
            NoticeSeverity.SUCCESS,
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_expedition(self, expedition_id: str) -> Expedition | None:
        return next((e for e in self._expeditions if e.id == expedition_id), None)

    def active_expeditions(self) -> list[Expedition]:
        return [e for e in self._expeditions if not e.is_resolved]

    def all_expeditions(self) -> list[Expedition]:
        return list(self._expeditions)

    def expedition_progress(self, expedition_id: str) -> dict | None:
        """Time remaining and percent of the round trip completed."""
        expedition = self.get_expedition(expedition_id)
        if expedition is None:
            return None
        now = self.queries.now()
        duration = expedition.return_time - expedition.departure_time
        elapsed = min(duration, max(0, now - expedition.departure_time))
        return {
            "status": expedition.status.value,
            "time_remaining": max(0, expedition.return_time - now),
            "percent": round(100.0 * elapsed / duration, 1) if duration else 100.0,
        }

    def stats(self) -> dict:
        return {
            "active": len(self.active_expeditions()),
            "completed": self.completed_count,
            "lost": self.lost_count,
            "total_profit": self.total_profit,
        }

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def snapshot(self) -> ExpeditionsSection:
        return ExpeditionsSection(
            expeditions=[e.model_copy(deep=True) for e in self._expeditions],
            completed_count=self.completed_count,
            lost_count=self.lost_count,
            total_profit=self.total_profit,
        )

    def restore(self, section: ExpeditionsSection) -> None:
        self._expeditions = [e.model_copy(deep=True) for e in section.expeditions]
        self.completed_count = section.completed_count
        self.lost_count = section.lost_count
        self.total_profit = section.total_profit

    def _on_gather(self, event) -> None:
        self.bus.emit(
            EventType.STATE_SECTION,
            system="expeditions",
            data=self.snapshot().model_dump(mode="json"),
        )

    def _on_restore(self, event) -> None:
        envelope: SaveEnvelope = event.data["envelope"]
        self.restore(ExpeditionsSection.model_validate(envelope.expeditions))
