"""
Contract board and delivery tracker.

Clients post delivery contracts on a board that refreshes twice a day.
The player accepts a handful at a time, fills them by selling the requested
good, and is paid on the delivery that reaches the quantity. A contract
still open when its deadline arrives fails, costing the penalty in gold
and reputation with the client's faction.
"""

from __future__ import annotations

import logging
import random

from ..state.collaborators import GameQueries
from ..state.event_bus import EventBus, EventType, notify
from ..state.schema import (
    ActionOutcome,
    ActiveContract,
    ContractOffer,
    ContractStatus,
    ContractsSection,
    ContractTemplate,
    Difficulty,
    NoticeSeverity,
    SaveEnvelope,
)

logger = logging.getLogger(__name__)


DEFAULT_TEMPLATES: list[ContractTemplate] = [
    ContractTemplate(
        client_id="crown_officer",
        client_name="Crown Officer",
        faction="crown",
        good="pepper",
        quantity=5,
        deadline_hours=48,
        reward=100,
        reputation_reward=5,
        description="The garrison kitchens need pepper for the viceroy's table.",
        difficulty=Difficulty.EASY,
    ),
    ContractTemplate(
        client_id="silk_merchant",
        client_name="Silk Merchant",
        faction="free_traders",
        good="silk",
        quantity=3,
        deadline_hours=48,
        reward=180,
        reputation_reward=5,
        description="A tailor's order needs a few bolts of silk.",
        difficulty=Difficulty.EASY,
    ),
    ContractTemplate(
        client_id="warehouse_master",
        client_name="Warehouse Master",
        faction="crown",
        good="cinnamon",
        quantity=10,
        deadline_hours=36,
        reward=350,
        penalty=50,
        reputation_reward=10,
        reputation_penalty=-5,
        description="The royal warehouse is short of cinnamon before the fleet sails.",
        difficulty=Difficulty.MEDIUM,
    ),
    ContractTemplate(
        client_id="arab_trader",
        client_name="Arab Trader",
        faction="old_routes",
        good="cloves",
        quantity=8,
        deadline_hours=30,
        reward=400,
        penalty=75,
        reputation_reward=10,
        reputation_penalty=-5,
        description="Cloves for a dhow bound for Hormuz.",
        difficulty=Difficulty.MEDIUM,
    ),
    ContractTemplate(
        client_id="spice_vendor_1",
        client_name="Spice Vendor",
        faction="free_traders",
        good="pepper",
        quantity=15,
        deadline_hours=24,
        reward=300,
        penalty=60,
        reputation_reward=8,
        reputation_penalty=-3,
        description="A market stall needs pepper before the festival.",
        difficulty=Difficulty.MEDIUM,
    ),
    ContractTemplate(
        client_id="luxury_merchant",
        client_name="Luxury Merchant",
        faction="free_traders",
        good="porcelain",
        quantity=12,
        deadline_hours=24,
        reward=600,
        penalty=150,
        reputation_reward=15,
        reputation_penalty=-10,
        description="A fidalgo's household wants a full porcelain service by tomorrow.",
        difficulty=Difficulty.HARD,
    ),
    ContractTemplate(
        client_id="yusuf_broker",
        client_name="Yusuf the Broker",
        faction="old_routes",
        good="silk",
        quantity=10,
        deadline_hours=18,
        reward=700,
        penalty=200,
        reputation_reward=15,
        reputation_penalty=-10,
        description="Yusuf has a buyer waiting and no patience for delay.",
        difficulty=Difficulty.HARD,
    ),
    ContractTemplate(
        client_id="bulk_merchant",
        client_name="Bulk Merchant",
        faction="free_traders",
        good="ginger",
        quantity=20,
        deadline_hours=20,
        reward=400,
        penalty=100,
        reputation_reward=12,
        reputation_penalty=-8,
        description="A ship's chandler needs ginger by the cartload.",
        difficulty=Difficulty.HARD,
    ),
]

# Hours of the day the board is restocked
REFRESH_HOURS = (7, 17)

BASE_BOARD_SIZE = 2
# Format: (unlock, board size) - last held unlock wins
BOARD_SIZE_UNLOCKS: list[tuple[str, int]] = [
    ("contracts", 3),
    ("special_contracts", 4),
    ("exclusive_contracts", 5),
]

BASE_MAX_ACTIVE = 3
SPECIAL_MAX_ACTIVE = 5

# Clients from factions below this won't offer work
MIN_CLIENT_REPUTATION = -30

# Format: (reputation above, reward multiplier) - first match wins
REWARD_SCALING: list[tuple[int, float]] = [
    (50, 1.2),
    (25, 1.1),
]

CANCEL_REPUTATION_PENALTY = -2


class ContractTracker:
    """Contract board, active contracts and deadline sweep."""

    def __init__(
        self,
        bus: EventBus,
        queries: GameQueries | None = None,
        templates: list[ContractTemplate] | None = None,
        rng: random.Random | None = None,
    ):
        self.bus = bus
        self.queries = queries or GameQueries()
        self.templates = list(templates if templates is not None else DEFAULT_TEMPLATES)
        self.rng = rng or random.Random()

        self._offers: list[ContractOffer] = []
        self._active: list[ActiveContract] = []
        self.completed_count = 0
        self.failed_count = 0
        self.total_offered = 0
        self.last_refresh_time: int | None = None

        bus.on(EventType.PLAYER_SELL, self._on_sell)
        bus.on(EventType.STATE_GATHER, self._on_gather)
        bus.on(EventType.STATE_RESTORE, self._on_restore)

    # -------------------------------------------------------------------------
    # Board
    # -------------------------------------------------------------------------

    def board_size(self) -> int:
        size = BASE_BOARD_SIZE
        for token, unlocked_size in BOARD_SIZE_UNLOCKS:
            if self.queries.has_unlock(token):
                size = unlocked_size
        return size

    def max_active(self) -> int:
        if self.queries.has_unlock("special_contracts"):
            return SPECIAL_MAX_ACTIVE
        return BASE_MAX_ACTIVE

    def _scaled_reward(self, template: ContractTemplate) -> int:
        reputation = self.queries.reputation(template.faction)
        for above, multiplier in REWARD_SCALING:
            if reputation > above:
                return int(template.reward * multiplier)
        return template.reward

    def refresh(self) -> list[ContractOffer]:
        """
        Restock the board.

        Draws offers without replacement from templates whose client faction
        will still deal with the player, scaling rewards by reputation.
        """
        eligible = [
            t for t in self.templates
            if self.queries.reputation(t.faction) >= MIN_CLIENT_REPUTATION
        ]
        drawn = self.rng.sample(eligible, min(self.board_size(), len(eligible)))

        self._offers = [
            ContractOffer(**t.model_dump(exclude={"reward"}), reward=self._scaled_reward(t))
            for t in drawn
        ]
        self.total_offered += len(self._offers)
        self.last_refresh_time = self.queries.now()

        logger.debug(f"Contract board refreshed with {len(self._offers)} offers")
        self.bus.emit(
            EventType.CONTRACTS_REFRESHED,
            contracts=[o.id for o in self._offers],
        )
        return list(self._offers)

    def available_contracts(self) -> list[ContractOffer]:
        return list(self._offers)

    def active_contracts(self) -> list[ActiveContract]:
        return [c for c in self._active if c.status == ContractStatus.ACTIVE]

    def get_contract(self, contract_id: str) -> ActiveContract | None:
        return next((c for c in self._active if c.id == contract_id), None)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def accept(self, contract_id: str) -> ActionOutcome:
        """Take an offer off the board and start its deadline."""
        offer = next((o for o in self._offers if o.id == contract_id), None)
        if offer is None:
            logger.warning(f"Cannot accept unknown contract: {contract_id}")
            return ActionOutcome.refused(f"No contract {contract_id} on the board")

        limit = self.max_active()
        if len(self.active_contracts()) >= limit:
            notify(
                self.bus,
                "Too Many Contracts",
                f"You can only hold {limit} contracts at once.",
                NoticeSeverity.WARNING,
            )
            return ActionOutcome.refused(f"Already holding {limit} active contracts")

        now = self.queries.now()
        contract = ActiveContract(
            **offer.model_dump(),
            accepted_at=now,
            expires_at=now + offer.deadline_hours,
        )
        self._offers.remove(offer)
        self._active.append(contract)

        logger.info(f"Contract accepted: {contract.quantity} {contract.good} for {contract.client_name}")
        self.bus.emit(
            EventType.CONTRACT_ACCEPTED,
            contract_id=contract.id,
            client_id=contract.client_id,
            good=contract.good,
            quantity=contract.quantity,
            expires_at=contract.expires_at,
        )
        notify(
            self.bus,
            "Contract Accepted",
            f"Deliver {contract.quantity} {contract.good} to {contract.client_name} "
            f"within {contract.deadline_hours} hours.",
        )
        return ActionOutcome.accepted(contract.id)

    def deliver_goods(self, contract_id: str, quantity: int) -> bool:
        """
        Count goods toward a contract.

        Completes the contract, paying out, on the delivery that brings the
        total to the requested quantity.
        """
        contract = self.get_contract(contract_id)
        if contract is None or contract.status != ContractStatus.ACTIVE:
            logger.warning(f"Cannot deliver to contract {contract_id}: not active")
            return False
        if quantity <= 0:
            logger.warning(f"Cannot deliver {quantity} goods to contract {contract_id}")
            return False

        contract.delivered += quantity
        if contract.delivered >= contract.quantity:
            self._complete(contract)
        else:
            self.bus.emit(
                EventType.CONTRACT_PROGRESS,
                contract_id=contract.id,
                delivered=contract.delivered,
                quantity=contract.quantity,
            )
        return True

    def cancel(self, contract_id: str) -> bool:
        """Walk away from a contract. No gold penalty, but the client remembers."""
        contract = self.get_contract(contract_id)
        if contract is None or contract.status != ContractStatus.ACTIVE:
            logger.warning(f"Cannot cancel contract {contract_id}: not active")
            return False

        contract.status = ContractStatus.FAILED
        self.failed_count += 1
        self._active.remove(contract)
        self.bus.emit(
            EventType.REPUTATION_GRANT,
            faction=contract.faction,
            amount=CANCEL_REPUTATION_PENALTY,
        )
        self.bus.emit(EventType.CONTRACT_CANCELED, contract_id=contract.id, client_id=contract.client_id)
        notify(
            self.bus,
            "Contract Cancelled",
            f"{contract.client_name} will remember this.",
            NoticeSeverity.WARNING,
        )
        return True

    def _complete(self, contract: ActiveContract) -> None:
        contract.status = ContractStatus.COMPLETED
        self.completed_count += 1
        self._active.remove(contract)

        logger.info(f"Contract completed for {contract.client_name}: +{contract.reward} gold")
        self.bus.emit(EventType.GOLD_CHANGED, amount=contract.reward)
        if contract.reputation_reward:
            self.bus.emit(
                EventType.REPUTATION_GRANT,
                faction=contract.faction,
                amount=contract.reputation_reward,
            )
        self.bus.emit(
            EventType.CONTRACT_COMPLETED,
            contract_id=contract.id,
            client_id=contract.client_id,
            reward=contract.reward,
        )
        notify(
            self.bus,
            "Contract Complete",
            f"{contract.client_name} paid {contract.reward} gold.",
            NoticeSeverity.SUCCESS,
        )

    def _fail(self, contract: ActiveContract) -> None:
        contract.status = ContractStatus.FAILED
        self.failed_count += 1
        self._active.remove(contract)

        logger.info(f"Contract expired for {contract.client_name}")
        if contract.penalty:
            self.bus.emit(EventType.GOLD_CHANGED, amount=-contract.penalty)
        if contract.reputation_penalty:
            self.bus.emit(
                EventType.REPUTATION_GRANT,
                faction=contract.faction,
                amount=contract.reputation_penalty,
            )
        self.bus.emit(
            EventType.CONTRACT_FAILED,
            contract_id=contract.id,
            client_id=contract.client_id,
            penalty=contract.penalty,
        )
        notify(
            self.bus,
            "Contract Failed",
            f"The deadline for {contract.client_name} has passed.",
            NoticeSeverity.CRITICAL,
        )

    # -------------------------------------------------------------------------
    # Clock
    # -------------------------------------------------------------------------

    def on_hour(self, now: int, hour: int) -> None:
        """Fail expired contracts, then restock the board at refresh hours."""
        for contract in self.active_contracts():
            if now >= contract.expires_at:
                self._fail(contract)

        if hour in REFRESH_HOURS and self.last_refresh_time != now:
            self.refresh()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def time_remaining(self, contract_id: str) -> int:
        contract = self.get_contract(contract_id)
        if contract is None:
            return 0
        return max(0, contract.expires_at - self.queries.now())

    def progress(self, contract_id: str) -> float:
        """Fraction delivered, 0.0 to 1.0."""
        contract = self.get_contract(contract_id)
        if contract is None:
            return 0.0
        return min(1.0, contract.delivered / contract.quantity)

    def stats(self) -> dict:
        finished = self.completed_count + self.failed_count
        return {
            "completed": self.completed_count,
            "failed": self.failed_count,
            "active": len(self.active_contracts()),
            "total_offered": self.total_offered,
            "success_rate": round(100 * self.completed_count / finished) if finished else 0,
        }

    # -------------------------------------------------------------------------
    # Event handlers
    # -------------------------------------------------------------------------

    def _on_sell(self, event) -> None:
        good = event.data["good"]
        # First accepted wins; one sale never feeds two contracts
        for contract in self.active_contracts():
            if contract.good == good:
                self.deliver_goods(contract.id, int(event.data.get("quantity", 1)))
                break

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def snapshot(self) -> ContractsSection:
        return ContractsSection(
            active=[c.model_copy(deep=True) for c in self._active],
            completed_count=self.completed_count,
            failed_count=self.failed_count,
            total_offered=self.total_offered,
            last_refresh_time=self.last_refresh_time,
        )

    def restore(self, section: ContractsSection) -> None:
        self._active = [c.model_copy(deep=True) for c in section.active]
        self.completed_count = section.completed_count
        self.failed_count = section.failed_count
        # The board itself isn't saved; restock it without counting the offers
        self.refresh()
        self.total_offered = section.total_offered
        self.last_refresh_time = section.last_refresh_time

    def _on_gather(self, event) -> None:
        self.bus.emit(
            EventType.STATE_SECTION,
            system="contracts",
            data=self.snapshot().model_dump(mode="json"),
        )

    def _on_restore(self, event) -> None:
        envelope: SaveEnvelope = event.data["envelope"]
        self.restore(ContractsSection.model_validate(envelope.contracts))
