"""
Escrow & Penalty Ledger - Business Logic Layer

Cancellation penalties move money from the canceller's wallet to the
counterparty's in the same store transaction as the status change. Also
owns wallet top-ups, balances and the ledger history.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from core.config import MarketplaceConfig

from .events import (
    MarketplaceEventType,
    publish_shipment_cancelled,
    publish_wallet_event,
)
from .models import (
    ActorRole,
    CancellationOutcome,
    NotificationKind,
    ShipmentStatus,
    TERMINAL_STATUSES,
    UserWallet,
    WalletTransaction,
    WalletTransactionType,
    quantize_money,
)
from .notifier import Notifier
from .protocols import (
    AlreadyTakenError,
    EventBusProtocol,
    InsufficientFundsError,
    MarketplaceRepositoryProtocol,
    NotAuthorizedError,
    NotFoundError,
    ShipmentStateConflictError,
    TerminalStateError,
)
from .results import as_result, require_positive_amount

logger = logging.getLogger(__name__)


def compute_penalty(
    offer_price: Decimal,
    status: ShipmentStatus,
    rates: Optional[Dict[str, Decimal]] = None,
) -> Decimal:
    """
    Penalty owed for cancelling at the given status.

    Raises:
        TerminalStateError: delivered or cancelled shipments cannot be cancelled
    """
    status = ShipmentStatus(status)
    if status in TERMINAL_STATUSES:
        raise TerminalStateError(f"Shipment is already {status.value}")

    rates = rates if rates is not None else MarketplaceConfig().penalty_rates
    rate = Decimal(str(rates.get(status.value, 0)))
    return quantize_money(Decimal(str(offer_price)) * rate)


class EscrowService:
    """
    Escrow & Penalty Ledger

    Every public method returns a MarketplaceResult, except compute_penalty
    which is a plain calculation.
    """

    def __init__(
        self,
        repository: MarketplaceRepositoryProtocol,
        event_bus: Optional[EventBusProtocol] = None,
        notifier: Optional[Notifier] = None,
        config: Optional[MarketplaceConfig] = None,
    ):
        self.repository = repository
        self.event_bus = event_bus
        self.notifier = notifier
        self.config = config or MarketplaceConfig()

    def compute_penalty(self, offer_price: Decimal, status: ShipmentStatus) -> Decimal:
        return compute_penalty(offer_price, status, self.config.penalty_rates)

    # ====================
    # Cancellation
    # ====================

    @as_result
    async def cancel(
        self, shipment_id: str, actor_id: str, role: Optional[ActorRole] = None
    ) -> CancellationOutcome:
        """
        Cancel a shipment on behalf of its sender or its traveler.

        A traveler cancellation puts the shipment back in the open pool; a
        sender cancellation ends it. The canceller pays the penalty to the
        other party.
        """
        shipment = await self.repository.get_shipment(shipment_id)
        if shipment is None:
            raise NotFoundError(f"Shipment not found: {shipment_id}")

        if actor_id == shipment.sender_id:
            matched = ActorRole.SENDER
        elif shipment.traveler_id and actor_id == shipment.traveler_id:
            matched = ActorRole.TRAVELER
        else:
            raise NotAuthorizedError("You are not a party to this shipment")

        if role is not None and ActorRole(role) != matched:
            raise NotAuthorizedError(f"You are not the {ActorRole(role).value} of this shipment")

        if shipment.is_terminal:
            raise TerminalStateError(f"Shipment is already {shipment.status.value}")

        previous_traveler_id = shipment.traveler_id
        if matched == ActorRole.SENDER:
            counterparty_id = shipment.traveler_id
        else:
            counterparty_id = shipment.sender_id

        penalty = self.compute_penalty(shipment.offer_price, shipment.status)
        if counterparty_id is None:
            penalty = Decimal("0.00")

        if penalty > 0:
            wallet = await self.repository.get_user(actor_id)
            available = wallet.wallet_balance if wallet else Decimal("0.00")
            if available < penalty:
                raise InsufficientFundsError(
                    f"Insufficient balance to cover cancellation penalty of {penalty}",
                    available=available,
                    required=penalty,
                )

        try:
            updated, canceller_balance, counterparty_balance = await self.repository.cancel_shipment(
                shipment_id=shipment_id,
                expected_status=shipment.status,
                canceller_id=actor_id,
                counterparty_id=counterparty_id,
                penalty=penalty,
                by_traveler=matched == ActorRole.TRAVELER,
            )
        except ShipmentStateConflictError as e:
            if e.current_status in TERMINAL_STATUSES:
                raise TerminalStateError(f"Shipment is already {e.current_status.value}")
            raise AlreadyTakenError("Shipment changed while cancelling; reload and try again")

        logger.info(
            f"Shipment {shipment_id} cancelled by {matched.value} {actor_id} "
            f"from {shipment.status.value}, penalty {penalty}"
        )

        await self._publish_cancellation(
            updated, actor_id, matched, penalty, previous_traveler_id,
            counterparty_id, canceller_balance, counterparty_balance,
        )
        self._notify_cancellation(updated, matched, previous_traveler_id)

        return CancellationOutcome(
            shipment=updated if matched == ActorRole.SENDER else updated.redacted(),
            canceller_role=matched,
            penalty=penalty,
            canceller_balance=canceller_balance,
            counterparty_id=counterparty_id,
            counterparty_balance=counterparty_balance,
        )

    async def _publish_cancellation(
        self,
        shipment,
        actor_id: str,
        role: ActorRole,
        penalty: Decimal,
        previous_traveler_id: Optional[str],
        counterparty_id: Optional[str],
        canceller_balance: Optional[Decimal],
        counterparty_balance: Optional[Decimal],
    ):
        if not self.event_bus:
            return

        await publish_shipment_cancelled(
            self.event_bus, shipment, actor_id, role.value, penalty, traveler_id=previous_traveler_id
        )
        if penalty > 0:
            await publish_wallet_event(
                self.event_bus, MarketplaceEventType.WALLET_PENALTY_APPLIED, actor_id,
                WalletTransactionType.PENALTY_DEBIT.value, -penalty, canceller_balance, shipment.shipment_id,
            )
            if counterparty_id:
                await publish_wallet_event(
                    self.event_bus, MarketplaceEventType.WALLET_PENALTY_APPLIED, counterparty_id,
                    WalletTransactionType.PENALTY_CREDIT.value, penalty, counterparty_balance,
                    shipment.shipment_id,
                )

    def _notify_cancellation(self, shipment, role: ActorRole, previous_traveler_id: Optional[str]):
        if not self.notifier:
            return

        payload = {"shipment_id": shipment.shipment_id, "shipment_title": shipment.title}
        if role == ActorRole.SENDER and previous_traveler_id:
            self.notifier.dispatch(NotificationKind.SHIPMENT_CANCELLED_TO_TRAVELER, previous_traveler_id, payload)
        elif role == ActorRole.TRAVELER:
            self.notifier.dispatch(NotificationKind.SHIPMENT_RELEASED, shipment.sender_id, payload)

    # ====================
    # Wallet
    # ====================

    @as_result
    async def register_user(
        self, user_id: str, email: Optional[str] = None, full_name: Optional[str] = None
    ) -> UserWallet:
        wallet = await self.repository.upsert_user(user_id, email, full_name)
        logger.info(f"Wallet ready for user {user_id}")
        return wallet

    @as_result
    async def top_up_wallet(self, user_id: str, amount) -> UserWallet:
        """Simulated top-up; no payment provider is involved"""
        value = require_positive_amount(amount, "amount")

        wallet = await self.repository.top_up_wallet(user_id, value)
        if wallet is None:
            raise NotFoundError(f"Wallet not found for user {user_id}")

        logger.info(f"Wallet {user_id} topped up by {value}; balance {wallet.wallet_balance}")
        if self.event_bus:
            await publish_wallet_event(
                self.event_bus, MarketplaceEventType.WALLET_TOPPED_UP, user_id,
                WalletTransactionType.TOP_UP.value, value, wallet.wallet_balance,
            )
        return wallet

    @as_result
    async def get_wallet(self, user_id: str) -> UserWallet:
        wallet = await self.repository.get_user(user_id)
        if wallet is None:
            raise NotFoundError(f"Wallet not found for user {user_id}")
        return wallet

    @as_result
    async def get_wallet_transactions(self, user_id: str, limit: int = 50) -> List[WalletTransaction]:
        return await self.repository.list_wallet_transactions(user_id, limit=max(1, min(limit, 200)))
