"""
Bid Ledger - Business Logic Layer

Travelers propose prices on bidding-enabled shipments; the sender accepts
exactly one. Acceptance locks the shipment and rejects every other pending
bid in the same store transaction.
"""

import logging
from typing import List, Optional

from core.config import MarketplaceConfig

from .events import MarketplaceEventType, publish_bid_event, publish_shipment_event
from .models import (
    Bid,
    BidAcceptance,
    BidStatus,
    NotificationKind,
    Shipment,
    ShipmentStatus,
)
from .notifier import Notifier
from .protocols import (
    AlreadyTakenError,
    BidStaleError,
    EventBusProtocol,
    MarketplaceRepositoryProtocol,
    NotAuthorizedError,
    NotEligibleError,
    NotFoundError,
    ShipmentStateConflictError,
    ShipmentUnavailableError,
    TerminalStateError,
)
from .results import as_result, require_positive_amount

logger = logging.getLogger(__name__)


class BidService:
    """
    Bid Ledger

    Every public method returns a MarketplaceResult.
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

    # ====================
    # Traveler side
    # ====================

    @as_result
    async def create_bid(self, shipment_id: str, traveler_id: str, price) -> Bid:
        """
        Place a pending bid.

        The duplicate and limit checks are repeated by the repository under
        the shipment row lock; the pre-checks here only give early answers.
        """
        offered_price = require_positive_amount(price, "offered_price")
        shipment = await self._require_shipment(shipment_id)

        if shipment.sender_id == traveler_id:
            raise NotEligibleError("You cannot bid on your own shipment")
        if shipment.status != ShipmentStatus.PENDING:
            raise NotEligibleError("Shipment is no longer open for bidding")
        if not shipment.bidding_enabled:
            raise NotEligibleError("Bidding is not enabled for this shipment")

        bid = await self.repository.create_bid(
            shipment_id, traveler_id, offered_price, self.config.max_bids_per_traveler
        )
        logger.info(f"Bid {bid.bid_id} placed on {shipment_id} by {traveler_id}: {offered_price}")

        if self.event_bus:
            await publish_bid_event(
                self.event_bus, MarketplaceEventType.BID_CREATED, bid, sender_id=shipment.sender_id
            )
        return bid

    @as_result
    async def withdraw_bid(self, bid_id: str, traveler_id: str) -> Bid:
        bid = await self._require_bid(bid_id)
        if bid.traveler_id != traveler_id:
            raise NotAuthorizedError("You can only withdraw your own bids")
        if bid.status != BidStatus.PENDING:
            raise BidStaleError("Bid is no longer pending")

        updated = await self.repository.set_bid_status(
            bid_id, BidStatus.PENDING.value, BidStatus.WITHDRAWN.value, traveler_id=traveler_id
        )
        if updated is None:
            raise BidStaleError("Bid is no longer pending")

        if self.event_bus:
            await publish_bid_event(self.event_bus, MarketplaceEventType.BID_WITHDRAWN, updated)
        return updated

    @as_result
    async def accept_initial_price(self, shipment_id: str, traveler_id: str) -> BidAcceptance:
        """Take the shipment at its asking price without a pending bid"""
        shipment = await self._require_shipment(shipment_id)

        if shipment.sender_id == traveler_id:
            raise NotEligibleError("You cannot accept your own shipment")
        if not shipment.auto_accept_initial_price:
            raise NotEligibleError("This shipment does not accept its initial price directly")
        if shipment.is_terminal:
            raise TerminalStateError(f"Shipment is already {shipment.status.value}")
        if shipment.status != ShipmentStatus.PENDING:
            raise AlreadyTakenError("Shipment has already been taken")

        try:
            locked, bid, rejected = await self.repository.accept_initial_price(shipment_id, traveler_id)
        except ShipmentStateConflictError:
            raise AlreadyTakenError("Shipment has already been taken")

        logger.info(f"Initial price accepted on {shipment_id} by {traveler_id}")
        await self._publish_acceptance(locked, bid)
        return BidAcceptance(shipment=locked.redacted(), bid=bid, rejected_count=rejected)

    @as_result
    async def get_my_bids(self, traveler_id: str) -> List[Bid]:
        return await self.repository.list_bids_by_traveler(traveler_id)

    # ====================
    # Sender side
    # ====================

    @as_result
    async def accept_bid(self, bid_id: str, sender_id: str) -> BidAcceptance:
        bid = await self._require_bid(bid_id)
        shipment = await self._require_shipment(bid.shipment_id)

        if shipment.sender_id != sender_id:
            raise NotAuthorizedError("Only the sender can accept bids on this shipment")
        if shipment.status != ShipmentStatus.PENDING:
            raise ShipmentUnavailableError("Shipment is no longer available")
        if bid.status != BidStatus.PENDING:
            raise BidStaleError("Bid is no longer pending")

        try:
            locked, accepted, rejected = await self.repository.accept_bid(bid_id)
        except ShipmentStateConflictError:
            raise ShipmentUnavailableError("Shipment is no longer available")

        logger.info(
            f"Bid {bid_id} accepted on {locked.shipment_id} at {accepted.offered_price}; "
            f"{rejected} other bid(s) rejected"
        )
        await self._publish_acceptance(locked, accepted)

        if self.notifier:
            self.notifier.dispatch(
                NotificationKind.BID_ACCEPTED,
                accepted.traveler_id,
                {
                    "shipment_id": locked.shipment_id,
                    "shipment_title": locked.title,
                    "offered_price": str(accepted.offered_price),
                },
            )
        return BidAcceptance(shipment=locked, bid=accepted, rejected_count=rejected)

    @as_result
    async def reject_bid(self, bid_id: str, sender_id: str) -> Bid:
        bid = await self._require_bid(bid_id)
        shipment = await self._require_shipment(bid.shipment_id)

        if shipment.sender_id != sender_id:
            raise NotAuthorizedError("Only the sender can reject bids on this shipment")
        if bid.status != BidStatus.PENDING:
            raise BidStaleError("Bid is no longer pending")

        updated = await self.repository.set_bid_status(
            bid_id, BidStatus.PENDING.value, BidStatus.REJECTED.value
        )
        if updated is None:
            raise BidStaleError("Bid is no longer pending")

        if self.event_bus:
            await publish_bid_event(
                self.event_bus, MarketplaceEventType.BID_REJECTED, updated, sender_id=sender_id
            )
        return updated

    @as_result
    async def reject_all_bids(self, shipment_id: str, sender_id: str) -> dict:
        shipment = await self._require_shipment(shipment_id)
        if shipment.sender_id != sender_id:
            raise NotAuthorizedError("Only the sender can reject bids on this shipment")

        rejected = await self.repository.reject_pending_bids(shipment_id)
        logger.info(f"Rejected {rejected} pending bid(s) on {shipment_id}")
        return {"shipment_id": shipment_id, "rejected_count": rejected}

    @as_result
    async def get_shipment_bids(self, shipment_id: str, sender_id: str) -> List[Bid]:
        shipment = await self._require_shipment(shipment_id)
        if shipment.sender_id != sender_id:
            raise NotAuthorizedError("Only the sender can view bids on this shipment")
        return await self.repository.list_bids_for_shipment(shipment_id)

    # ====================
    # Helpers
    # ====================

    async def _require_shipment(self, shipment_id: str) -> Shipment:
        shipment = await self.repository.get_shipment(shipment_id)
        if shipment is None:
            raise NotFoundError(f"Shipment not found: {shipment_id}")
        return shipment

    async def _require_bid(self, bid_id: str) -> Bid:
        bid = await self.repository.get_bid(bid_id)
        if bid is None:
            raise NotFoundError(f"Bid not found: {bid_id}")
        return bid

    async def _publish_acceptance(self, shipment: Shipment, bid: Bid):
        if not self.event_bus:
            return
        await publish_bid_event(
            self.event_bus, MarketplaceEventType.BID_ACCEPTED, bid, sender_id=shipment.sender_id
        )
        await publish_shipment_event(self.event_bus, MarketplaceEventType.SHIPMENT_ACCEPTED, shipment)
