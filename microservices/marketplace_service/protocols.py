"""
Marketplace Service Protocols

Defines interfaces for dependency injection and testing.
Following the protocol-based architecture pattern.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from .models import (
    Bid,
    ErrorKind,
    GeocodeResult,
    NotificationKind,
    Rating,
    Shipment,
    ShipmentStatus,
    UserWallet,
    WalletTransaction,
)


# ====================
# Repository Protocol
# ====================


@runtime_checkable
class MarketplaceRepositoryProtocol(Protocol):
    """
    Repository interface for marketplace persistence.

    Every state transition is a compare-and-swap on the expected prior status.
    Methods that touch more than one row run as a single transaction and raise
    a MarketplaceError subclass (rolling back) when a guard fails.
    """

    # ---- users / wallets ----

    async def upsert_user(self, user_id: str, email: Optional[str], full_name: Optional[str]) -> UserWallet:
        """Create the wallet row if missing, refresh email/name otherwise"""
        ...

    async def get_user(self, user_id: str) -> Optional[UserWallet]:
        ...

    async def top_up_wallet(self, user_id: str, amount: Decimal) -> Optional[UserWallet]:
        """
        Credit a wallet and write a top_up ledger row.

        Returns:
            Updated wallet or None if the user does not exist
        """
        ...

    async def list_wallet_transactions(self, user_id: str, limit: int = 50) -> List[WalletTransaction]:
        ...

    # ---- shipments ----

    async def create_shipment(self, shipment: Shipment) -> Shipment:
        ...

    async def get_shipment(self, shipment_id: str) -> Optional[Shipment]:
        ...

    async def get_shipments_by_ids(self, shipment_ids: List[str]) -> List[Shipment]:
        ...

    async def list_pending_shipments(self, exclude_sender_id: Optional[str] = None) -> List[Shipment]:
        ...

    async def list_traveler_shipments(self, traveler_id: str) -> List[Shipment]:
        ...

    async def direct_accept(self, shipment_id: str, traveler_id: str) -> Optional[Shipment]:
        """
        Claim a non-bidding shipment.

        Guarded by status = 'pending' AND bidding_enabled = false.

        Returns:
            Updated shipment, or None when the guard matched no row
        """
        ...

    async def transition_status(
        self,
        shipment_id: str,
        traveler_id: str,
        from_status: ShipmentStatus,
        to_status: ShipmentStatus,
        stamp_field: str,
    ) -> Optional[Shipment]:
        """
        Compare-and-swap a traveler-driven transition and stamp a timestamp.

        Returns:
            Updated shipment, or None when the guard matched no row
        """
        ...

    async def cancel_shipment(
        self,
        shipment_id: str,
        expected_status: ShipmentStatus,
        canceller_id: str,
        counterparty_id: Optional[str],
        penalty: Decimal,
        by_traveler: bool,
    ) -> Tuple[Shipment, Optional[Decimal], Optional[Decimal]]:
        """
        Cancel atomically: debit canceller, credit counterparty, transition.

        Raises:
            InsufficientFundsError: canceller balance below penalty
            ShipmentStateConflictError: status changed since it was read

        Returns:
            (shipment, canceller_balance_after, counterparty_balance_after)
        """
        ...

    async def release_shipments(self, shipment_ids: List[str], traveler_id: str) -> List[Shipment]:
        """
        Release accepted shipments held by traveler_id back to the pool.

        Rows that no longer match the guard are skipped.

        Returns:
            Shipments actually released
        """
        ...

    # ---- bids ----

    async def get_bid(self, bid_id: str) -> Optional[Bid]:
        ...

    async def list_bids_for_shipment(self, shipment_id: str) -> List[Bid]:
        ...

    async def list_bids_by_traveler(self, traveler_id: str) -> List[Bid]:
        ...

    async def create_bid(
        self, shipment_id: str, traveler_id: str, offered_price: Decimal, max_bids: int
    ) -> Bid:
        """
        Insert a pending bid under the shipment row lock.

        Raises:
            NotEligibleError: shipment no longer pending or not bidding-enabled
            DuplicatePendingBidError: traveler already has a pending bid here
            BidLimitExceededError: traveler already placed max_bids bids here
        """
        ...

    async def set_bid_status(
        self, bid_id: str, from_status: str, to_status: str, traveler_id: Optional[str] = None
    ) -> Optional[Bid]:
        """Compare-and-swap a single bid's status"""
        ...

    async def reject_pending_bids(self, shipment_id: str) -> int:
        ...

    async def accept_bid(self, bid_id: str) -> Tuple[Shipment, Bid, int]:
        """
        Accept one bid and lock the shipment in one transaction.

        Raises:
            ShipmentStateConflictError: shipment no longer pending
            BidStaleError: bid no longer pending

        Returns:
            (shipment, bid, rejected_count)
        """
        ...

    async def accept_initial_price(self, shipment_id: str, traveler_id: str) -> Tuple[Shipment, Bid, int]:
        """
        Synthesize an accepted bid at offer_price and lock the shipment.

        Raises:
            ShipmentStateConflictError: shipment no longer pending or auto-accept off

        Returns:
            (shipment, bid, rejected_count)
        """
        ...

    # ---- ratings ----

    async def create_rating(self, rating: Rating) -> Rating:
        """
        Insert a rating; a shipment can be rated once.

        Raises:
            AlreadyRatedError: the shipment already has a rating
        """
        ...

    async def get_rating_for_shipment(self, shipment_id: str) -> Optional[Rating]:
        ...

    async def list_traveler_ratings(self, traveler_id: str, limit: int = 10) -> List[Rating]:
        """Newest first, with the shipment title attached"""
        ...

    async def get_traveler_rating_stats(self, traveler_id: str) -> Tuple[int, Optional[Decimal]]:
        """
        Returns:
            (rating_count, average_rating); the average is None without ratings
        """
        ...


# ====================
# Event Bus Protocol
# ====================


@runtime_checkable
class EventBusProtocol(Protocol):
    """Event bus interface for publishing events"""

    async def publish_event(self, event: Any) -> bool:
        ...


# ====================
# External Client Protocols
# ====================


@runtime_checkable
class RouteClientProtocol(Protocol):
    """Route computation service"""

    async def compute_route(
        self, origin_lng: float, origin_lat: float, dest_lng: float, dest_lat: float
    ) -> Optional[List[List[float]]]:
        """
        Returns:
            [lng, lat] vertices, or None when the service is unavailable
        """
        ...


@runtime_checkable
class GeocodingClientProtocol(Protocol):
    """Address resolution service"""

    async def search(self, text: str) -> List[GeocodeResult]:
        ...

    async def reverse(self, lat: float, lng: float) -> str:
        ...


@runtime_checkable
class NotificationClientProtocol(Protocol):
    """Outbound notification sink"""

    async def notify(self, kind: NotificationKind, recipient_email: str, payload: Dict[str, Any]) -> bool:
        ...


# ====================
# Custom Exceptions
# ====================


class MarketplaceError(Exception):
    """Base exception for marketplace errors"""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class NotAuthenticatedError(MarketplaceError):
    """Raised when no caller identity is available"""
    kind = ErrorKind.NOT_AUTHENTICATED


class NotAuthorizedError(MarketplaceError):
    """Raised when the caller is the wrong actor for the entity"""
    kind = ErrorKind.NOT_AUTHORIZED


class NotFoundError(MarketplaceError):
    """Raised when a shipment, bid or user does not exist"""
    kind = ErrorKind.NOT_FOUND


class AlreadyTakenError(MarketplaceError):
    """Raised when a pending→accepted compare-and-swap loses"""
    kind = ErrorKind.ALREADY_TAKEN


class ShipmentUnavailableError(MarketplaceError):
    """Raised when accepting a bid on a shipment that is no longer pending"""
    kind = ErrorKind.SHIPMENT_UNAVAILABLE


class BidStaleError(MarketplaceError):
    """Raised when a bid is no longer pending when acted upon"""
    kind = ErrorKind.BID_STALE


class DuplicatePendingBidError(MarketplaceError):
    """Raised when the traveler already has a pending bid on the shipment"""
    kind = ErrorKind.DUPLICATE_PENDING


class BidLimitExceededError(MarketplaceError):
    """Raised when the traveler used up their bids on the shipment"""
    kind = ErrorKind.LIMIT_EXCEEDED

    def __init__(self, message: str, limit: Optional[int] = None):
        super().__init__(message)
        self.limit = limit


class NotEligibleError(MarketplaceError):
    """Raised when the actor or shipment does not qualify for the operation"""
    kind = ErrorKind.NOT_ELIGIBLE


class TerminalStateError(MarketplaceError):
    """Raised when acting on a delivered or cancelled shipment"""
    kind = ErrorKind.TERMINAL_STATE


class InvalidTransitionError(MarketplaceError):
    """Raised when an OTP transition is attempted from the wrong status"""
    kind = ErrorKind.INVALID_TRANSITION


class InsufficientFundsError(MarketplaceError):
    """Raised when a wallet cannot cover a debit"""
    kind = ErrorKind.INSUFFICIENT_FUNDS

    def __init__(
        self,
        message: str,
        available: Optional[Decimal] = None,
        required: Optional[Decimal] = None,
    ):
        super().__init__(message)
        self.available = available
        self.required = required


class MarketplaceValidationError(MarketplaceError):
    """Raised for non-positive prices, malformed OTPs and other bad input"""
    kind = ErrorKind.VALIDATION_ERROR


class UpstreamUnavailableError(MarketplaceError):
    """Raised when the route or geocoding provider fails"""
    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class ShipmentStateConflictError(MarketplaceError):
    """
    Raised by the repository when a status compare-and-swap matched no row.

    Services translate it to AlreadyTaken, ShipmentUnavailable or
    TerminalState depending on the operation and the re-read status.
    """
    kind = ErrorKind.ALREADY_TAKEN

    def __init__(self, message: str, current_status: Optional[ShipmentStatus] = None):
        super().__init__(message)
        self.current_status = current_status


class AlreadyRatedError(MarketplaceError):
    """Raised when a shipment has already been rated"""
    kind = ErrorKind.ALREADY_RATED
