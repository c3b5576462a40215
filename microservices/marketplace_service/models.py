"""
Marketplace Service Data Models

Shipments, bids, wallets and the derived trip view for the peer-to-peer
delivery marketplace, plus request/response models for the HTTP layer.
"""

from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator


CENTS = Decimal("0.01")


def quantize_money(value: Any) -> Decimal:
    """Normalize a monetary amount to two decimal places"""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


# ====================
# Enumerations
# ====================

class ShipmentStatus(str, Enum):
    """Shipment lifecycle states"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED})
ACTIVE_TRIP_STATUSES = frozenset({ShipmentStatus.ACCEPTED, ShipmentStatus.IN_TRANSIT})


class BidStatus(str, Enum):
    """Bid lifecycle states"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class ActorRole(str, Enum):
    """Which side of a shipment an actor is on"""
    SENDER = "sender"
    TRAVELER = "traveler"


class WalletTransactionType(str, Enum):
    """Wallet ledger entry kinds"""
    TOP_UP = "top_up"
    PENALTY_DEBIT = "penalty_debit"
    PENALTY_CREDIT = "penalty_credit"


class NotificationKind(str, Enum):
    """Outbound notification kinds"""
    BID_ACCEPTED = "bid_accepted"
    SHIPMENT_RELEASED = "shipment_released"
    SHIPMENT_CANCELLED_TO_TRAVELER = "shipment_cancelled_to_traveler"


class ErrorKind(str, Enum):
    """Stable error kinds carried by failed results"""
    NOT_AUTHENTICATED = "NotAuthenticated"
    NOT_AUTHORIZED = "NotAuthorized"
    NOT_FOUND = "NotFound"
    ALREADY_TAKEN = "AlreadyTaken"
    SHIPMENT_UNAVAILABLE = "ShipmentUnavailable"
    BID_STALE = "BidStale"
    DUPLICATE_PENDING = "DuplicatePending"
    LIMIT_EXCEEDED = "LimitExceeded"
    NOT_ELIGIBLE = "NotEligible"
    TERMINAL_STATE = "TerminalState"
    INVALID_TRANSITION = "InvalidTransition"
    ALREADY_RATED = "AlreadyRated"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    VALIDATION_ERROR = "ValidationError"
    UPSTREAM_UNAVAILABLE = "UpstreamUnavailable"
    INTERNAL_ERROR = "InternalError"


# ====================
# Core Data Models
# ====================

class GeoPoint(BaseModel):
    """WGS84 point, longitude first as on the wire"""
    lng: float = Field(..., ge=-180, le=180, description="Longitude")
    lat: float = Field(..., ge=-90, le=90, description="Latitude")


class Shipment(BaseModel):
    """
    Shipment model - a package delivery request posted by a sender.

    The row is the single source of truth for status; bids and wallet
    movements read through to it.
    """
    shipment_id: str = Field(..., min_length=1, description="Unique shipment identifier")
    sender_id: str = Field(..., min_length=1, description="Posting user")
    traveler_id: Optional[str] = Field(None, description="Assigned traveler, set while accepted/in transit/delivered")

    # Package
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    weight_kg: float = Field(..., gt=0)
    offer_price: Decimal = Field(..., description="Authoritative price; overwritten by an accepted bid")

    # Route endpoints
    pickup_address: Optional[str] = None
    dropoff_address: Optional[str] = None
    pickup_location: Optional[GeoPoint] = None
    dropoff_location: Optional[GeoPoint] = None

    # OTP gates (None when redacted for non-senders)
    pickup_otp: Optional[str] = None
    delivery_otp: Optional[str] = None

    # Pricing mode
    bidding_enabled: bool = False
    auto_accept_initial_price: bool = False

    # State
    status: ShipmentStatus = ShipmentStatus.PENDING
    accepted_bid_id: Optional[str] = None

    # Cancellation record (sender cancellations)
    cancelled_by: Optional[str] = None
    cancellation_penalty: Optional[Decimal] = None
    cancelled_at: Optional[datetime] = None

    # Timestamps
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def redacted(self) -> "Shipment":
        """Copy without OTPs, for anyone but the sender"""
        return self.model_copy(update={"pickup_otp": None, "delivery_otp": None})


class Bid(BaseModel):
    """Bid model - a traveler's proposed price for carrying a shipment"""
    bid_id: str = Field(..., min_length=1, description="Unique bid identifier")
    shipment_id: str = Field(..., min_length=1)
    traveler_id: str = Field(..., min_length=1)
    offered_price: Decimal = Field(..., gt=0)
    status: BidStatus = BidStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserWallet(BaseModel):
    """User wallet - the subset of the profile the marketplace core needs"""
    user_id: str = Field(..., min_length=1)
    email: Optional[str] = None
    full_name: Optional[str] = None
    wallet_balance: Decimal = Field(default=Decimal("0.00"), ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WalletTransaction(BaseModel):
    """Append-only wallet ledger entry"""
    transaction_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    shipment_id: Optional[str] = None
    transaction_type: WalletTransactionType
    amount: Decimal
    balance_after: Decimal
    created_at: Optional[datetime] = None


class Rating(BaseModel):
    """A sender's rating of the traveler who delivered their shipment"""
    rating_id: str = Field(..., min_length=1)
    shipment_id: str = Field(..., min_length=1)
    sender_id: str = Field(..., min_length=1)
    traveler_id: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    shipment_title: Optional[str] = None
    created_at: Optional[datetime] = None


class TravelerRatingSummary(BaseModel):
    """Aggregate over every rating a traveler received, with the latest few listed"""
    traveler_id: str
    rating_count: int = 0
    average_rating: Optional[Decimal] = None
    recent: List[Rating] = Field(default_factory=list)


class CancellationOutcome(BaseModel):
    """Result of a cancellation: the updated shipment and money moved"""
    shipment: Shipment
    canceller_role: ActorRole
    penalty: Decimal
    canceller_balance: Optional[Decimal] = None
    counterparty_id: Optional[str] = None
    counterparty_balance: Optional[Decimal] = None


class Trip(BaseModel):
    """Derived view over a traveler's shipments"""
    traveler_id: str
    current: List[Shipment] = Field(default_factory=list)
    past: List[Shipment] = Field(default_factory=list)

    @property
    def current_shipment_ids(self) -> List[str]:
        return [s.shipment_id for s in self.current]


class BidAcceptance(BaseModel):
    """Outcome of accepting a bid or the initial price"""
    shipment: Shipment
    bid: Bid
    rejected_count: int = 0


class TripRelease(BaseModel):
    """Bulk release outcome; released_count is authoritative"""
    requested_count: int
    released_count: int
    released_shipment_ids: List[str] = Field(default_factory=list)


class TripPlan(BaseModel):
    """Corridor-filtered shipments for a planned route"""
    route_available: bool
    recomputed: bool = False
    route: Optional[List[List[float]]] = None
    shipments: List[Shipment] = Field(default_factory=list)


class GeocodeResult(BaseModel):
    """A single geocoding hit"""
    lat: float
    lon: float
    display_name: str


class OtpVerification(BaseModel):
    """OTP gate outcome; never carries the code itself"""
    verified: bool
    shipment: Optional[Shipment] = None


# ====================
# Request Models
# ====================

class CreateShipmentRequest(BaseModel):
    """Request model for posting a shipment"""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    weight_kg: float = Field(..., description="Package weight in kilograms")
    offer_price: Decimal = Field(..., description="Asking price")
    pickup_address: Optional[str] = None
    dropoff_address: Optional[str] = None
    pickup_location: GeoPoint
    dropoff_location: GeoPoint
    bidding_enabled: bool = False
    auto_accept_initial_price: bool = False

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        """Validate title is not blank"""
        if not v or not v.strip():
            raise ValueError("title cannot be empty")
        return v.strip()


class PlaceBidRequest(BaseModel):
    """Request model for placing a bid"""
    offered_price: Decimal = Field(..., description="Proposed price, must be positive")


class OtpRequest(BaseModel):
    """Request model for pickup/delivery confirmation"""
    otp: str = Field(..., description="4-digit code supplied by the counterparty")


class CancelShipmentRequest(BaseModel):
    """Request model for cancellation; role is optional and cross-checked"""
    role: Optional[ActorRole] = None


class TripShipmentsRequest(BaseModel):
    """Request model for trip-level operations"""
    shipment_ids: List[str] = Field(..., description="Shipments the operation applies to")


class PlanTripRequest(BaseModel):
    """Request model for corridor search"""
    origin: Optional[GeoPoint] = None
    destination: Optional[GeoPoint] = None


class TopUpRequest(BaseModel):
    """Request model for a simulated wallet top-up"""
    amount: Decimal = Field(..., description="Amount to add, must be positive")


class SubmitRatingRequest(BaseModel):
    """Request model for rating a delivered shipment's traveler"""
    rating: int = Field(..., description="Score from 1 to 5")
    comment: Optional[str] = Field(None, max_length=1000)


class RegisterUserRequest(BaseModel):
    """Request model for syncing the caller's profile into the marketplace"""
    full_name: Optional[str] = Field(None, max_length=200)


# ====================
# Response Models
# ====================

class MarketplaceResult(BaseModel):
    """
    Discriminated operation result.

    success=True carries optional data; success=False carries a stable
    error kind and a human-readable message.
    """
    success: bool
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    data: Optional[Any] = None

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "MarketplaceResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: ErrorKind, message: str) -> "MarketplaceResult":
        return cls(success=False, error=error, message=message)


class HealthCheckResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    port: int
    version: str
    timestamp: str
    dependencies: dict = Field(default_factory=dict)
