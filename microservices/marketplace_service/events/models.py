"""
Marketplace Service Event Models

Event data models for shipment, bid and wallet lifecycle events.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

# =============================================================================
# Event Type Definitions (Service-Specific)
# =============================================================================

class MarketplaceEventType(str, Enum):
    """
    Events published by marketplace_service.

    Stream: MARKETPLACE
    Subjects: marketplace.> (wire subject is "<type>.<entity key>")
    """
    SHIPMENT_CREATED = "marketplace.shipment.created"
    SHIPMENT_ACCEPTED = "marketplace.shipment.accepted"
    SHIPMENT_PICKED_UP = "marketplace.shipment.picked_up"
    SHIPMENT_DELIVERED = "marketplace.shipment.delivered"
    SHIPMENT_CANCELLED = "marketplace.shipment.cancelled"
    SHIPMENT_RELEASED = "marketplace.shipment.released"

    BID_CREATED = "marketplace.bid.created"
    BID_WITHDRAWN = "marketplace.bid.withdrawn"
    BID_REJECTED = "marketplace.bid.rejected"
    BID_ACCEPTED = "marketplace.bid.accepted"

    WALLET_TOPPED_UP = "marketplace.wallet.topped_up"
    WALLET_PENALTY_APPLIED = "marketplace.wallet.penalty_applied"

    RATING_SUBMITTED = "marketplace.rating.submitted"


class MarketplaceStreamConfig:
    """Stream configuration for marketplace_service"""
    STREAM_NAME = "MARKETPLACE"
    SUBJECTS = ["marketplace.>"]
    MAX_MESSAGES = 100000
    CONSUMER_PREFIX = "marketplace"


# ============================================================================
# Shipment Event Models
# ============================================================================


class ShipmentEventData(BaseModel):
    """
    Event: marketplace.shipment.{created,accepted,picked_up,delivered,released}
    Carries both actors so feeds can be filtered by either side
    """

    shipment_id: str = Field(..., description="Shipment ID")
    sender_id: str = Field(..., description="Posting user")
    traveler_id: Optional[str] = Field(None, description="Assigned traveler, if any")
    status: str = Field(..., description="Shipment status after the change")
    offer_price: Decimal = Field(..., description="Current authoritative price")
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "shipment_id": "shp_3f9a1c2b4d5e6f70",
                "sender_id": "usr_sender",
                "traveler_id": "usr_traveler",
                "status": "accepted",
                "offer_price": "110.00",
                "timestamp": "2025-12-18T10:00:00Z",
            }
        }


class ShipmentCancelledEventData(BaseModel):
    """
    Event: marketplace.shipment.cancelled
    Triggered by either actor; a traveler cancellation returns the shipment to pending
    """

    shipment_id: str = Field(..., description="Shipment ID")
    sender_id: str = Field(..., description="Posting user")
    traveler_id: Optional[str] = Field(None, description="Traveler at the time of cancellation")
    cancelled_by: str = Field(..., description="Actor who cancelled")
    canceller_role: str = Field(..., description="sender or traveler")
    status: str = Field(..., description="Shipment status after cancellation")
    penalty: Decimal = Field(..., description="Penalty moved from canceller to counterparty")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


# ============================================================================
# Bid Event Models
# ============================================================================


class BidEventData(BaseModel):
    """
    Event: marketplace.bid.{created,withdrawn,rejected,accepted}
    """

    bid_id: str = Field(..., description="Bid ID")
    shipment_id: str = Field(..., description="Shipment the bid is on")
    sender_id: Optional[str] = Field(None, description="Shipment owner")
    traveler_id: str = Field(..., description="Bidding traveler")
    offered_price: Decimal = Field(..., description="Proposed price")
    status: str = Field(..., description="Bid status after the change")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


# ============================================================================
# Wallet Event Models
# ============================================================================


class WalletEventData(BaseModel):
    """
    Event: marketplace.wallet.{topped_up,penalty_applied}
    """

    user_id: str = Field(..., description="Wallet owner")
    shipment_id: Optional[str] = Field(None, description="Related shipment, for penalties")
    transaction_type: str = Field(..., description="Ledger entry kind")
    amount: Decimal = Field(..., description="Signed amount applied to the balance")
    balance_after: Optional[Decimal] = Field(None, description="Balance after the movement")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


# ============================================================================
# Rating Event Models
# ============================================================================


class RatingEventData(BaseModel):
    """
    Event: marketplace.rating.submitted
    """

    rating_id: str = Field(..., description="Rating ID")
    shipment_id: str = Field(..., description="Rated shipment")
    sender_id: str = Field(..., description="Rating sender")
    traveler_id: str = Field(..., description="Rated traveler")
    rating: int = Field(..., description="Score from 1 to 5")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


# ============================================================================
# Helper Functions
# ============================================================================


def create_shipment_event_data(shipment) -> ShipmentEventData:
    """Create shipment event data from a Shipment"""
    return ShipmentEventData(
        shipment_id=shipment.shipment_id,
        sender_id=shipment.sender_id,
        traveler_id=shipment.traveler_id,
        status=shipment.status.value,
        offer_price=shipment.offer_price,
    )


def create_bid_event_data(bid, sender_id: Optional[str] = None) -> BidEventData:
    """Create bid event data from a Bid"""
    return BidEventData(
        bid_id=bid.bid_id,
        shipment_id=bid.shipment_id,
        sender_id=sender_id,
        traveler_id=bid.traveler_id,
        offered_price=bid.offered_price,
        status=bid.status.value,
    )
