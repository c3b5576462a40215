"""
Marketplace Service Event Publishers

Publish events for shipment, bid, wallet and rating changes.
Publishing is best effort: failures are logged and never raised.
"""

import logging
from decimal import Decimal
from typing import Optional

from core.nats_client import Event, ServiceSource

from .models import (
    MarketplaceEventType,
    RatingEventData,
    ShipmentCancelledEventData,
    WalletEventData,
    create_bid_event_data,
    create_shipment_event_data,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Shipment Event Publishers
# ============================================================================


async def publish_shipment_event(event_bus, event_type: MarketplaceEventType, shipment) -> bool:
    """
    Publish a marketplace.shipment.* event keyed by shipment id

    Args:
        event_bus: NATS event bus instance
        event_type: One of the SHIPMENT_* event types
        shipment: Shipment after the change
    """
    try:
        event_data = create_shipment_event_data(shipment)

        event = Event(
            event_type=event_type,
            source=ServiceSource.MARKETPLACE_SERVICE,
            data=event_data.model_dump(mode='json'),
            subject=shipment.shipment_id,
        )

        published = await event_bus.publish_event(event)
        logger.info(f"Published {event_type.value} for shipment {shipment.shipment_id}")
        return bool(published)

    except Exception as e:
        logger.error(f"Failed to publish {event_type.value}: {e}")
        return False


async def publish_shipment_cancelled(
    event_bus,
    shipment,
    cancelled_by: str,
    canceller_role: str,
    penalty: Decimal,
    traveler_id: Optional[str] = None,
) -> bool:
    """
    Publish marketplace.shipment.cancelled

    Args:
        event_bus: NATS event bus instance
        shipment: Shipment after cancellation
        cancelled_by: Actor who cancelled
        canceller_role: sender or traveler
        penalty: Penalty moved between wallets
        traveler_id: Traveler held before cancellation (cleared on traveler cancel)
    """
    try:
        event_data = ShipmentCancelledEventData(
            shipment_id=shipment.shipment_id,
            sender_id=shipment.sender_id,
            traveler_id=traveler_id or shipment.traveler_id,
            cancelled_by=cancelled_by,
            canceller_role=canceller_role,
            status=shipment.status.value,
            penalty=penalty,
        )

        event = Event(
            event_type=MarketplaceEventType.SHIPMENT_CANCELLED,
            source=ServiceSource.MARKETPLACE_SERVICE,
            data=event_data.model_dump(mode='json'),
            subject=shipment.shipment_id,
        )

        published = await event_bus.publish_event(event)
        logger.info(
            f"Published marketplace.shipment.cancelled for shipment {shipment.shipment_id} "
            f"by {canceller_role} (penalty {penalty})"
        )
        return bool(published)

    except Exception as e:
        logger.error(f"Failed to publish marketplace.shipment.cancelled: {e}")
        return False


# ============================================================================
# Bid Event Publishers
# ============================================================================


async def publish_bid_event(
    event_bus, event_type: MarketplaceEventType, bid, sender_id: Optional[str] = None
) -> bool:
    """
    Publish a marketplace.bid.* event keyed by the bid's shipment id

    Args:
        event_bus: NATS event bus instance
        event_type: One of the BID_* event types
        bid: Bid after the change
        sender_id: Shipment owner, so the sender's feed sees it
    """
    try:
        event_data = create_bid_event_data(bid, sender_id=sender_id)

        event = Event(
            event_type=event_type,
            source=ServiceSource.MARKETPLACE_SERVICE,
            data=event_data.model_dump(mode='json'),
            subject=bid.shipment_id,
        )

        published = await event_bus.publish_event(event)
        logger.info(f"Published {event_type.value} for bid {bid.bid_id}")
        return bool(published)

    except Exception as e:
        logger.error(f"Failed to publish {event_type.value}: {e}")
        return False


# ============================================================================
# Wallet Event Publishers
# ============================================================================


async def publish_wallet_event(
    event_bus,
    event_type: MarketplaceEventType,
    user_id: str,
    transaction_type: str,
    amount: Decimal,
    balance_after: Optional[Decimal] = None,
    shipment_id: Optional[str] = None,
) -> bool:
    """
    Publish a marketplace.wallet.* event keyed by user id

    Args:
        event_bus: NATS event bus instance
        event_type: WALLET_TOPPED_UP or WALLET_PENALTY_APPLIED
        user_id: Wallet owner
        transaction_type: Ledger entry kind
        amount: Signed amount
        balance_after: Balance after the movement
        shipment_id: Related shipment (penalties)
    """
    try:
        event_data = WalletEventData(
            user_id=user_id,
            shipment_id=shipment_id,
            transaction_type=transaction_type,
            amount=amount,
            balance_after=balance_after,
        )

        event = Event(
            event_type=event_type,
            source=ServiceSource.MARKETPLACE_SERVICE,
            data=event_data.model_dump(mode='json'),
            subject=user_id,
        )

        published = await event_bus.publish_event(event)
        logger.info(f"Published {event_type.value} for user {user_id}: {amount}")
        return bool(published)

    except Exception as e:
        logger.error(f"Failed to publish {event_type.value}: {e}")
        return False


# ============================================================================
# Rating Event Publishers
# ============================================================================


async def publish_rating_event(event_bus, rating) -> bool:
    """
    Publish marketplace.rating.submitted keyed by shipment id

    Args:
        event_bus: NATS event bus instance
        rating: Stored rating
    """
    try:
        event_data = RatingEventData(
            rating_id=rating.rating_id,
            shipment_id=rating.shipment_id,
            sender_id=rating.sender_id,
            traveler_id=rating.traveler_id,
            rating=rating.rating,
        )

        event = Event(
            event_type=MarketplaceEventType.RATING_SUBMITTED,
            source=ServiceSource.MARKETPLACE_SERVICE,
            data=event_data.model_dump(mode='json'),
            subject=rating.shipment_id,
        )

        published = await event_bus.publish_event(event)
        logger.info(f"Published marketplace.rating.submitted for shipment {rating.shipment_id}")
        return bool(published)

    except Exception as e:
        logger.error(f"Failed to publish marketplace.rating.submitted: {e}")
        return False
