"""
Marketplace Service Event Package

Event-driven architecture for the marketplace:
- Publishing: shipment, bid, wallet and rating changes on marketplace.>
- Subscription: per-shipment and per-actor live feeds, user.created
"""

from .models import (
    MarketplaceEventType,
    MarketplaceStreamConfig,
    ShipmentEventData,
    ShipmentCancelledEventData,
    BidEventData,
    WalletEventData,
    RatingEventData,
    create_shipment_event_data,
    create_bid_event_data,
)

from .publishers import (
    publish_shipment_event,
    publish_shipment_cancelled,
    publish_bid_event,
    publish_wallet_event,
    publish_rating_event,
)

from .handlers import (
    extract_event_data,
    event_involves_actor,
    shipment_subject_pattern,
    subscribe_shipment_updates,
    subscribe_actor_updates,
    handle_user_created,
    get_event_handlers,
)

__all__ = [
    # Event models
    "MarketplaceEventType",
    "MarketplaceStreamConfig",
    "ShipmentEventData",
    "ShipmentCancelledEventData",
    "BidEventData",
    "WalletEventData",
    "RatingEventData",
    # Helper functions
    "create_shipment_event_data",
    "create_bid_event_data",
    # Publishers
    "publish_shipment_event",
    "publish_shipment_cancelled",
    "publish_bid_event",
    "publish_wallet_event",
    "publish_rating_event",
    # Subscriptions / handlers
    "extract_event_data",
    "event_involves_actor",
    "shipment_subject_pattern",
    "subscribe_shipment_updates",
    "subscribe_actor_updates",
    "handle_user_created",
    "get_event_handlers",
]
