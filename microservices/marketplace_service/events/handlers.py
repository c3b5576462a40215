"""
Marketplace Service Event Handlers

Live change feeds for clients watching a shipment or an actor, and
handlers for events from other services.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

MARKETPLACE_WILDCARD = "marketplace.>"
ACTOR_FIELDS = ("sender_id", "traveler_id", "user_id")


def extract_event_data(event_or_data: Union[Dict[str, Any], Any]) -> Dict[str, Any]:
    """
    Extract data from either an Event object or a raw dict.

    Handles both:
    - Event objects with .data attribute (from NATS)
    - Raw dict (for testing or direct calls)
    """
    if hasattr(event_or_data, 'data'):
        return event_or_data.data
    return event_or_data


def shipment_subject_pattern(shipment_id: str) -> str:
    """marketplace.<entity>.<action>.<shipment_id>"""
    return f"marketplace.*.*.{shipment_id}"


def event_involves_actor(event_or_data: Union[Dict[str, Any], Any], actor_id: str) -> bool:
    """True when the actor appears on either side of the event payload"""
    data = extract_event_data(event_or_data) or {}
    return any(data.get(field) == actor_id for field in ACTOR_FIELDS)


# ============================================================================
# Change Feed Subscriptions
# ============================================================================


async def subscribe_shipment_updates(
    event_bus, shipment_id: str, handler: Callable[[Any], Awaitable[None]]
) -> Optional[str]:
    """
    Subscribe to every shipment and bid change for one shipment.

    Returns:
        Subscription id for event_bus.unsubscribe, or None on failure
    """
    pattern = shipment_subject_pattern(shipment_id)
    subscription_id = await event_bus.subscribe_to_events(pattern, handler)
    if subscription_id is None:
        logger.warning(f"Could not subscribe to updates for shipment {shipment_id}")
    return subscription_id


async def subscribe_actor_updates(
    event_bus, actor_id: str, handler: Callable[[Any], Awaitable[None]]
) -> Optional[str]:
    """
    Subscribe to every marketplace change involving actor_id as sender,
    traveler or wallet owner.

    Subjects are keyed by entity, so the actor filter runs on the payload.
    """

    async def _filtered(event):
        if event_involves_actor(event, actor_id):
            await handler(event)

    subscription_id = await event_bus.subscribe_to_events(MARKETPLACE_WILDCARD, _filtered)
    if subscription_id is None:
        logger.warning(f"Could not subscribe to updates for actor {actor_id}")
    return subscription_id


# ============================================================================
# Event Handlers
# ============================================================================


async def handle_user_created(event_or_data: Union[Dict[str, Any], Any], escrow_service=None):
    """
    Handle user.created event from the identity provider

    Opens an empty wallet so the user can post shipments and bid.

    Event data:
        - user_id: User ID
        - email: User email
        - name: User display name
    """
    try:
        event_data = extract_event_data(event_or_data)
        user_id = event_data.get("user_id")

        if not user_id:
            logger.warning("user.created event missing user_id")
            return

        logger.info(f"Processing user.created for user {user_id}")

        if escrow_service:
            result = await escrow_service.register_user(
                user_id=user_id,
                email=event_data.get("email"),
                full_name=event_data.get("name") or event_data.get("full_name"),
            )
            if not result.success:
                logger.error(f"Failed to open wallet for user {user_id}: {result.message}")

    except Exception as e:
        logger.error(f"Error handling user.created event: {e}")


def get_event_handlers(escrow_service=None) -> Dict[str, Callable]:
    """
    Return a mapping of event subjects to handler functions

    Used in main.py to register durable subscriptions.

    Events subscribed:
        - user.created: open the user's wallet
    """
    return {
        "user.created": lambda event: handle_user_created(event, escrow_service),
    }
