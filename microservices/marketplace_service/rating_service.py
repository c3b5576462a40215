"""
Traveler Ratings - Business Logic Layer

Senders rate the traveler once a shipment is delivered. One rating per
shipment; a traveler's profile shows the average and the latest ratings.
"""

import logging
import uuid
from typing import Optional

from .events import publish_rating_event
from .models import Rating, ShipmentStatus, TravelerRatingSummary
from .protocols import (
    EventBusProtocol,
    MarketplaceRepositoryProtocol,
    MarketplaceValidationError,
    NotAuthorizedError,
    NotEligibleError,
    NotFoundError,
)
from .results import as_result

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
RECENT_RATINGS_LIMIT = 10


def _validate_score(value) -> int:
    if isinstance(value, bool):
        raise MarketplaceValidationError("rating must be a whole number from 1 to 5")
    try:
        score = int(value)
    except (TypeError, ValueError):
        raise MarketplaceValidationError("rating must be a whole number from 1 to 5")
    if score != value or not MIN_RATING <= score <= MAX_RATING:
        raise MarketplaceValidationError("rating must be a whole number from 1 to 5")
    return score


class RatingService:
    """Sender-to-traveler ratings"""

    def __init__(
        self,
        repository: MarketplaceRepositoryProtocol,
        event_bus: Optional[EventBusProtocol] = None,
    ):
        self.repository = repository
        self.event_bus = event_bus

    @as_result
    async def submit_rating(
        self, shipment_id: str, sender_id: str, rating, comment: Optional[str] = None
    ) -> Rating:
        """
        Rate the traveler who delivered a shipment.

        Only the shipment's sender may rate, only after delivery, and only
        once per shipment.
        """
        score = _validate_score(rating)

        shipment = await self.repository.get_shipment(shipment_id)
        if shipment is None:
            raise NotFoundError(f"Shipment not found: {shipment_id}")
        if shipment.sender_id != sender_id:
            raise NotAuthorizedError("Only the sender can rate this shipment")
        if shipment.status != ShipmentStatus.DELIVERED:
            raise NotEligibleError("Can only rate delivered shipments")
        if not shipment.traveler_id:
            raise NotEligibleError("No traveler assigned to this shipment")

        comment = (comment or "").strip() or None
        stored = await self.repository.create_rating(Rating(
            rating_id=f"rat_{uuid.uuid4().hex[:16]}",
            shipment_id=shipment_id,
            sender_id=sender_id,
            traveler_id=shipment.traveler_id,
            rating=score,
            comment=comment,
        ))
        logger.info(f"Shipment {shipment_id} rated {score} by {sender_id}")

        if self.event_bus:
            await publish_rating_event(self.event_bus, stored)
        return stored

    @as_result
    async def get_rating(self, shipment_id: str) -> Rating:
        rating = await self.repository.get_rating_for_shipment(shipment_id)
        if rating is None:
            raise NotFoundError(f"No rating for shipment {shipment_id}")
        return rating

    @as_result
    async def get_traveler_ratings(self, traveler_id: str) -> TravelerRatingSummary:
        count, average = await self.repository.get_traveler_rating_stats(traveler_id)
        recent = await self.repository.list_traveler_ratings(traveler_id, limit=RECENT_RATINGS_LIMIT)
        return TravelerRatingSummary(
            traveler_id=traveler_id,
            rating_count=count,
            average_rating=average,
            recent=recent,
        )
