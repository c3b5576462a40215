"""
Trip Aggregation - Business Logic Layer

A trip is not stored: it is the set of shipments a traveler holds. Release
hands accepted shipments back to the open pool in one guarded bulk update.
"""

import logging
from typing import List, Optional

from .events import MarketplaceEventType, publish_shipment_event
from .models import (
    ACTIVE_TRIP_STATUSES,
    NotificationKind,
    ShipmentStatus,
    TERMINAL_STATUSES,
    Trip,
    TripRelease,
)
from .notifier import Notifier
from .protocols import (
    EventBusProtocol,
    MarketplaceRepositoryProtocol,
    NotEligibleError,
)
from .results import as_result

logger = logging.getLogger(__name__)


def _unique(shipment_ids: Optional[List[str]]) -> List[str]:
    seen = []
    for shipment_id in shipment_ids or []:
        if shipment_id and shipment_id not in seen:
            seen.append(shipment_id)
    return seen


class TripService:
    """Trip view and bulk release for travelers"""

    def __init__(
        self,
        repository: MarketplaceRepositoryProtocol,
        event_bus: Optional[EventBusProtocol] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.repository = repository
        self.event_bus = event_bus
        self.notifier = notifier

    @as_result
    async def get_trip(self, traveler_id: str) -> Trip:
        shipments = await self.repository.list_traveler_shipments(traveler_id)
        return Trip(
            traveler_id=traveler_id,
            current=[s.redacted() for s in shipments if s.status in ACTIVE_TRIP_STATUSES],
            past=[s.redacted() for s in shipments if s.status in TERMINAL_STATUSES],
        )

    @as_result
    async def can_modify(self, shipment_ids: List[str], traveler_id: str) -> bool:
        return await self._can_modify(shipment_ids, traveler_id)

    async def _can_modify(self, shipment_ids: List[str], traveler_id: str) -> bool:
        """Every shipment is held by the traveler and none has been picked up"""
        ids = _unique(shipment_ids)
        if not ids:
            return False

        shipments = await self.repository.get_shipments_by_ids(ids)
        if len(shipments) != len(ids):
            return False

        return all(
            s.traveler_id == traveler_id and s.status == ShipmentStatus.ACCEPTED
            for s in shipments
        )

    @as_result
    async def release_trip(self, shipment_ids: List[str], traveler_id: str) -> TripRelease:
        """
        Release accepted shipments back to the pool.

        Rows that progressed or changed hands are skipped; released_count is
        what actually happened.
        """
        return await self._release(shipment_ids, traveler_id)

    @as_result
    async def edit_trip(self, shipment_ids: List[str], traveler_id: str) -> TripRelease:
        """Release the trip so the traveler can re-plan it"""
        if not await self._can_modify(shipment_ids, traveler_id):
            raise NotEligibleError("Trip can only be edited before any pickup")
        return await self._release(shipment_ids, traveler_id)

    @as_result
    async def delete_trip(self, shipment_ids: List[str], traveler_id: str) -> TripRelease:
        if not await self._can_modify(shipment_ids, traveler_id):
            raise NotEligibleError("Trip can only be deleted before any pickup")
        return await self._release(shipment_ids, traveler_id)

    async def _release(self, shipment_ids: List[str], traveler_id: str) -> TripRelease:
        ids = _unique(shipment_ids)
        released = await self.repository.release_shipments(ids, traveler_id) if ids else []

        if len(released) != len(ids):
            logger.warning(
                f"Trip release for {traveler_id}: {len(released)} of {len(ids)} shipment(s) released"
            )
        else:
            logger.info(f"Trip release for {traveler_id}: {len(released)} shipment(s) released")

        for shipment in released:
            if self.event_bus:
                await publish_shipment_event(self.event_bus, MarketplaceEventType.SHIPMENT_RELEASED, shipment)
            if self.notifier:
                self.notifier.dispatch(
                    NotificationKind.SHIPMENT_RELEASED,
                    shipment.sender_id,
                    {"shipment_id": shipment.shipment_id, "shipment_title": shipment.title},
                )

        return TripRelease(
            requested_count=len(ids),
            released_count=len(released),
            released_shipment_ids=[s.shipment_id for s in released],
        )
