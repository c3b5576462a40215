"""
Shipment State Machine - Business Logic Layer

pending -> accepted -> in_transit -> delivered, with cancellation handled by
the escrow service. Every transition is a compare-and-swap on the expected
prior status; OTPs gate pickup and delivery.
"""

import hmac
import logging
import re
import secrets
import uuid
from typing import List, Optional

from core.config import MarketplaceConfig

from .corridor import RouteQueryTracker, filter_shipments
from .events import MarketplaceEventType, publish_shipment_event
from .models import (
    CreateShipmentRequest,
    GeocodeResult,
    GeoPoint,
    OtpVerification,
    Shipment,
    ShipmentStatus,
    TripPlan,
)
from .protocols import (
    AlreadyTakenError,
    EventBusProtocol,
    GeocodingClientProtocol,
    InsufficientFundsError,
    InvalidTransitionError,
    MarketplaceRepositoryProtocol,
    MarketplaceValidationError,
    NotAuthorizedError,
    NotEligibleError,
    NotFoundError,
    RouteClientProtocol,
    TerminalStateError,
    UpstreamUnavailableError,
)
from .results import as_result, require_positive_amount

logger = logging.getLogger(__name__)

OTP_PATTERN = re.compile(r"^\d{4}$")


def generate_otp(config: Optional[MarketplaceConfig] = None) -> str:
    """Four-digit code from a CSPRNG"""
    config = config or MarketplaceConfig()
    span = config.otp_max - config.otp_min + 1
    return str(config.otp_min + secrets.randbelow(span))


class ShipmentService:
    """
    Shipment lifecycle, discovery and trip planning

    Every public method returns a MarketplaceResult.
    """

    def __init__(
        self,
        repository: MarketplaceRepositoryProtocol,
        event_bus: Optional[EventBusProtocol] = None,
        route_client: Optional[RouteClientProtocol] = None,
        geocoding_client: Optional[GeocodingClientProtocol] = None,
        config: Optional[MarketplaceConfig] = None,
        route_tracker: Optional[RouteQueryTracker] = None,
    ):
        self.repository = repository
        self.event_bus = event_bus
        self.route_client = route_client
        self.geocoding_client = geocoding_client
        self.config = config or MarketplaceConfig()
        self.route_tracker = route_tracker or RouteQueryTracker(epsilon_deg=self.config.route_epsilon_deg)

    # ====================
    # Posting and discovery
    # ====================

    @as_result
    async def create_shipment(self, sender_id: str, request: CreateShipmentRequest) -> Shipment:
        """
        Post a shipment.

        The sender must hold at least the asking price in their wallet.
        Missing addresses are filled from the pinned points.
        """
        if request.weight_kg is None or request.weight_kg <= 0:
            raise MarketplaceValidationError("weight_kg must be greater than zero")
        offer_price = require_positive_amount(request.offer_price, "offer_price")

        wallet = await self.repository.get_user(sender_id)
        if wallet is None:
            raise NotFoundError(f"Wallet not found for user {sender_id}")
        if wallet.wallet_balance < offer_price:
            raise InsufficientFundsError(
                f"Wallet balance {wallet.wallet_balance} is below the offer price {offer_price}",
                available=wallet.wallet_balance,
                required=offer_price,
            )

        pickup_address = request.pickup_address or await self._describe(request.pickup_location)
        dropoff_address = request.dropoff_address or await self._describe(request.dropoff_location)

        shipment = Shipment(
            shipment_id=f"shp_{uuid.uuid4().hex[:16]}",
            sender_id=sender_id,
            title=request.title,
            description=request.description,
            weight_kg=request.weight_kg,
            offer_price=offer_price,
            pickup_address=pickup_address,
            dropoff_address=dropoff_address,
            pickup_location=request.pickup_location,
            dropoff_location=request.dropoff_location,
            pickup_otp=generate_otp(self.config),
            delivery_otp=generate_otp(self.config),
            bidding_enabled=request.bidding_enabled,
            auto_accept_initial_price=request.bidding_enabled and request.auto_accept_initial_price,
            status=ShipmentStatus.PENDING,
        )

        created = await self.repository.create_shipment(shipment)
        logger.info(f"Shipment {created.shipment_id} posted by {sender_id} at {offer_price}")

        if self.event_bus:
            await publish_shipment_event(self.event_bus, MarketplaceEventType.SHIPMENT_CREATED, created)
        return created

    @as_result
    async def get_shipment(self, shipment_id: str, viewer_id: Optional[str] = None) -> Shipment:
        """OTPs are only visible to the sender"""
        shipment = await self._require_shipment(shipment_id)
        if viewer_id and viewer_id == shipment.sender_id:
            return shipment
        return shipment.redacted()

    @as_result
    async def list_open_shipments(self, exclude_sender_id: Optional[str] = None) -> List[Shipment]:
        shipments = await self.repository.list_pending_shipments(exclude_sender_id=exclude_sender_id)
        return [s.redacted() for s in shipments]

    @as_result
    async def reverse_geocode(self, lat: float, lng: float) -> dict:
        if self.geocoding_client is None:
            raise UpstreamUnavailableError("Geocoding service is not configured")
        label = await self.geocoding_client.reverse(lat, lng)
        return {"lat": lat, "lng": lng, "display_name": label}

    @as_result
    async def search_locations(self, text: str) -> List[GeocodeResult]:
        if self.geocoding_client is None:
            raise UpstreamUnavailableError("Geocoding service is not configured")
        return await self.geocoding_client.search(text)

    # ====================
    # Transitions
    # ====================

    @as_result
    async def direct_accept(self, shipment_id: str, traveler_id: str) -> Shipment:
        """Claim a non-bidding shipment outright"""
        shipment = await self._require_shipment(shipment_id)

        if shipment.sender_id == traveler_id:
            raise NotEligibleError("You cannot accept your own shipment")
        if shipment.bidding_enabled:
            raise NotEligibleError("This shipment takes bids; place a bid instead")
        if shipment.is_terminal:
            raise TerminalStateError(f"Shipment is already {shipment.status.value}")
        if shipment.status != ShipmentStatus.PENDING:
            raise AlreadyTakenError("Shipment has already been taken")

        accepted = await self.repository.direct_accept(shipment_id, traveler_id)
        if accepted is None:
            raise AlreadyTakenError("Shipment has already been taken")

        logger.info(f"Shipment {shipment_id} accepted directly by {traveler_id}")
        if self.event_bus:
            await publish_shipment_event(self.event_bus, MarketplaceEventType.SHIPMENT_ACCEPTED, accepted)
        return accepted.redacted()

    @as_result
    async def confirm_pickup(self, shipment_id: str, traveler_id: str, otp_input: str) -> OtpVerification:
        return await self._confirm_with_otp(
            shipment_id,
            traveler_id,
            otp_input,
            from_status=ShipmentStatus.ACCEPTED,
            to_status=ShipmentStatus.IN_TRANSIT,
            otp_field="pickup_otp",
            stamp_field="picked_up_at",
            event_type=MarketplaceEventType.SHIPMENT_PICKED_UP,
        )

    @as_result
    async def confirm_delivery(self, shipment_id: str, traveler_id: str, otp_input: str) -> OtpVerification:
        return await self._confirm_with_otp(
            shipment_id,
            traveler_id,
            otp_input,
            from_status=ShipmentStatus.IN_TRANSIT,
            to_status=ShipmentStatus.DELIVERED,
            otp_field="delivery_otp",
            stamp_field="delivered_at",
            event_type=MarketplaceEventType.SHIPMENT_DELIVERED,
        )

    async def _confirm_with_otp(
        self,
        shipment_id: str,
        traveler_id: str,
        otp_input: str,
        from_status: ShipmentStatus,
        to_status: ShipmentStatus,
        otp_field: str,
        stamp_field: str,
        event_type: MarketplaceEventType,
    ) -> OtpVerification:
        # Error messages never include either code
        code = otp_input.strip() if isinstance(otp_input, str) else ""
        if not OTP_PATTERN.match(code):
            raise MarketplaceValidationError("OTP must be exactly 4 digits")

        shipment = await self._require_shipment(shipment_id)
        if shipment.traveler_id != traveler_id:
            raise NotAuthorizedError("Only the assigned traveler can confirm this shipment")
        if shipment.is_terminal:
            raise TerminalStateError(f"Shipment is already {shipment.status.value}")
        if shipment.status != from_status:
            raise InvalidTransitionError(
                f"Shipment must be {from_status.value} to move to {to_status.value}"
            )

        expected = getattr(shipment, otp_field) or ""
        if not hmac.compare_digest(code.encode(), expected.encode()):
            logger.info(f"OTP mismatch on {shipment_id} ({from_status.value} -> {to_status.value})")
            return OtpVerification(verified=False)

        updated = await self.repository.transition_status(
            shipment_id, traveler_id, from_status, to_status, stamp_field
        )
        if updated is None:
            logger.info(f"Transition {from_status.value} -> {to_status.value} lost on {shipment_id}")
            return OtpVerification(verified=False)

        logger.info(f"Shipment {shipment_id} moved to {to_status.value}")
        if self.event_bus:
            await publish_shipment_event(self.event_bus, event_type, updated)
        return OtpVerification(verified=True, shipment=updated.redacted())

    # ====================
    # Trip planning
    # ====================

    @as_result
    async def plan_trip(
        self,
        traveler_id: str,
        origin: Optional[GeoPoint] = None,
        destination: Optional[GeoPoint] = None,
    ) -> TripPlan:
        """
        Open shipments along the traveler's route.

        Without both endpoints, or when the route service is unavailable,
        every open shipment is returned with route_available=False.
        """
        candidates = await self.repository.list_pending_shipments(exclude_sender_id=traveler_id)
        candidates = [s.redacted() for s in candidates]

        if origin is None or destination is None:
            return TripPlan(route_available=False, shipments=candidates)

        recomputed = False
        if self.route_tracker.should_recompute(traveler_id, origin, destination):
            recomputed = True
            route = None
            if self.route_client is not None:
                route = await self.route_client.compute_route(
                    origin.lng, origin.lat, destination.lng, destination.lat
                )
            if route:
                self.route_tracker.remember(traveler_id, origin, destination, route)
            else:
                self.route_tracker.forget(traveler_id)
        else:
            route = self.route_tracker.cached_route(traveler_id)

        if not route or len(route) < 2:
            logger.warning(f"Route unavailable for {traveler_id}; showing all open shipments")
            return TripPlan(route_available=False, recomputed=recomputed, shipments=candidates)

        matched = filter_shipments(route, candidates, self.config.corridor_threshold_km)
        logger.info(f"Corridor matched {len(matched)}/{len(candidates)} shipments for {traveler_id}")
        return TripPlan(route_available=True, recomputed=recomputed, route=route, shipments=matched)

    # ====================
    # Helpers
    # ====================

    async def _require_shipment(self, shipment_id: str) -> Shipment:
        shipment = await self.repository.get_shipment(shipment_id)
        if shipment is None:
            raise NotFoundError(f"Shipment not found: {shipment_id}")
        return shipment

    async def _describe(self, point: Optional[GeoPoint]) -> Optional[str]:
        if point is None or self.geocoding_client is None:
            return None
        return await self.geocoding_client.reverse(point.lat, point.lng)
