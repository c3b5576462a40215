"""
Shipment State Machine Component Tests

Tests ShipmentService: posting, discovery, direct acceptance, the OTP gates
for pickup and delivery, and corridor-based trip planning.

Usage:
    pytest tests/component/marketplace/test_shipment_service.py -v
"""

from decimal import Decimal

import pytest

from microservices.marketplace_service.events import MarketplaceEventType
from microservices.marketplace_service.models import ErrorKind, GeoPoint, ShipmentStatus
from microservices.marketplace_service.shipment_service import OTP_PATTERN, generate_otp
from tests.contracts.marketplace.data_contract import GUJRANWALA, ISLAMABAD, KARACHI, LAHORE


@pytest.mark.component
@pytest.mark.asyncio
class TestCreateShipment:
    """create_shipment rules"""

    async def test_posts_pending_shipment(self, services, mock_event_bus, data_factory, sender):
        result = await services.shipments.create_shipment(
            sender.user_id, data_factory.make_create_shipment_request()
        )

        assert result.success
        shipment = result.data
        assert shipment.shipment_id.startswith("shp_")
        assert shipment.status == ShipmentStatus.PENDING
        assert shipment.traveler_id is None
        assert shipment.offer_price == Decimal("100.00")
        assert OTP_PATTERN.match(shipment.pickup_otp)
        assert OTP_PATTERN.match(shipment.delivery_otp)
        assert mock_event_bus.get_published(MarketplaceEventType.SHIPMENT_CREATED)

    async def test_insufficient_balance(self, services, mock_repository, data_factory):
        poor = mock_repository.add_user(data_factory.make_wallet(balance="50.00"))
        result = await services.shipments.create_shipment(
            poor.user_id, data_factory.make_create_shipment_request()
        )

        assert result.error == ErrorKind.INSUFFICIENT_FUNDS
        assert mock_repository.shipments == {}

    async def test_missing_wallet(self, services, data_factory):
        result = await services.shipments.create_shipment(
            data_factory.make_user_id(), data_factory.make_create_shipment_request()
        )
        assert result.error == ErrorKind.NOT_FOUND

    @pytest.mark.parametrize("field,value", [("weight_kg", 0), ("offer_price", Decimal("0"))])
    async def test_non_positive_weight_or_price(self, services, data_factory, sender, field, value):
        request = data_factory.make_create_shipment_request(**{field: value})
        result = await services.shipments.create_shipment(sender.user_id, request)
        assert result.error == ErrorKind.VALIDATION_ERROR

    async def test_missing_addresses_resolved_from_points(
        self, services, mock_geocoding_client, data_factory, sender
    ):
        request = data_factory.make_create_shipment_request(pickup_address=None, dropoff_address=None)
        result = await services.shipments.create_shipment(sender.user_id, request)

        assert result.data.pickup_address == mock_geocoding_client.label
        assert result.data.dropoff_address == mock_geocoding_client.label
        assert len(mock_geocoding_client.reverse_calls) == 2

    async def test_auto_accept_ignored_without_bidding(self, services, data_factory, sender):
        request = data_factory.make_create_shipment_request(
            bidding_enabled=False, auto_accept_initial_price=True
        )
        result = await services.shipments.create_shipment(sender.user_id, request)
        assert result.data.auto_accept_initial_price is False


@pytest.mark.component
@pytest.mark.asyncio
class TestDiscovery:
    """get_shipment, list_open_shipments, geocoding passthrough"""

    async def test_sender_sees_otps(self, services, fixed_price_shipment, sender):
        result = await services.shipments.get_shipment(fixed_price_shipment.shipment_id, sender.user_id)
        assert result.data.pickup_otp == "1234"
        assert result.data.delivery_otp == "5678"

    async def test_others_never_see_otps(self, services, accepted_shipment, traveler):
        result = await services.shipments.get_shipment(accepted_shipment.shipment_id, traveler.user_id)
        assert result.data.pickup_otp is None
        assert result.data.delivery_otp is None

    async def test_unknown_shipment(self, services, sender):
        result = await services.shipments.get_shipment("shp_missing", sender.user_id)
        assert result.error == ErrorKind.NOT_FOUND

    async def test_open_list_excludes_own_and_taken(
        self, services, fixed_price_shipment, accepted_shipment, mock_repository, data_factory, traveler, sender
    ):
        own = mock_repository.add_shipment(data_factory.make_shipment(sender_id=traveler.user_id))

        result = await services.shipments.list_open_shipments(exclude_sender_id=traveler.user_id)

        ids = [s.shipment_id for s in result.data]
        assert ids == [fixed_price_shipment.shipment_id]
        assert own.shipment_id not in ids
        assert all(s.pickup_otp is None for s in result.data)

    async def test_search_locations(self, services):
        result = await services.shipments.search_locations("Lahore")
        assert result.success
        assert result.data[0].display_name.startswith("Lahore")

    async def test_reverse_geocode(self, services, mock_geocoding_client):
        result = await services.shipments.reverse_geocode(31.5204, 74.3587)
        assert result.data == {"lat": 31.5204, "lng": 74.3587, "display_name": mock_geocoding_client.label}


@pytest.mark.component
@pytest.mark.asyncio
class TestDirectAccept:
    """direct_accept on non-bidding shipments"""

    async def test_claims_shipment(self, services, mock_event_bus, fixed_price_shipment, traveler):
        result = await services.shipments.direct_accept(fixed_price_shipment.shipment_id, traveler.user_id)

        assert result.success
        assert result.data.status == ShipmentStatus.ACCEPTED
        assert result.data.traveler_id == traveler.user_id
        assert result.data.pickup_otp is None
        assert mock_event_bus.get_published(MarketplaceEventType.SHIPMENT_ACCEPTED)

    async def test_second_claim_already_taken(self, services, fixed_price_shipment, traveler, other_traveler):
        await services.shipments.direct_accept(fixed_price_shipment.shipment_id, traveler.user_id)
        result = await services.shipments.direct_accept(fixed_price_shipment.shipment_id, other_traveler.user_id)
        assert result.error == ErrorKind.ALREADY_TAKEN

    async def test_bidding_shipment_needs_a_bid(self, services, bidding_shipment, traveler):
        result = await services.shipments.direct_accept(bidding_shipment.shipment_id, traveler.user_id)
        assert result.error == ErrorKind.NOT_ELIGIBLE

    async def test_sender_cannot_claim_own(self, services, fixed_price_shipment, sender):
        result = await services.shipments.direct_accept(fixed_price_shipment.shipment_id, sender.user_id)
        assert result.error == ErrorKind.NOT_ELIGIBLE

    async def test_cancelled_shipment_is_terminal(self, services, mock_repository, data_factory, sender, traveler):
        shipment = mock_repository.add_shipment(
            data_factory.make_shipment(sender_id=sender.user_id, status=ShipmentStatus.CANCELLED)
        )
        result = await services.shipments.direct_accept(shipment.shipment_id, traveler.user_id)
        assert result.error == ErrorKind.TERMINAL_STATE


@pytest.mark.component
@pytest.mark.asyncio
class TestOtpGates:
    """confirm_pickup and confirm_delivery"""

    @pytest.mark.parametrize("code", ["123", "12345", "12a4", "", "   "])
    async def test_malformed_code(self, services, accepted_shipment, traveler, code):
        result = await services.shipments.confirm_pickup(accepted_shipment.shipment_id, traveler.user_id, code)
        assert result.error == ErrorKind.VALIDATION_ERROR

    async def test_wrong_code_leaves_status(self, services, mock_repository, accepted_shipment, traveler):
        result = await services.shipments.confirm_pickup(accepted_shipment.shipment_id, traveler.user_id, "9999")

        assert result.success
        assert result.data.verified is False
        assert result.data.shipment is None
        assert mock_repository.shipments[accepted_shipment.shipment_id].status == ShipmentStatus.ACCEPTED

    async def test_code_is_never_echoed(self, services, accepted_shipment, traveler):
        result = await services.shipments.confirm_pickup(accepted_shipment.shipment_id, traveler.user_id, "9999")
        dumped = result.model_dump_json()
        assert "1234" not in dumped
        assert "9999" not in dumped

    async def test_pickup_then_delivery(self, services, mock_repository, mock_event_bus, accepted_shipment, traveler):
        picked = await services.shipments.confirm_pickup(
            accepted_shipment.shipment_id, traveler.user_id, " 1234 "
        )
        assert picked.data.verified is True
        assert picked.data.shipment.status == ShipmentStatus.IN_TRANSIT
        assert picked.data.shipment.pickup_otp is None
        assert mock_repository.shipments[accepted_shipment.shipment_id].picked_up_at is not None

        delivered = await services.shipments.confirm_delivery(
            accepted_shipment.shipment_id, traveler.user_id, "5678"
        )
        assert delivered.data.verified is True
        assert delivered.data.shipment.status == ShipmentStatus.DELIVERED
        assert mock_repository.shipments[accepted_shipment.shipment_id].delivered_at is not None

        types = mock_event_bus.published_types()
        assert MarketplaceEventType.SHIPMENT_PICKED_UP.value in types
        assert MarketplaceEventType.SHIPMENT_DELIVERED.value in types

    async def test_delivery_before_pickup(self, services, accepted_shipment, traveler):
        result = await services.shipments.confirm_delivery(accepted_shipment.shipment_id, traveler.user_id, "5678")
        assert result.error == ErrorKind.INVALID_TRANSITION

    async def test_pickup_code_does_not_open_delivery(self, services, in_transit_shipment, traveler):
        result = await services.shipments.confirm_delivery(in_transit_shipment.shipment_id, traveler.user_id, "1234")
        assert result.data.verified is False

    async def test_only_assigned_traveler(self, services, accepted_shipment, other_traveler):
        result = await services.shipments.confirm_pickup(
            accepted_shipment.shipment_id, other_traveler.user_id, "1234"
        )
        assert result.error == ErrorKind.NOT_AUTHORIZED

    async def test_delivered_shipment_is_terminal(self, services, mock_repository, data_factory, sender, traveler):
        shipment = mock_repository.add_shipment(data_factory.make_shipment(
            sender_id=sender.user_id, traveler_id=traveler.user_id, status=ShipmentStatus.DELIVERED
        ))
        result = await services.shipments.confirm_delivery(shipment.shipment_id, traveler.user_id, "5678")
        assert result.error == ErrorKind.TERMINAL_STATE


@pytest.mark.component
@pytest.mark.asyncio
class TestPlanTrip:
    """Corridor filtering with route caching"""

    @pytest.fixture
    def open_shipments(self, mock_repository, data_factory, sender):
        on_route = mock_repository.add_shipment(data_factory.make_shipment(sender_id=sender.user_id))
        off_route = mock_repository.add_shipment(data_factory.make_shipment(
            sender_id=sender.user_id,
            pickup_location=data_factory.make_point(KARACHI),
            dropoff_location=data_factory.make_point(LAHORE),
        ))
        return on_route, off_route

    async def test_keeps_shipments_along_route(self, services, open_shipments, traveler, data_factory):
        on_route, off_route = open_shipments
        result = await services.shipments.plan_trip(
            traveler.user_id, data_factory.make_point(LAHORE), data_factory.make_point(ISLAMABAD)
        )

        plan = result.data
        assert plan.route_available is True
        assert plan.recomputed is True
        assert [s.shipment_id for s in plan.shipments] == [on_route.shipment_id]

    async def test_route_reused_until_endpoint_moves(
        self, services, mock_route_client, open_shipments, traveler, data_factory
    ):
        origin = data_factory.make_point(LAHORE)
        destination = data_factory.make_point(ISLAMABAD)

        await services.shipments.plan_trip(traveler.user_id, origin, destination)
        nudged = GeoPoint(lng=origin.lng + 0.00005, lat=origin.lat)
        second = await services.shipments.plan_trip(traveler.user_id, nudged, destination)
        assert second.data.recomputed is False
        assert len(mock_route_client.calls) == 1

        moved = data_factory.make_point(GUJRANWALA)
        third = await services.shipments.plan_trip(traveler.user_id, moved, destination)
        assert third.data.recomputed is True
        assert len(mock_route_client.calls) == 2

    async def test_route_outage_returns_everything(
        self, services, mock_route_client, open_shipments, traveler, data_factory
    ):
        mock_route_client.route = None
        result = await services.shipments.plan_trip(
            traveler.user_id, data_factory.make_point(LAHORE), data_factory.make_point(ISLAMABAD)
        )

        assert result.success
        assert result.data.route_available is False
        assert len(result.data.shipments) == 2

    async def test_without_endpoints(self, services, mock_route_client, open_shipments, traveler):
        result = await services.shipments.plan_trip(traveler.user_id)

        assert result.data.route_available is False
        assert len(result.data.shipments) == 2
        assert mock_route_client.calls == []


@pytest.mark.unit
def test_generated_otps_are_four_digits():
    codes = {generate_otp() for _ in range(200)}
    assert all(OTP_PATTERN.match(code) for code in codes)
    assert all(1000 <= int(code) <= 9999 for code in codes)
