"""
Marketplace Service API Test Configuration

Runs the real FastAPI app with get_marketplace_services overridden to return
services built around the component-layer doubles. The lifespan never runs,
so no database or NATS connection is attempted.
"""

from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from core.config import PlatformConfig
from core.config_manager import ConfigManager
from microservices.marketplace_service import main
from microservices.marketplace_service.factory import build_marketplace_services
from microservices.marketplace_service.models import ShipmentStatus
from tests.api.conftest import APIClient
from tests.component.marketplace.conftest import (
    MockEventBus,
    MockGeocodingClient,
    MockMarketplaceRepository,
    MockRouteClient,
)

MARKETPLACE_API_PATH = "/api/v1/marketplace"


@pytest.fixture
def store() -> MockMarketplaceRepository:
    return MockMarketplaceRepository()


@pytest.fixture
def bus() -> MockEventBus:
    return MockEventBus()


@pytest.fixture
def wired_services(store, bus, data_factory):
    """Services without a notification client, so no background tasks outlive a request"""
    return build_marketplace_services(
        repository=store,
        config=ConfigManager("marketplace_service", settings=PlatformConfig()),
        event_bus=bus,
        route_client=MockRouteClient(route=data_factory.make_route()),
        geocoding_client=MockGeocodingClient(results=[]),
    )


@pytest_asyncio.fixture
async def marketplace_api(wired_services) -> AsyncGenerator[APIClient, None]:
    """In-process API client for the marketplace routes"""

    async def override_services():
        return wired_services

    main.app.dependency_overrides[main.get_marketplace_services] = override_services
    transport = httpx.ASGITransport(app=main.app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://marketplace.test") as client:
            yield APIClient(client, MARKETPLACE_API_PATH)
    finally:
        main.app.dependency_overrides.clear()


# =============================================================================
# Seeded actors
# =============================================================================


@pytest.fixture
def sender(store, data_factory):
    return store.add_user(data_factory.make_wallet(balance="1000.00"))


@pytest.fixture
def traveler(store, data_factory):
    return store.add_user(data_factory.make_wallet(balance="500.00"))


@pytest.fixture
def open_bidding_shipment(store, data_factory, sender):
    return store.add_shipment(data_factory.make_shipment(sender_id=sender.user_id, bidding_enabled=True))


@pytest.fixture
def held_shipment(store, data_factory, sender, traveler):
    return store.add_shipment(data_factory.make_shipment(
        sender_id=sender.user_id, traveler_id=traveler.user_id, status=ShipmentStatus.ACCEPTED
    ))
