"""
Marketplace Service Factory

Factory for creating the marketplace services with real dependencies.
This is the ONLY module that imports concrete implementations.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from core.config_manager import ConfigManager

from .bid_service import BidService
from .corridor import RouteQueryTracker
from .escrow_service import EscrowService
from .marketplace_repository import MarketplaceRepository
from .notifier import Notifier
from .protocols import MarketplaceRepositoryProtocol
from .rating_service import RatingService
from .shipment_service import ShipmentService
from .trip_service import TripService

logger = logging.getLogger(__name__)


@dataclass
class MarketplaceServices:
    """Everything one process needs, sharing one repository and event bus"""
    repository: MarketplaceRepositoryProtocol
    shipments: ShipmentService
    bids: BidService
    escrow: EscrowService
    trips: TripService
    ratings: RatingService
    notifier: Notifier
    event_bus: Any = None
    clients: list = field(default_factory=list)

    async def close(self):
        """Finish in-flight notifications and close provider clients"""
        await self.notifier.drain()
        for client in self.clients:
            try:
                await client.close()
            except Exception as e:
                logger.warning(f"Error closing {type(client).__name__}: {e}")


def build_marketplace_services(
    repository: MarketplaceRepositoryProtocol,
    config: Optional[ConfigManager] = None,
    event_bus=None,
    route_client=None,
    geocoding_client=None,
    notification_client=None,
) -> MarketplaceServices:
    """
    Wire the services around an existing repository and clients

    Tests call this directly with in-memory doubles.
    """
    if config is None:
        config = ConfigManager("marketplace_service")
    marketplace = config.settings.marketplace

    notifier = Notifier(notification_client, repository)
    shipments = ShipmentService(
        repository=repository,
        event_bus=event_bus,
        route_client=route_client,
        geocoding_client=geocoding_client,
        config=marketplace,
        route_tracker=RouteQueryTracker(epsilon_deg=marketplace.route_epsilon_deg),
    )

    return MarketplaceServices(
        repository=repository,
        shipments=shipments,
        bids=BidService(repository, event_bus=event_bus, notifier=notifier, config=marketplace),
        escrow=EscrowService(repository, event_bus=event_bus, notifier=notifier, config=marketplace),
        trips=TripService(repository, event_bus=event_bus, notifier=notifier),
        ratings=RatingService(repository, event_bus=event_bus),
        notifier=notifier,
        event_bus=event_bus,
        clients=[c for c in (route_client, geocoding_client, notification_client) if c is not None],
    )


def create_marketplace_services(
    config: Optional[ConfigManager] = None,
    event_bus=None,
    route_client=None,
    geocoding_client=None,
    notification_client=None,
) -> MarketplaceServices:
    """
    Create the marketplace services with all real dependencies

    Args:
        config: Optional config manager (creates default if not provided)
        event_bus: Optional event bus for event publishing
        route_client: Optional route client (creates default if not provided)
        geocoding_client: Optional geocoding client (creates default if not provided)
        notification_client: Optional email client (creates default if not provided)

    Returns:
        Fully wired MarketplaceServices
    """
    if config is None:
        config = ConfigManager("marketplace_service")

    settings = config.settings
    repository = MarketplaceRepository(config=config)

    if route_client is None:
        try:
            from .clients.route_client import RouteClient

            route_client = RouteClient(services=settings.services, marketplace=settings.marketplace)
            logger.info("✅ RouteClient initialized for marketplace service")
        except Exception as e:
            logger.warning(f"⚠️ Failed to initialize RouteClient: {e}")
            logger.warning("Trip planning will show all open shipments")

    if geocoding_client is None:
        try:
            from .clients.geocoding_client import GeocodingClient

            geocoding_client = GeocodingClient(services=settings.services, marketplace=settings.marketplace)
            logger.info("✅ GeocodingClient initialized for marketplace service")
        except Exception as e:
            logger.warning(f"⚠️ Failed to initialize GeocodingClient: {e}")

    if notification_client is None:
        try:
            from .clients.email_client import EmailClient

            notification_client = EmailClient(services=settings.services, marketplace=settings.marketplace)
            logger.info("✅ EmailClient initialized for marketplace service")
        except Exception as e:
            logger.warning(f"⚠️ Failed to initialize EmailClient: {e}")
            logger.warning("Marketplace service will operate without email notifications")

    return build_marketplace_services(
        repository=repository,
        config=config,
        event_bus=event_bus,
        route_client=route_client,
        geocoding_client=geocoding_client,
        notification_client=notification_client,
    )


__all__ = ["MarketplaceServices", "build_marketplace_services", "create_marketplace_services"]
