"""
Route Service HTTP Client

Async client for the GraphHopper routing API.
Implements RouteClientProtocol for dependency injection.
"""

import httpx
import logging
from typing import List, Optional

from core.config import MarketplaceConfig, ServiceConfig

from .http_retry import RetryableHTTPError, call_with_retry, raise_for_retryable

logger = logging.getLogger(__name__)


class RouteClient:
    """Async HTTP client for GraphHopper /route"""

    def __init__(
        self,
        services: Optional[ServiceConfig] = None,
        marketplace: Optional[MarketplaceConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize RouteClient

        Args:
            services: Provider endpoints and timeout
            marketplace: Retry settings
            client: Pre-built httpx client (tests inject a MockTransport)
        """
        services = services or ServiceConfig()
        marketplace = marketplace or MarketplaceConfig()

        self.base_url = services.route_service_url.rstrip("/")
        self.api_key = services.route_api_key
        self.profile = services.route_profile
        self.retry_attempts = marketplace.retry_attempts
        self.retry_initial_delay = marketplace.retry_initial_delay
        self.retry_max_delay = marketplace.retry_max_delay
        self.client = client or httpx.AsyncClient(timeout=services.http_timeout)
        logger.info(f"RouteClient initialized with base_url: {self.base_url}")

    async def compute_route(
        self, origin_lng: float, origin_lat: float, dest_lng: float, dest_lat: float
    ) -> Optional[List[List[float]]]:
        """
        Compute a driving route between two points

        Returns:
            [lng, lat] vertices, or None when the provider is unavailable
        """
        if not self.api_key:
            logger.error("GRAPHHOPPER_API_KEY is not configured; route unavailable")
            return None

        # GraphHopper takes lat,lng per point
        params = [
            ("point", f"{origin_lat},{origin_lng}"),
            ("point", f"{dest_lat},{dest_lng}"),
            ("profile", self.profile),
            ("locale", "en"),
            ("points_encoded", "false"),
            ("key", self.api_key),
        ]

        async def _fetch():
            response = await self.client.get(f"{self.base_url}/route", params=params)
            raise_for_retryable(response)
            return response

        try:
            response = await call_with_retry(
                _fetch,
                attempts=self.retry_attempts,
                initial_delay=self.retry_initial_delay,
                max_delay=self.retry_max_delay,
            )
            if response.status_code != 200:
                logger.error(f"GraphHopper error {response.status_code}: {response.text[:200]}")
                return None

            paths = response.json().get("paths") or []
            if not paths:
                logger.info("GraphHopper returned no paths")
                return None

            coordinates = paths[0].get("points", {}).get("coordinates") or []
            return [[float(c[0]), float(c[1])] for c in coordinates]
        except RetryableHTTPError as e:
            logger.error(f"Route service unavailable after retries: {e}")
            return None
        except httpx.RequestError as e:
            logger.error(f"Request error computing route: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected error computing route: {e}", exc_info=True)
            return None

    async def close(self):
        """Close the HTTP client connection"""
        await self.client.aclose()
        logger.info("RouteClient connection closed")
