"""
Geocoding Service HTTP Client

Async client for the Nominatim search and reverse APIs.
Implements GeocodingClientProtocol for dependency injection.
"""

import httpx
import logging
from typing import Any, Dict, List, Optional

from core.config import MarketplaceConfig, ServiceConfig

from ..models import GeocodeResult
from ..protocols import UpstreamUnavailableError
from .http_retry import RetryableHTTPError, call_with_retry, raise_for_retryable

logger = logging.getLogger(__name__)


def format_coordinates(lat: float, lng: float) -> str:
    """Fallback label when no address can be resolved"""
    return f"{lat:.4f}, {lng:.4f}"


def compose_address(data: Dict[str, Any]) -> Optional[str]:
    """Build a readable label from a Nominatim reverse payload"""
    address = data.get("address")
    if not address:
        return None

    parts: List[str] = []
    name = data.get("name")
    if name and name != address.get("road"):
        parts.append(name)
    for key in ("amenity", "building", "shop"):
        if address.get(key):
            parts.append(address[key])

    road = address.get("road")
    if road and address.get("house_number"):
        parts.append(f"{address['house_number']} {road}")
    elif road:
        parts.append(road)

    suburb = address.get("suburb")
    if suburb:
        parts.append(suburb)
    neighbourhood = address.get("neighbourhood")
    if neighbourhood and neighbourhood != suburb:
        parts.append(neighbourhood)

    city = address.get("city") or address.get("town") or address.get("village") or address.get("municipality")
    if city:
        parts.append(city)
    if address.get("state"):
        parts.append(address["state"])

    return ", ".join(parts) if parts else data.get("display_name")


class GeocodingClient:
    """Async HTTP client for Nominatim"""

    def __init__(
        self,
        services: Optional[ServiceConfig] = None,
        marketplace: Optional[MarketplaceConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        services = services or ServiceConfig()
        marketplace = marketplace or MarketplaceConfig()

        self.base_url = services.geocoding_service_url.rstrip("/")
        self.country_codes = services.geocoding_country_codes
        self.min_query_length = marketplace.geocoding_min_query_length
        self.result_limit = marketplace.geocoding_result_limit
        self.service_area = marketplace.service_area
        self.retry_attempts = marketplace.retry_attempts
        self.retry_initial_delay = marketplace.retry_initial_delay
        self.retry_max_delay = marketplace.retry_max_delay
        # Nominatim rejects requests without a User-Agent
        self.client = client or httpx.AsyncClient(
            timeout=services.http_timeout,
            headers={"User-Agent": services.geocoding_user_agent},
        )
        logger.info(f"GeocodingClient initialized with base_url: {self.base_url}")

    async def _get(self, path: str, params: Dict[str, Any]) -> httpx.Response:
        async def _fetch():
            response = await self.client.get(f"{self.base_url}{path}", params=params)
            raise_for_retryable(response)
            return response

        return await call_with_retry(
            _fetch,
            attempts=self.retry_attempts,
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
        )

    async def search(self, text: str) -> List[GeocodeResult]:
        """
        Search for locations inside the service area

        Args:
            text: Free-form query, at least min_query_length characters

        Returns:
            Up to result_limit hits; empty for short queries

        Raises:
            UpstreamUnavailableError: provider failed
        """
        query = (text or "").strip()
        if len(query) < self.min_query_length:
            return []

        params = {
            "format": "json",
            "q": query,
            "countrycodes": self.country_codes,
            # Over-fetch; some hits fall outside the service area
            "limit": self.result_limit * 2,
            "addressdetails": 1,
        }

        try:
            response = await self._get("/search", params)
            response.raise_for_status()
            hits = response.json()
        except (httpx.HTTPError, RetryableHTTPError, ValueError) as e:
            logger.error(f"Location search failed for '{query}': {e}")
            raise UpstreamUnavailableError("Geocoding service unavailable")

        results: List[GeocodeResult] = []
        for hit in hits:
            try:
                lat, lon = float(hit["lat"]), float(hit["lon"])
            except (KeyError, TypeError, ValueError):
                continue
            if not self.service_area.contains(lat, lon):
                continue
            results.append(GeocodeResult(lat=lat, lon=lon, display_name=hit.get("display_name", "")))
            if len(results) >= self.result_limit:
                break

        return results

    async def reverse(self, lat: float, lng: float) -> str:
        """
        Resolve a point to a display label

        Falls back to "lat, lng" at four decimals when the provider fails.
        """
        params = {"format": "json", "lat": lat, "lon": lng, "zoom": 18, "addressdetails": 1}

        try:
            response = await self._get("/reverse", params)
            response.raise_for_status()
            label = compose_address(response.json())
            return label or format_coordinates(lat, lng)
        except Exception as e:
            logger.warning(f"Reverse geocoding failed for {lat},{lng}: {e}")
            return format_coordinates(lat, lng)

    async def close(self):
        """Close the HTTP client connection"""
        await self.client.aclose()
        logger.info("GeocodingClient connection closed")
