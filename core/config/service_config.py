#!/usr/bin/env python3
"""Service configuration for external providers

HTTP providers the marketplace consumes as black boxes: routing (GraphHopper),
geocoding (Nominatim) and transactional email (Resend).
"""
import os
from dataclasses import dataclass
from typing import Optional

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default


@dataclass
class ServiceConfig:
    """External provider endpoints"""

    # ===========================================
    # Routing (GraphHopper)
    # ===========================================
    route_service_url: str = "https://graphhopper.com/api/1"
    route_api_key: Optional[str] = None
    route_profile: str = "car"

    # ===========================================
    # Geocoding (Nominatim)
    # ===========================================
    geocoding_service_url: str = "https://nominatim.openstreetmap.org"
    geocoding_user_agent: str = "CrowdShip/1.0"
    geocoding_country_codes: str = "pk"

    # ===========================================
    # Email (Resend)
    # ===========================================
    email_service_url: str = "https://api.resend.com"
    email_api_key: Optional[str] = None
    email_from: str = "CrowdShip <onboarding@resend.dev>"
    app_url: str = "http://localhost:3000"

    # ===========================================
    # Outbound HTTP
    # ===========================================
    http_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> 'ServiceConfig':
        """Load service configuration from environment variables"""
        return cls(
            # Routing
            route_service_url=os.getenv("ROUTE_SERVICE_URL", "https://graphhopper.com/api/1"),
            route_api_key=os.getenv("GRAPHHOPPER_API_KEY"),
            route_profile=os.getenv("ROUTE_PROFILE", "car"),

            # Geocoding
            geocoding_service_url=os.getenv("GEOCODING_SERVICE_URL", "https://nominatim.openstreetmap.org"),
            geocoding_user_agent=os.getenv("GEOCODING_USER_AGENT", "CrowdShip/1.0"),
            geocoding_country_codes=os.getenv("GEOCODING_COUNTRY_CODES", "pk"),

            # Email
            email_service_url=os.getenv("EMAIL_SERVICE_URL", "https://api.resend.com"),
            email_api_key=os.getenv("RESEND_API_KEY"),
            email_from=os.getenv("EMAIL_FROM", "CrowdShip <onboarding@resend.dev>"),
            app_url=os.getenv("APP_URL") or os.getenv("NEXT_PUBLIC_APP_URL", "http://localhost:3000"),

            # Outbound HTTP
            http_timeout=_float(os.getenv("HTTP_TIMEOUT", "10"), 10.0),
        )
