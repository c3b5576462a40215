"""
Marketplace Service Client Module

HTTP clients for the external providers the marketplace consumes.
"""

from .route_client import RouteClient
from .geocoding_client import GeocodingClient
from .email_client import EmailClient

__all__ = [
    "RouteClient",
    "GeocodingClient",
    "EmailClient",
]
