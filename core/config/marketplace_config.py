#!/usr/bin/env python3
"""Marketplace business configuration

Corridor matching, bidding limits, penalty schedule and OTP settings for the
marketplace service. Defaults match production behaviour; override per
environment when experimenting.
"""
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default

def _decimal(val: str, default: str) -> Decimal:
    try:
        return Decimal(val) if val else Decimal(default)
    except InvalidOperation:
        return Decimal(default)


@dataclass
class ServiceAreaBounds:
    """Bounding box geocoding results must fall into"""
    north: float = 37.5
    south: float = 23.5
    east: float = 77.5
    west: float = 60.5

    def contains(self, lat: float, lng: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lng <= self.east

    @classmethod
    def from_env(cls) -> 'ServiceAreaBounds':
        return cls(
            north=_float(os.getenv("SERVICE_AREA_NORTH", "37.5"), 37.5),
            south=_float(os.getenv("SERVICE_AREA_SOUTH", "23.5"), 23.5),
            east=_float(os.getenv("SERVICE_AREA_EAST", "77.5"), 77.5),
            west=_float(os.getenv("SERVICE_AREA_WEST", "60.5"), 60.5),
        )


@dataclass
class MarketplaceConfig:
    """Business constants for the marketplace engine"""

    # ===========================================
    # Corridor matching
    # ===========================================
    corridor_threshold_km: float = 5.0
    # ~11 m at the equator
    route_epsilon_deg: float = 0.0001

    # ===========================================
    # Bidding
    # ===========================================
    max_bids_per_traveler: int = 3

    # ===========================================
    # Cancellation penalties (fraction of offer_price)
    # ===========================================
    penalty_rate_pending: Decimal = Decimal("0")
    penalty_rate_accepted: Decimal = Decimal("0.20")
    penalty_rate_in_transit: Decimal = Decimal("0.50")

    # ===========================================
    # OTP
    # ===========================================
    otp_min: int = 1000
    otp_max: int = 9999

    # ===========================================
    # Geocoding
    # ===========================================
    geocoding_min_query_length: int = 2
    geocoding_result_limit: int = 5
    service_area: ServiceAreaBounds = field(default_factory=ServiceAreaBounds)

    # ===========================================
    # Outbound retries
    # ===========================================
    retry_attempts: int = 3
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 8.0

    @property
    def penalty_rates(self) -> Dict[str, Decimal]:
        """Penalty rate keyed by shipment status value"""
        return {
            "pending": self.penalty_rate_pending,
            "accepted": self.penalty_rate_accepted,
            "in_transit": self.penalty_rate_in_transit,
        }

    @classmethod
    def from_env(cls) -> 'MarketplaceConfig':
        """Load marketplace config from environment variables"""
        return cls(
            corridor_threshold_km=_float(os.getenv("CORRIDOR_THRESHOLD_KM", "5.0"), 5.0),
            route_epsilon_deg=_float(os.getenv("ROUTE_EPSILON_DEG", "0.0001"), 0.0001),
            max_bids_per_traveler=_int(os.getenv("MAX_BIDS_PER_TRAVELER", "3"), 3),
            penalty_rate_pending=_decimal(os.getenv("PENALTY_RATE_PENDING", "0"), "0"),
            penalty_rate_accepted=_decimal(os.getenv("PENALTY_RATE_ACCEPTED", "0.20"), "0.20"),
            penalty_rate_in_transit=_decimal(os.getenv("PENALTY_RATE_IN_TRANSIT", "0.50"), "0.50"),
            otp_min=_int(os.getenv("OTP_MIN", "1000"), 1000),
            otp_max=_int(os.getenv("OTP_MAX", "9999"), 9999),
            geocoding_min_query_length=_int(os.getenv("GEOCODING_MIN_QUERY_LENGTH", "2"), 2),
            geocoding_result_limit=_int(os.getenv("GEOCODING_RESULT_LIMIT", "5"), 5),
            service_area=ServiceAreaBounds.from_env(),
            retry_attempts=_int(os.getenv("HTTP_RETRY_ATTEMPTS", "3"), 3),
            retry_initial_delay=_float(os.getenv("HTTP_RETRY_INITIAL_DELAY", "1.0"), 1.0),
            retry_max_delay=_float(os.getenv("HTTP_RETRY_MAX_DELAY", "8.0"), 8.0),
        )
