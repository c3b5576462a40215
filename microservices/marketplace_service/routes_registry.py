"""
Marketplace Service Routes Registry
Defines all API routes exposed by the marketplace service.
"""
from typing import Any, Dict, List

BASE_PATH = "/api/v1/marketplace"

SERVICE_ROUTES: List[Dict[str, Any]] = [
    # Health
    {
        "path": "/health",
        "methods": ["GET"],
        "auth_required": False,
        "description": "Basic health check endpoint"
    },
    {
        "path": "/api/v1/marketplace/health",
        "methods": ["GET"],
        "auth_required": False,
        "description": "Service health check (API v1)"
    },
    # Users and wallet
    {
        "path": "/api/v1/marketplace/users/me",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Create or refresh the caller's wallet"
    },
    {
        "path": "/api/v1/marketplace/wallet",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Get wallet balance"
    },
    {
        "path": "/api/v1/marketplace/wallet/transactions",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Wallet ledger, newest first"
    },
    {
        "path": "/api/v1/marketplace/wallet/top-up",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Simulated wallet top-up"
    },
    # Shipments
    {
        "path": "/api/v1/marketplace/shipments",
        "methods": ["GET", "POST"],
        "auth_required": True,
        "description": "List open shipments (GET) or post a shipment (POST)"
    },
    {
        "path": "/api/v1/marketplace/shipments/{shipment_id}",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Get shipment; OTPs visible to the sender only"
    },
    {
        "path": "/api/v1/marketplace/shipments/{shipment_id}/accept",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Claim a non-bidding shipment"
    },
    {
        "path": "/api/v1/marketplace/shipments/{shipment_id}/accept-initial-price",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Take a bidding shipment at its asking price"
    },
    {
        "path": "/api/v1/marketplace/shipments/{shipment_id}/pickup",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Confirm pickup with the pickup OTP"
    },
    {
        "path": "/api/v1/marketplace/shipments/{shipment_id}/deliver",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Confirm delivery with the delivery OTP"
    },
    {
        "path": "/api/v1/marketplace/shipments/{shipment_id}/cancel",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Cancel as sender or traveler, applying the penalty schedule"
    },
    # Bids
    {
        "path": "/api/v1/marketplace/shipments/{shipment_id}/bids",
        "methods": ["GET", "POST"],
        "auth_required": True,
        "description": "List bids as sender (GET) or place a bid as traveler (POST)"
    },
    {
        "path": "/api/v1/marketplace/shipments/{shipment_id}/bids/reject-all",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Reject every pending bid"
    },
    {
        "path": "/api/v1/marketplace/bids/mine",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Caller's bids, newest first"
    },
    {
        "path": "/api/v1/marketplace/bids/{bid_id}/accept",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Accept a bid and reject the rest"
    },
    {
        "path": "/api/v1/marketplace/bids/{bid_id}/reject",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Reject a pending bid"
    },
    {
        "path": "/api/v1/marketplace/bids/{bid_id}/withdraw",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Withdraw own pending bid"
    },
    # Trips
    {
        "path": "/api/v1/marketplace/trips/me",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Current and past shipments of the caller"
    },
    {
        "path": "/api/v1/marketplace/trips/plan",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Open shipments along a route"
    },
    {
        "path": "/api/v1/marketplace/trips/can-modify",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Whether the trip can still be edited"
    },
    {
        "path": "/api/v1/marketplace/trips/release",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Release accepted shipments back to the pool"
    },
    {
        "path": "/api/v1/marketplace/trips/edit",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Release a modifiable trip for re-planning"
    },
    {
        "path": "/api/v1/marketplace/trips/delete",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Delete a modifiable trip"
    },
    # Ratings
    {
        "path": "/api/v1/marketplace/shipments/{shipment_id}/rating",
        "methods": ["GET", "POST"],
        "auth_required": True,
        "description": "Get (GET) or submit (POST) the sender's rating of a delivered shipment"
    },
    {
        "path": "/api/v1/marketplace/travelers/{traveler_id}/ratings",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Traveler rating average and latest ratings"
    },
    # Geocoding
    {
        "path": "/api/v1/marketplace/geocode/search",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Location autocomplete inside the service area"
    },
    {
        "path": "/api/v1/marketplace/geocode/reverse",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Point to display label"
    },
]


def get_route_summary() -> Dict[str, Any]:
    """
    Compact route metadata, grouped by area.

    Returns:
        Dict with route counts and comma-joined compact paths per group
    """
    groups: Dict[str, List[str]] = {
        "health": [], "wallet": [], "shipments": [], "bids": [], "trips": [], "ratings": [], "geocode": [],
    }
    for route in SERVICE_ROUTES:
        path = route["path"]
        compact_path = path.replace(f"{BASE_PATH}/", "")
        if path.endswith("/health"):
            groups["health"].append(compact_path)
        elif "/rating" in path:
            groups["ratings"].append(compact_path)
        elif "/bids" in path:
            groups["bids"].append(compact_path)
        elif "/shipments" in path:
            groups["shipments"].append(compact_path)
        elif "/trips" in path:
            groups["trips"].append(compact_path)
        elif "/geocode" in path:
            groups["geocode"].append(compact_path)
        else:
            groups["wallet"].append(compact_path)

    return {
        "route_count": str(len(SERVICE_ROUTES)),
        "base_path": BASE_PATH,
        **{name: ",".join(paths) for name, paths in groups.items()},
        "methods": "GET,POST",
        "public_count": str(sum(1 for r in SERVICE_ROUTES if not r["auth_required"])),
        "protected_count": str(sum(1 for r in SERVICE_ROUTES if r["auth_required"])),
    }


# Service metadata
SERVICE_METADATA = {
    "service_name": "marketplace_service",
    "version": "1.0.0",
    "tags": ["v1", "marketplace", "shipments", "bids", "escrow"],
    "capabilities": [
        "shipment_posting",
        "bidding",
        "otp_delivery",
        "cancellation_penalties",
        "wallet",
        "trip_planning",
        "corridor_matching",
        "traveler_ratings",
        "event_driven"
    ]
}
