"""
Marketplace Microservice API

Peer-to-peer delivery marketplace: shipments, bids, OTP-gated delivery,
cancellation penalties, traveler trips and ratings.
"""

import os
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

# Add parent directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../.."))
from core.auth_dependencies import CurrentUser, get_current_user
from core.config_manager import ConfigManager
from core.logger import setup_service_logger
from core.nats_client import get_event_bus

from .factory import MarketplaceServices, create_marketplace_services
from .models import (
    CancelShipmentRequest,
    CreateShipmentRequest,
    ErrorKind,
    HealthCheckResponse,
    MarketplaceResult,
    OtpRequest,
    PlaceBidRequest,
    PlanTripRequest,
    RegisterUserRequest,
    SubmitRatingRequest,
    TopUpRequest,
    TripShipmentsRequest,
)
from .protocols import MarketplaceError, NotAuthenticatedError
from .routes_registry import SERVICE_METADATA, get_route_summary

# Initialize configuration manager
config_manager = ConfigManager("marketplace_service")
config = config_manager.get_service_config()

# Configure logging
logger = setup_service_logger("marketplace_service", level=config.log_level.upper())

# Print configuration info (development environment)
if config.debug:
    config_manager.print_config_summary(show_secrets=False)

# Global variables
marketplace_services: Optional[MarketplaceServices] = None
event_bus = None  # NATS event bus
SERVICE_PORT = config.service_port or 8240

STATUS_BY_KIND = {
    ErrorKind.NOT_AUTHENTICATED: 401,
    ErrorKind.NOT_AUTHORIZED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ALREADY_TAKEN: 409,
    ErrorKind.SHIPMENT_UNAVAILABLE: 409,
    ErrorKind.BID_STALE: 409,
    ErrorKind.DUPLICATE_PENDING: 409,
    ErrorKind.TERMINAL_STATE: 409,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.ALREADY_RATED: 409,
    ErrorKind.LIMIT_EXCEEDED: 429,
    ErrorKind.INSUFFICIENT_FUNDS: 402,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.NOT_ELIGIBLE: 400,
    ErrorKind.UPSTREAM_UNAVAILABLE: 503,
    ErrorKind.INTERNAL_ERROR: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    global marketplace_services, event_bus

    try:
        # Initialize NATS JetStream event bus
        if config.nats_enabled:
            try:
                event_bus = await get_event_bus("marketplace_service", config_manager)
                logger.info("✅ Event bus initialized successfully")
            except Exception as e:
                logger.warning(
                    f"⚠️  Failed to initialize event bus: {e}. Continuing without events."
                )
                event_bus = None

        # Create services using factory (with or without event bus)
        marketplace_services = create_marketplace_services(config=config_manager, event_bus=event_bus)

        # Initialize repository connection
        await marketplace_services.repository.initialize()

        # Subscribe to events if event bus is available
        if event_bus:
            try:
                from .events import get_event_handlers

                handler_map = get_event_handlers(marketplace_services.escrow)
                for pattern, handler_func in handler_map.items():
                    await event_bus.subscribe_to_events(
                        pattern=pattern,
                        handler=handler_func,
                        durable=f"marketplace-{pattern.replace('.', '-').replace('*', 'all')}-consumer",
                    )
                    logger.info(f"✅ Subscribed to {pattern}")
            except Exception as e:
                logger.warning(f"⚠️  Failed to subscribe to events: {e}")

        route_meta = get_route_summary()
        logger.info(
            f"✅ Marketplace service started on port {SERVICE_PORT} "
            f"({route_meta['route_count']} routes under {route_meta['base_path']})"
        )
        yield

    except Exception as e:
        logger.error(f"Failed to initialize marketplace service: {e}")
        raise
    finally:
        if marketplace_services:
            await marketplace_services.close()

        if event_bus:
            try:
                await event_bus.close()
                logger.info("Marketplace event bus closed")
            except Exception as e:
                logger.error(f"Error closing event bus: {e}")

        if marketplace_services:
            await marketplace_services.repository.close()
            logger.info("Marketplace service database connections closed")


# Create FastAPI application
app = FastAPI(
    title="Marketplace Service",
    description="Peer-to-peer delivery marketplace: shipments, bids, escrow and trips",
    version=SERVICE_METADATA["version"],
    lifespan=lifespan,
)


# ====================
# Result mapping
# ====================


def to_response(result: MarketplaceResult, success_status: int = 200) -> JSONResponse:
    """The body is always the discriminated result; the status follows the error kind"""
    if result.success:
        status_code = success_status
    else:
        status_code = STATUS_BY_KIND.get(result.error, 500)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    return to_response(MarketplaceResult.fail(exc.kind, exc.message))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field_path = ".".join(str(p) for p in first.get("loc", []) if p != "body")
    message = f"{field_path}: {first.get('msg')}" if field_path else "Invalid request"
    return to_response(MarketplaceResult.fail(ErrorKind.VALIDATION_ERROR, message))


# ====================
# Dependency Injection
# ====================


async def get_marketplace_services() -> MarketplaceServices:
    """Get marketplace services instance"""
    if not marketplace_services:
        raise HTTPException(status_code=503, detail="Marketplace service not initialized")
    return marketplace_services


async def require_user(user: Optional[CurrentUser] = Depends(get_current_user)) -> CurrentUser:
    """Every marketplace route acts on behalf of an authenticated user"""
    if user is None:
        raise NotAuthenticatedError("Authentication required")
    return user


# ====================
# Health Check
# ====================


@app.get("/api/v1/marketplace/health")
@app.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """Basic health check"""
    dependencies = {}

    # Check database connection
    try:
        if marketplace_services and getattr(marketplace_services.repository, "db", None):
            result = await marketplace_services.repository.db.health_check()
            dependencies["database"] = "healthy" if result and result.get('healthy') else "unhealthy"
        else:
            dependencies["database"] = "unhealthy"
    except Exception:
        dependencies["database"] = "unhealthy"

    # Check event bus
    try:
        if event_bus and hasattr(event_bus, 'is_connected'):
            dependencies["event_bus"] = "healthy" if event_bus.is_connected else "unhealthy"
        else:
            dependencies["event_bus"] = "not_configured"
    except Exception:
        dependencies["event_bus"] = "unhealthy"

    status = "healthy" if all(v in ["healthy", "not_configured"] for v in dependencies.values()) else "degraded"

    return HealthCheckResponse(
        status=status,
        service="marketplace_service",
        port=SERVICE_PORT,
        version=SERVICE_METADATA["version"],
        timestamp=datetime.utcnow().isoformat(),
        dependencies=dependencies,
    )


# ====================
# Users and Wallet
# ====================


@app.post("/api/v1/marketplace/users/me")
async def register_user(
    request: Optional[RegisterUserRequest] = None,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    """Create or refresh the caller's wallet row"""
    full_name = request.full_name if request else None
    return to_response(await services.escrow.register_user(user.id, user.email, full_name))


@app.get("/api/v1/marketplace/wallet")
async def get_wallet(
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.escrow.get_wallet(user.id))


@app.get("/api/v1/marketplace/wallet/transactions")
async def get_wallet_transactions(
    limit: int = Query(50, ge=1, le=200),
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.escrow.get_wallet_transactions(user.id, limit=limit))


@app.post("/api/v1/marketplace/wallet/top-up")
async def top_up_wallet(
    request: TopUpRequest,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    """Simulated top-up"""
    return to_response(await services.escrow.top_up_wallet(user.id, request.amount))


# ====================
# Shipments
# ====================


@app.post("/api/v1/marketplace/shipments")
async def create_shipment(
    request: CreateShipmentRequest,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.shipments.create_shipment(user.id, request), success_status=201)


@app.get("/api/v1/marketplace/shipments")
async def list_open_shipments(
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    """Pending shipments posted by other users"""
    return to_response(await services.shipments.list_open_shipments(exclude_sender_id=user.id))


@app.get("/api/v1/marketplace/shipments/{shipment_id}")
async def get_shipment(
    shipment_id: str,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.shipments.get_shipment(shipment_id, viewer_id=user.id))


@app.post("/api/v1/marketplace/shipments/{shipment_id}/accept")
async def direct_accept(
    shipment_id: str,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    """Claim a non-bidding shipment"""
    return to_response(await services.shipments.direct_accept(shipment_id, user.id))


@app.post("/api/v1/marketplace/shipments/{shipment_id}/accept-initial-price")
async def accept_initial_price(
    shipment_id: str,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.bids.accept_initial_price(shipment_id, user.id))


@app.post("/api/v1/marketplace/shipments/{shipment_id}/pickup")
async def confirm_pickup(
    shipment_id: str,
    request: OtpRequest,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.shipments.confirm_pickup(shipment_id, user.id, request.otp))


@app.post("/api/v1/marketplace/shipments/{shipment_id}/deliver")
async def confirm_delivery(
    shipment_id: str,
    request: OtpRequest,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.shipments.confirm_delivery(shipment_id, user.id, request.otp))


@app.post("/api/v1/marketplace/shipments/{shipment_id}/cancel")
async def cancel_shipment(
    shipment_id: str,
    request: Optional[CancelShipmentRequest] = None,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    role = request.role if request else None
    return to_response(await services.escrow.cancel(shipment_id, user.id, role=role))


# ====================
# Bids
# ====================


@app.post("/api/v1/marketplace/shipments/{shipment_id}/bids")
async def create_bid(
    shipment_id: str,
    request: PlaceBidRequest,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    result = await services.bids.create_bid(shipment_id, user.id, request.offered_price)
    return to_response(result, success_status=201)


@app.get("/api/v1/marketplace/shipments/{shipment_id}/bids")
async def get_shipment_bids(
    shipment_id: str,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.bids.get_shipment_bids(shipment_id, user.id))


@app.post("/api/v1/marketplace/shipments/{shipment_id}/bids/reject-all")
async def reject_all_bids(
    shipment_id: str,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.bids.reject_all_bids(shipment_id, user.id))


@app.get("/api/v1/marketplace/bids/mine")
async def get_my_bids(
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.bids.get_my_bids(user.id))


@app.post("/api/v1/marketplace/bids/{bid_id}/accept")
async def accept_bid(
    bid_id: str,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.bids.accept_bid(bid_id, user.id))


@app.post("/api/v1/marketplace/bids/{bid_id}/reject")
async def reject_bid(
    bid_id: str,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.bids.reject_bid(bid_id, user.id))


@app.post("/api/v1/marketplace/bids/{bid_id}/withdraw")
async def withdraw_bid(
    bid_id: str,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.bids.withdraw_bid(bid_id, user.id))


# ====================
# Trips
# ====================


@app.get("/api/v1/marketplace/trips/me")
async def get_trip(
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.trips.get_trip(user.id))


@app.post("/api/v1/marketplace/trips/plan")
async def plan_trip(
    request: PlanTripRequest,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    """Open shipments along the traveler's route"""
    return to_response(
        await services.shipments.plan_trip(user.id, request.origin, request.destination)
    )


@app.post("/api/v1/marketplace/trips/can-modify")
async def can_modify_trip(
    request: TripShipmentsRequest,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.trips.can_modify(request.shipment_ids, user.id))


@app.post("/api/v1/marketplace/trips/release")
async def release_trip(
    request: TripShipmentsRequest,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.trips.release_trip(request.shipment_ids, user.id))


@app.post("/api/v1/marketplace/trips/edit")
async def edit_trip(
    request: TripShipmentsRequest,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.trips.edit_trip(request.shipment_ids, user.id))


@app.post("/api/v1/marketplace/trips/delete")
async def delete_trip(
    request: TripShipmentsRequest,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.trips.delete_trip(request.shipment_ids, user.id))


# ====================
# Ratings
# ====================


@app.post("/api/v1/marketplace/shipments/{shipment_id}/rating")
async def submit_rating(
    shipment_id: str,
    request: SubmitRatingRequest,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    """Sender rates the traveler of a delivered shipment"""
    result = await services.ratings.submit_rating(shipment_id, user.id, request.rating, request.comment)
    return to_response(result, success_status=201)


@app.get("/api/v1/marketplace/shipments/{shipment_id}/rating")
async def get_rating(
    shipment_id: str,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.ratings.get_rating(shipment_id))


@app.get("/api/v1/marketplace/travelers/{traveler_id}/ratings")
async def get_traveler_ratings(
    traveler_id: str,
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.ratings.get_traveler_ratings(traveler_id))


# ====================
# Geocoding
# ====================


@app.get("/api/v1/marketplace/geocode/search")
async def search_locations(
    q: str = Query(..., description="Free-form location query"),
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.shipments.search_locations(q))


@app.get("/api/v1/marketplace/geocode/reverse")
async def reverse_geocode(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    user: CurrentUser = Depends(require_user),
    services: MarketplaceServices = Depends(get_marketplace_services),
):
    return to_response(await services.shipments.reverse_geocode(lat, lng))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "microservices.marketplace_service.main:app",
        host=config.service_host,
        port=SERVICE_PORT,
        reload=config.debug,
        log_level=config.log_level.lower(),
    )
