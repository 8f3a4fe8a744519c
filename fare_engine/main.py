import logging
from functools import lru_cache, partial
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .core.config import get_settings
from .core.responses import ErrorCodes, error_response, success_response
from .fare_errors import FareEngineError, InvalidCoordinates, RoutingUnavailable, UnknownVehicle
from .fare_models import GeoPoint
from .fare_pricing import (
    PricingConfig,
    RouteProvider,
    calculate_fare,
    get_zero_state_pricing,
    quote_locked_fare,
)
from .loading_timer import (
    DEFAULT_LOADING_WINDOW_MIN,
    LoadingSnapshot,
    LoadingTimerManager,
    SystemClock,
)
from .route_service import get_route_data
from .vehicle_registry import InMemoryVehicleRegistry, default_registry


settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="BebaX Fare Engine")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ────────────────────────────────────────────────────────────────
# Dependencies
# ────────────────────────────────────────────────────────────────

def get_vehicle_registry() -> InMemoryVehicleRegistry:
    return default_registry()


@lru_cache
def get_pricing_config() -> PricingConfig:
    return PricingConfig.from_settings(get_settings())


def get_route_provider(config: PricingConfig = Depends(get_pricing_config)) -> RouteProvider:
    return partial(get_route_data, buffer_multiplier=config.route_buffer_multiplier)


def _log_overtime(snapshot: LoadingSnapshot) -> None:
    logger.warning(
        f"[LOADING] Demurrage now accruing for ride {snapshot.ride_id} "
        f"at {snapshot.demurrage_rate}/min"
    )


@lru_cache
def get_loading_manager() -> LoadingTimerManager:
    clock = SystemClock(interval_s=get_settings().loading_tick_interval_s)
    return LoadingTimerManager(clock, on_overtime=_log_overtime)


# ────────────────────────────────────────────────────────────────
# Error handling
# ────────────────────────────────────────────────────────────────

_ERROR_STATUS = {
    UnknownVehicle: status.HTTP_404_NOT_FOUND,
    InvalidCoordinates: status.HTTP_422_UNPROCESSABLE_ENTITY,
    RoutingUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(FareEngineError)
async def fare_engine_error_handler(request: Request, exc: FareEngineError) -> JSONResponse:
    status_code = _ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    details = None
    if isinstance(exc, UnknownVehicle):
        details = {"vehicle_id": exc.vehicle_id}
    elif isinstance(exc, InvalidCoordinates) and exc.field:
        details = {"field": exc.field}
    elif isinstance(exc, RoutingUnavailable):
        details = {"provider_status": exc.status}
    return JSONResponse(
        status_code=status_code,
        content=error_response(exc.code, exc.message, details),
    )


# ────────────────────────────────────────────────────────────────
# Request models
# ────────────────────────────────────────────────────────────────

class GeoPointIn(BaseModel):
    lat: float
    lng: float

    def to_point(self) -> GeoPoint:
        return GeoPoint(self.lat, self.lng)


class FareQuoteRequest(BaseModel):
    vehicle_id: str = Field(..., min_length=1, max_length=32)
    pickup: GeoPointIn
    dropoff: GeoPointIn


class LoadingStartRequest(BaseModel):
    vehicle_id: Optional[str] = Field(default=None, description="Used for default window and rate")
    loading_window_min: Optional[int] = Field(default=None, ge=0, le=24 * 60)
    demurrage_rate: Optional[int] = Field(default=None, ge=0)


# ────────────────────────────────────────────────────────────────
# Routes
# ────────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/vehicles")
async def list_vehicles(
    tier: Optional[int] = None,
    registry: InMemoryVehicleRegistry = Depends(get_vehicle_registry),
):
    vehicles = registry.vehicles_by_tier(tier) if tier is not None else registry.list_vehicles()
    return success_response([v.to_dict() for v in vehicles])


@app.get("/vehicles/{vehicle_id}/starting-price")
async def vehicle_starting_price(
    vehicle_id: str,
    registry: InMemoryVehicleRegistry = Depends(get_vehicle_registry),
    config: PricingConfig = Depends(get_pricing_config),
):
    return success_response(get_zero_state_pricing(vehicle_id, registry=registry, config=config))


@app.post("/fares/estimate")
async def estimate_fare(
    payload: FareQuoteRequest,
    registry: InMemoryVehicleRegistry = Depends(get_vehicle_registry),
    config: PricingConfig = Depends(get_pricing_config),
):
    result = calculate_fare(
        payload.vehicle_id,
        payload.pickup.to_point(),
        payload.dropoff.to_point(),
        registry=registry,
        config=config,
    )
    return success_response(result.to_dict())


@app.post("/fares/locked")
async def locked_fare(
    payload: FareQuoteRequest,
    registry: InMemoryVehicleRegistry = Depends(get_vehicle_registry),
    config: PricingConfig = Depends(get_pricing_config),
    route_provider: RouteProvider = Depends(get_route_provider),
):
    pickup = payload.pickup.to_point()
    dropoff = payload.dropoff.to_point()
    try:
        result = await quote_locked_fare(
            payload.vehicle_id,
            pickup,
            dropoff,
            registry=registry,
            config=config,
            route_provider=route_provider,
        )
    except RoutingUnavailable as e:
        logger.warning(f"[FARE] Locked fare unavailable for {payload.vehicle_id}: {e.status}")
        raise
    return success_response(result.to_dict())


@app.post("/rides/{ride_id}/loading/start")
async def start_loading(
    ride_id: str,
    payload: Optional[LoadingStartRequest] = None,
    registry: InMemoryVehicleRegistry = Depends(get_vehicle_registry),
    config: PricingConfig = Depends(get_pricing_config),
    manager: LoadingTimerManager = Depends(get_loading_manager),
):
    payload = payload or LoadingStartRequest()

    window = DEFAULT_LOADING_WINDOW_MIN
    rate = 0
    if payload.vehicle_id is not None:
        vehicle = registry.get_vehicle(payload.vehicle_id)
        window = vehicle.free_loading_minutes
        rate = config.demurrage_rate_for(vehicle)
    if payload.loading_window_min is not None:
        window = payload.loading_window_min
    if payload.demurrage_rate is not None:
        rate = payload.demurrage_rate

    snapshot = manager.start(ride_id, loading_window_min=window, demurrage_rate=rate)
    return success_response(snapshot.to_dict())


@app.post("/rides/{ride_id}/loading/stop")
async def stop_loading(
    ride_id: str,
    manager: LoadingTimerManager = Depends(get_loading_manager),
):
    snapshot = manager.stop(ride_id)
    if snapshot is None:
        return _ride_not_found(ride_id)
    return success_response(snapshot.to_dict())


@app.get("/rides/{ride_id}/loading")
async def loading_status(
    ride_id: str,
    manager: LoadingTimerManager = Depends(get_loading_manager),
):
    timer = manager.get(ride_id)
    if timer is None:
        return _ride_not_found(ride_id)
    return success_response(timer.snapshot().to_dict())


def _ride_not_found(ride_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=error_response(
            ErrorCodes.RIDE_NOT_FOUND,
            "No loading session for this ride",
            {"ride_id": ride_id},
        ),
    )
