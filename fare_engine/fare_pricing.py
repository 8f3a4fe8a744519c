"""
Fare Pricing Engine

Cost-plus model: BASE + DISTANCE (fuel) + TIME (traffic).

Pricing Formula:
    liters_used   = distance_km / vehicle.fuel_efficiency
    distance_fare = round(liters_used * fuel_price * profit_margin)
    time_fare     = round(minutes * vehicle.traffic_rate)
    raw_total     = vehicle.base_fare + distance_fare + time_fare
    total         = ceil(raw_total / rounding_unit) * rounding_unit

The same core (price_trip) serves both quotes:
    calculate_fare         heuristic road metrics, shown before a route is confirmed
    calculate_locked_fare  real route with buffered traffic time, the binding price

Example (kirikuu, diesel 3100, margin 1.3, 6 km straight line):
    7.8 km road, 16 min -> 0.65 L -> distance 2620, time 2400
    13000 + 2620 + 2400 = 18020 -> 18500 TZS
"""

import logging
import warnings
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from .core.config import Settings
from .fare_distance import estimate_road_metrics, round_half_up
from .fare_models import (
    FareBreakdown,
    FareResult,
    FuelType,
    GeoPoint,
    RoadMetrics,
    RouteResult,
    VehicleClass,
)
from .vehicle_registry import VehicleRegistry

logger = logging.getLogger(__name__)

RouteProvider = Callable[[GeoPoint, GeoPoint], Awaitable[RouteResult]]


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True)
class PricingConfig:
    """Market constants for one pricing version. Passed to every calculator."""
    fuel_price_petrol: int = 3200
    fuel_price_diesel: int = 3100
    profit_margin: Decimal = Decimal("1.3")
    rounding_unit: int = 500
    route_buffer_multiplier: Decimal = Decimal("1.15")
    demurrage_multiplier: Decimal = Decimal("0.1")
    currency: str = "TZS"
    version: str = "tz-2026-01"

    def __post_init__(self):
        for name in ("profit_margin", "route_buffer_multiplier", "demurrage_multiplier"):
            object.__setattr__(self, name, Decimal(str(getattr(self, name))))
        if self.rounding_unit <= 0:
            raise ValueError("rounding_unit must be positive")
        if self.profit_margin <= 1:
            raise ValueError("profit_margin must be greater than 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingConfig":
        return cls(
            fuel_price_petrol=settings.fuel_price_petrol,
            fuel_price_diesel=settings.fuel_price_diesel,
            profit_margin=settings.profit_margin,
            rounding_unit=settings.rounding_unit,
            route_buffer_multiplier=settings.route_buffer_multiplier,
            demurrage_multiplier=settings.demurrage_multiplier,
            currency=settings.currency,
            version=settings.pricing_version,
        )

    def fuel_price_for(self, fuel_type: FuelType) -> int:
        if fuel_type == FuelType.DIESEL:
            return self.fuel_price_diesel
        return self.fuel_price_petrol

    def demurrage_rate_for(self, vehicle: VehicleClass) -> int:
        """Default per-minute overtime charge for a vehicle, in whole TZS."""
        rate = self.demurrage_multiplier * self.fuel_price_for(vehicle.fuel_type)
        return int(round_half_up(rate))


@dataclass(frozen=True)
class TripInputs:
    """Distance and time a fare is priced on, independent of where they came from."""
    distance_km: Decimal
    minutes: Decimal
    uses_winding_heuristic: bool


# ============================================================================
# CORE PRICING
# ============================================================================

def round_up_to_step(value: int | Decimal, step: int | Decimal) -> int | Decimal:
    """
    Round a value UP to the nearest multiple of step.

    Examples:
        round_up_to_step(18019, 500) = 18500
        round_up_to_step(18000, 500) = 18000  # Already a multiple
        round_up_to_step(18001, 500) = 18500  # Slightly over
    """
    if step <= 0:
        return value

    remainder = value % step
    if remainder == 0:
        return value

    return value - remainder + step


def price_trip(vehicle: VehicleClass, trip: TripInputs, config: PricingConfig) -> FareBreakdown:
    fuel_price = config.fuel_price_for(vehicle.fuel_type)

    liters_used = trip.distance_km / vehicle.fuel_efficiency
    distance_fare = round_half_up(liters_used * fuel_price * config.profit_margin)
    time_fare = round_half_up(trip.minutes * vehicle.traffic_rate)

    return FareBreakdown(
        base=vehicle.base_fare,
        distance=int(distance_fare),
        time=int(time_fare),
    )


def _build_result(
    vehicle: VehicleClass,
    trip: TripInputs,
    breakdown: FareBreakdown,
    metrics: RoadMetrics,
    config: PricingConfig,
    route: Optional[RouteResult] = None,
) -> FareResult:
    raw_total = breakdown.subtotal
    total = round_up_to_step(raw_total, config.rounding_unit)
    return FareResult(
        total=total,
        raw_total=raw_total,
        breakdown=breakdown,
        currency=config.currency,
        metrics=metrics,
        vehicle_id=vehicle.id,
        display_price=format_tzs(total, config.currency),
        pricing_version=config.version,
        uses_winding_heuristic=trip.uses_winding_heuristic,
        route=route,
    )


def calculate_fare(
    vehicle_id: str,
    pickup: GeoPoint,
    dropoff: GeoPoint,
    *,
    registry: VehicleRegistry,
    config: PricingConfig,
) -> FareResult:
    """
    Estimate a fare from straight-line geography.

    This is a pre-commitment estimate; it must never be charged.

    Raises:
        UnknownVehicle: vehicle_id is not in the registry
    """
    vehicle = registry.get_vehicle(vehicle_id)
    metrics = estimate_road_metrics(pickup, dropoff)

    trip = TripInputs(
        distance_km=metrics.road_distance_km,
        minutes=Decimal(metrics.estimated_minutes),
        uses_winding_heuristic=True,
    )
    breakdown = price_trip(vehicle, trip, config)
    result = _build_result(vehicle, trip, breakdown, metrics, config)

    logger.debug(
        f"[FARE] estimate {vehicle_id}: {metrics.road_distance_km} km, "
        f"{metrics.estimated_minutes} min -> {result.raw_total} -> {result.total}"
    )
    return result


def calculate_locked_fare(
    vehicle_id: str,
    route: RouteResult,
    *,
    registry: VehicleRegistry,
    config: PricingConfig,
) -> FareResult:
    """
    Price a trip from a real route. This is the binding fare.

    Distance is the route's road distance (no winding factor) and time is the
    buffered traffic duration, never the raw or traffic-free duration.

    Raises:
        UnknownVehicle: vehicle_id is not in the registry
    """
    vehicle = registry.get_vehicle(vehicle_id)

    trip = TripInputs(
        distance_km=route.distance_km,
        minutes=route.buffered_duration_mins,
        uses_winding_heuristic=False,
    )
    breakdown = price_trip(vehicle, trip, config)

    if route.duration_mins > 0:
        speed = round_half_up(route.distance_km / (route.duration_mins / 60), "0.01")
    else:
        speed = Decimal("0")

    metrics = RoadMetrics(
        haversine_km=route.distance_km,
        road_distance_km=route.distance_km,
        winding_factor=Decimal("1"),
        estimated_speed_kmh=speed,
        estimated_minutes=int(round_half_up(route.buffered_duration_mins)),
    )
    result = _build_result(vehicle, trip, breakdown, metrics, config, route=route)

    logger.info(
        f"[FARE] locked {vehicle_id}: {route.distance_km} km, "
        f"{route.buffered_duration_mins:.2f} buffered min -> {result.total} {config.currency}"
    )
    return result


async def quote_locked_fare(
    vehicle_id: str,
    origin: GeoPoint,
    destination: GeoPoint,
    *,
    registry: VehicleRegistry,
    config: PricingConfig,
    route_provider: RouteProvider,
) -> FareResult:
    """
    Fetch a real route and lock the fare on it.

    The vehicle is checked before the routing call. A RoutingUnavailable from
    the provider propagates unchanged; no estimate is substituted.
    """
    registry.get_vehicle(vehicle_id)
    route = await route_provider(origin, destination)
    return calculate_locked_fare(vehicle_id, route, registry=registry, config=config)


# ============================================================================
# DISPLAY HELPERS
# ============================================================================

def format_tzs(amount: int | Decimal, currency: str = "TZS") -> str:
    """
    Format a currency amount for display.

    Examples:
        format_tzs(1_250_000) = "1.3M TZS"
        format_tzs(18500) = "19K TZS"
        format_tzs(750) = "750 TZS"
    """
    value = Decimal(str(amount))
    if value >= 1_000_000:
        return f"{round_half_up(value / 1_000_000, '0.1')}M {currency}"
    if value >= 1000:
        return f"{round_half_up(value / 1000)}K {currency}"
    return f"{amount} {currency}"


def get_zero_state_pricing(
    vehicle_id: str,
    *,
    registry: VehicleRegistry,
    config: PricingConfig,
) -> dict:
    """'Starts at' label shown for a vehicle before a destination is chosen."""
    vehicle = registry.find_vehicle(vehicle_id)
    if vehicle is None:
        return {
            "display_label": "Starts at",
            "display_price": "---",
            "base_fare": 0,
        }
    return {
        "display_label": "Starts at",
        "display_price": format_tzs(vehicle.base_fare, config.currency),
        "base_fare": vehicle.base_fare,
    }


def create_pricing_snapshot(config: PricingConfig, vehicle: VehicleClass) -> dict:
    """
    Capture the parameters a quote was priced with.

    Stored alongside a ride so the quoted price can be verified later, even
    after market constants change.
    """
    return {
        "pricing_version": config.version,
        "vehicle_id": vehicle.id,
        "fuel_type": vehicle.fuel_type.value,
        "fuel_price_snapshot": config.fuel_price_for(vehicle.fuel_type),
        "profit_margin_snapshot": str(config.profit_margin),
        "rounding_unit_snapshot": config.rounding_unit,
        "route_buffer_snapshot": str(config.route_buffer_multiplier),
        "base_fare_snapshot": vehicle.base_fare,
        "fuel_efficiency_snapshot": str(vehicle.fuel_efficiency),
        "traffic_rate_snapshot": vehicle.traffic_rate,
    }


# ============================================================================
# LEGACY COMPATIBILITY
# ============================================================================

def calculate_est_fare(
    base_fare: int,
    per_km_rate: int | Decimal,
    distance_km: float | Decimal,
    rounding_unit: int = 500,
    currency: str = "TZS",
) -> dict:
    """
    Flat per-km fare with no fuel or traffic decomposition.

    Deprecated: use calculate_fare(). Kept for callers that still price
    by a per-km rate card.
    """
    warnings.warn(
        "calculate_est_fare() is deprecated; use calculate_fare() for accurate pricing",
        DeprecationWarning,
        stacklevel=2,
    )
    distance = Decimal(str(distance_km))
    distance_fare = Decimal(str(per_km_rate)) * distance
    total = int(round_up_to_step(base_fare + distance_fare, rounding_unit))
    return {
        "base_fare": base_fare,
        "distance_fare": float(distance_fare),
        "total_fare": total,
        "distance_km": float(distance),
        "display_price": format_tzs(total, currency),
        "display_label": "Est. Total",
    }
