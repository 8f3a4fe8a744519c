"""
Fare Engine Models

Immutable value types shared by the distance estimator, the calculators and
the routing client. A FareResult is recomputed on every input change, never
updated in place, so all of these are frozen dataclasses.

Amounts are whole TZS (int). Distances and durations are Decimal so that
each rounding step is explicit.
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from numbers import Real
from typing import Optional

from .fare_errors import InvalidCoordinates


# ============================================================================
# ENUMS
# ============================================================================

class FuelType(str, Enum):
    """Fuel a vehicle class runs on; selects the market fuel price."""
    PETROL = "petrol"
    DIESEL = "diesel"


# ============================================================================
# GEOGRAPHY
# ============================================================================

def _validate_coordinate(value, name: str, limit: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        raise InvalidCoordinates(f"{name} must be a number, got {value!r}", field=name)
    number = float(value)
    if not math.isfinite(number):
        raise InvalidCoordinates(f"{name} must be finite, got {value!r}", field=name)
    if not -limit <= number <= limit:
        raise InvalidCoordinates(
            f"{name} must be between -{limit:g} and {limit:g}, got {value!r}",
            field=name,
        )
    return number


@dataclass(frozen=True)
class GeoPoint:
    """WGS84 coordinate in decimal degrees. Out-of-range values are rejected, never clamped."""
    lat: float
    lng: float

    def __post_init__(self):
        object.__setattr__(self, "lat", _validate_coordinate(self.lat, "lat", 90.0))
        object.__setattr__(self, "lng", _validate_coordinate(self.lng, "lng", 180.0))

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}


# ============================================================================
# VEHICLES
# ============================================================================

@dataclass(frozen=True)
class VehicleClass:
    """
    Pricing attributes of one vehicle class.

    base_fare and traffic_rate are TZS; fuel_efficiency is km per liter.
    """
    id: str
    label: str
    base_fare: int
    fuel_efficiency: Decimal
    traffic_rate: int
    fuel_type: FuelType
    tier: int = 1
    label_sw: str = ""
    capacity: str = ""
    description: str = ""
    free_loading_minutes: int = 45

    def __post_init__(self):
        object.__setattr__(self, "fuel_efficiency", Decimal(str(self.fuel_efficiency)))
        object.__setattr__(self, "fuel_type", FuelType(self.fuel_type))
        if self.fuel_efficiency <= 0:
            raise ValueError(f"fuel_efficiency must be > 0 for vehicle {self.id}")
        if self.traffic_rate < 0:
            raise ValueError(f"traffic_rate must be >= 0 for vehicle {self.id}")
        if self.base_fare < 0:
            raise ValueError(f"base_fare must be >= 0 for vehicle {self.id}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "label_sw": self.label_sw,
            "capacity": self.capacity,
            "description": self.description,
            "tier": self.tier,
            "base_fare": self.base_fare,
            "fuel_efficiency": float(self.fuel_efficiency),
            "traffic_rate": self.traffic_rate,
            "fuel_type": self.fuel_type.value,
            "free_loading_minutes": self.free_loading_minutes,
        }


# ============================================================================
# ROUTE METRICS
# ============================================================================

@dataclass(frozen=True)
class RoadMetrics:
    """Distance and time a fare was priced on."""
    haversine_km: Decimal
    road_distance_km: Decimal
    winding_factor: Decimal
    estimated_speed_kmh: Decimal
    estimated_minutes: int

    def to_dict(self) -> dict:
        return {
            "haversine_km": float(self.haversine_km),
            "road_distance_km": float(self.road_distance_km),
            "winding_factor": float(self.winding_factor),
            "estimated_speed_kmh": float(self.estimated_speed_kmh),
            "estimated_minutes": self.estimated_minutes,
        }


@dataclass(frozen=True)
class RouteResult:
    """
    Real route returned by the routing service.

    buffered_duration_mins is the traffic duration inflated by the safety
    buffer. Build instances with from_durations() so the buffer is applied
    in exactly one place.
    """
    distance_km: Decimal
    duration_mins: Decimal
    traffic_duration_mins: Decimal
    buffered_duration_mins: Decimal
    polyline: str = ""

    @classmethod
    def from_durations(
        cls,
        distance_km: Decimal | float,
        duration_mins: Decimal | float,
        traffic_duration_mins: Decimal | float,
        buffer_multiplier: Decimal | float,
        polyline: str = "",
    ) -> "RouteResult":
        traffic = Decimal(str(traffic_duration_mins))
        return cls(
            distance_km=Decimal(str(distance_km)),
            duration_mins=Decimal(str(duration_mins)),
            traffic_duration_mins=traffic,
            buffered_duration_mins=traffic * Decimal(str(buffer_multiplier)),
            polyline=polyline,
        )

    def to_dict(self) -> dict:
        return {
            "distance_km": float(self.distance_km),
            "duration_mins": float(self.duration_mins),
            "traffic_duration_mins": float(self.traffic_duration_mins),
            "buffered_duration_mins": float(self.buffered_duration_mins),
            "polyline": self.polyline,
        }


# ============================================================================
# FARES
# ============================================================================

@dataclass(frozen=True)
class FareBreakdown:
    """Itemized fare: base booking fee, fuel-derived distance cost, traffic time cost."""
    base: int
    distance: int
    time: int

    @property
    def subtotal(self) -> int:
        return self.base + self.distance + self.time

    def to_dict(self) -> dict:
        return {"base": self.base, "distance": self.distance, "time": self.time}


@dataclass(frozen=True)
class FareResult:
    """
    A priced quote.

    total is always round_up_to_step(breakdown.subtotal, rounding unit);
    raw_total equals breakdown.subtotal.
    """
    total: int
    raw_total: int
    breakdown: FareBreakdown
    currency: str
    metrics: RoadMetrics
    vehicle_id: str
    display_price: str
    pricing_version: Optional[str] = None
    uses_winding_heuristic: bool = True
    route: Optional[RouteResult] = field(default=None, compare=False)

    @property
    def is_locked(self) -> bool:
        return not self.uses_winding_heuristic

    def to_dict(self) -> dict:
        data = {
            "total": self.total,
            "raw_total": self.raw_total,
            "breakdown": self.breakdown.to_dict(),
            "currency": self.currency,
            "metrics": self.metrics.to_dict(),
            "vehicle_id": self.vehicle_id,
            "display_price": self.display_price,
            "pricing_version": self.pricing_version,
            "quote_type": "locked" if self.is_locked else "estimate",
            "uses_winding_heuristic": self.uses_winding_heuristic,
        }
        if self.route is not None:
            data["route"] = self.route.to_dict()
        return data
