"""
Distance Estimator

Turns two GPS points into a straight-line distance plus a heuristic road
distance and ETA, without calling a routing service. Used for the
pre-confirmation estimate only.

Tiers (by straight-line distance):
    < 5 km        winding 1.5, 15 km/h  (city centre, lots of turns)
    5 - 15 km     winding 1.3, 30 km/h  (mixed roads)
    > 15 km       winding 1.3, 45 km/h  (highway sections)

Example:
    6.00 km straight line -> 7.8 km road -> 16 minutes at 30 km/h
"""

import math
from decimal import Decimal, ROUND_HALF_UP
from functools import lru_cache
from typing import NamedTuple

from .fare_models import GeoPoint, RoadMetrics

# Mean Earth radius
EARTH_RADIUS_KM = 6371

SHORT_TRIP_MAX_KM = Decimal("5")
MEDIUM_TRIP_MAX_KM = Decimal("15")


class RoadTier(NamedTuple):
    winding_factor: Decimal
    speed_kmh: Decimal


SHORT_TRIP_TIER = RoadTier(Decimal("1.5"), Decimal("15"))
MEDIUM_TRIP_TIER = RoadTier(Decimal("1.3"), Decimal("30"))
LONG_TRIP_TIER = RoadTier(Decimal("1.3"), Decimal("45"))


def round_half_up(value: Decimal, places: str = "1") -> Decimal:
    """Round to the given quantum with halves going up (0.5 -> 1, 2.25 -> 2.3 for "0.1")."""
    return value.quantize(Decimal(places), rounding=ROUND_HALF_UP)


def haversine_km(start: GeoPoint, end: GeoPoint) -> Decimal:
    """Great-circle distance in km, rounded to 2 decimal places."""
    lat1, lng1, lat2, lng2 = map(math.radians, [start.lat, start.lng, end.lat, end.lng])
    dlat = lat2 - lat1
    dlng = lng2 - lng1

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    # float error can push near-antipodal pairs just past 1
    a = min(1.0, max(0.0, a))
    c =2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return round_half_up(Decimal(str(EARTH_RADIUS_KM * c)), "0.01")


def select_road_tier(straight_line_km: Decimal) -> RoadTier:
    """Pick winding factor and speed; exactly 5 km and exactly 15 km are medium trips."""
    if straight_line_km < SHORT_TRIP_MAX_KM:
        return SHORT_TRIP_TIER
    if straight_line_km > MEDIUM_TRIP_MAX_KM:
        return LONG_TRIP_TIER
    return MEDIUM_TRIP_TIER


@lru_cache(maxsize=2048)
def estimate_road_metrics(origin: GeoPoint, destination: GeoPoint) -> RoadMetrics:
    straight_line = haversine_km(origin, destination)
    tier = select_road_tier(straight_line)

    road_distance = straight_line * tier.winding_factor
    minutes = round_half_up(road_distance / tier.speed_kmh * 60)

    return RoadMetrics(
        haversine_km=straight_line,
        road_distance_km=round_half_up(road_distance, "0.1"),
        winding_factor=tier.winding_factor,
        estimated_speed_kmh=tier.speed_kmh,
        estimated_minutes=int(minutes),
    )


def estimate_eta(pickup: GeoPoint, dropoff: GeoPoint) -> int:
    """Estimated travel time in minutes."""
    return estimate_road_metrics(pickup, dropoff).estimated_minutes
