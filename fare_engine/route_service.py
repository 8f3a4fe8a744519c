"""
Route Service - Google Directions API Integration

Fetches the real road distance and traffic-aware duration used to lock a
fare. The traffic duration is inflated by the pricing safety buffer
(default +15%) here, once, via RouteResult.from_durations().

Usage:
    from .route_service import get_route_data

    route = await get_route_data(pickup, dropoff)
    # RouteResult(distance_km=Decimal("12.4"), buffered_duration_mins=..., ...)

Any failure raises RoutingUnavailable; callers must not fall back to the
estimate as the locked price.
"""

import hashlib
import logging
from decimal import Decimal
from typing import Optional

import httpx

from .core.config import get_settings
from .fare_distance import estimate_road_metrics
from .fare_errors import RoutingUnavailable
from .fare_models import GeoPoint, RouteResult

logger = logging.getLogger(__name__)

METERS_PER_KM = Decimal("1000")
SECONDS_PER_MINUTE = Decimal("60")


async def get_route_data(
    origin: GeoPoint,
    destination: GeoPoint,
    *,
    api_key: Optional[str] = None,
    buffer_multiplier: Optional[Decimal] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> RouteResult:
    """
    Get driving distance and duration between two points.

    Args:
        origin: Pickup coordinates
        destination: Drop-off coordinates
        api_key: Google Maps API key (defaults to GOOGLE_MAPS_API_KEY setting)
        buffer_multiplier: Safety buffer on traffic time (defaults to ROUTE_BUFFER_MULTIPLIER)
        client: Shared httpx client; a short-lived one is created when omitted

    Returns:
        RouteResult with real distance, raw, traffic and buffered durations

    Raises:
        RoutingUnavailable: missing key, HTTP/connection failure, timeout or non-OK status
    """
    settings = get_settings()
    api_key = api_key or settings.google_maps_api_key
    if buffer_multiplier is None:
        buffer_multiplier = settings.route_buffer_multiplier

    if not api_key:
        logger.error("[ROUTE] GOOGLE_MAPS_API_KEY not configured")
        raise RoutingUnavailable(
            "Routing service is not configured. Please contact support.",
            status="CONFIG_ERROR",
        )

    params = {
        "origin": f"{origin.lat},{origin.lng}",
        "destination": f"{destination.lat},{destination.lng}",
        "mode": "driving",
        "traffic_model": "best_guess",
        "departure_time": "now",
        "key": api_key,
    }

    logger.info(f"[ROUTE] Requesting route {params['origin']} -> {params['destination']}")

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.routing_timeout_s) as owned_client:
                response = await owned_client.get(settings.directions_url, params=params)
        else:
            response = await client.get(settings.directions_url, params=params)
        response.raise_for_status()
        data = response.json()
    except httpx.TimeoutException as e:
        logger.error(f"[ROUTE] Directions API timed out: {e}")
        raise RoutingUnavailable(
            "Routing service timed out. Please try again.",
            status="TIMEOUT",
        )
    except httpx.HTTPStatusError as e:
        logger.error(f"[ROUTE] HTTP error from Directions API: {e}")
        raise RoutingUnavailable(
            "Routing service is temporarily unavailable",
            status="HTTP_ERROR",
        )
    except httpx.RequestError as e:
        logger.error(f"[ROUTE] Request error to Directions API: {e}")
        raise RoutingUnavailable(
            "Unable to connect to routing service",
            status="CONNECTION_ERROR",
        )
    except ValueError as e:
        logger.error(f"[ROUTE] Directions API returned invalid JSON: {e}")
        raise RoutingUnavailable(
            "Routing service returned an invalid response",
            status="INVALID_RESPONSE",
        )

    return parse_directions_response(data, buffer_multiplier)


def parse_directions_response(data: dict, buffer_multiplier: Decimal) -> RouteResult:
    """Extract leg 0 of route 0 from a Directions API payload."""
    api_status = data.get("status", "UNKNOWN")
    routes = data.get("routes") or []
    if api_status != "OK" or not routes:
        logger.warning(f"[ROUTE] Directions API error: {api_status} {data.get('error_message', '')}")
        raise RoutingUnavailable(_get_api_error_message(api_status), status=api_status)

    route = routes[0]
    legs = route.get("legs") or []
    if not legs:
        raise RoutingUnavailable("No route found between locations", status="ZERO_RESULTS")
    leg = legs[0]

    try:
        distance_meters = Decimal(str(leg["distance"]["value"]))
        duration_seconds = Decimal(str(leg["duration"]["value"]))
        # duration_in_traffic is only present with departure_time=now
        traffic_seconds = Decimal(str(leg.get("duration_in_traffic", leg["duration"])["value"]))
    except (KeyError, TypeError) as e:
        logger.error(f"[ROUTE] Malformed Directions leg: {e}")
        raise RoutingUnavailable(
            "Routing service returned an invalid response",
            status="INVALID_RESPONSE",
        )

    result = RouteResult.from_durations(
        distance_km=distance_meters / METERS_PER_KM,
        duration_mins=duration_seconds / SECONDS_PER_MINUTE,
        traffic_duration_mins=traffic_seconds / SECONDS_PER_MINUTE,
        buffer_multiplier=buffer_multiplier,
        polyline=(route.get("overview_polyline") or {}).get("points", ""),
    )

    logger.info(
        f"[ROUTE] Route calculated: {result.distance_km} km, "
        f"{result.traffic_duration_mins:.1f} min in traffic"
    )
    return result


def _get_api_error_message(status: str) -> str:
    """Get user-friendly message for API-level errors."""
    messages = {
        "NOT_FOUND": "One or both locations could not be found.",
        "ZERO_RESULTS": "No route found between the locations.",
        "MAX_ROUTE_LENGTH_EXCEEDED": "The route is too long to calculate. Please choose closer locations.",
        "INVALID_REQUEST": "Invalid request. Please check the pickup and drop-off locations.",
        "OVER_DAILY_LIMIT": "Routing limit reached. Please try again later.",
        "OVER_QUERY_LIMIT": "Too many requests. Please wait a moment and try again.",
        "REQUEST_DENIED": "Routing service is not available.",
        "UNKNOWN_ERROR": "An unknown error occurred. Please try again.",
    }
    return messages.get(status, f"Route calculation failed: {status}")


# ============================================================================
# MOCK FUNCTION FOR LOCAL DEVELOPMENT (without API key)
# ============================================================================

async def get_route_data_mock(
    origin: GeoPoint,
    destination: GeoPoint,
    buffer_multiplier: Decimal = Decimal("1.15"),
) -> RouteResult:
    """
    Deterministic stand-in for the Directions API.

    Derives the route from the heuristic road metrics and adds a traffic
    delay of 0-30% seeded by the coordinates. NOT FOR PRODUCTION USE.
    """
    metrics = estimate_road_metrics(origin, destination)

    combined = f"{origin.lat},{origin.lng}:{destination.lat},{destination.lng}"
    hash_val = int(hashlib.md5(combined.encode()).hexdigest()[:8], 16)
    traffic_factor = Decimal(100 + hash_val % 31) / 100

    duration = Decimal(metrics.estimated_minutes)
    return RouteResult.from_durations(
        distance_km=metrics.road_distance_km,
        duration_mins=duration,
        traffic_duration_mins=duration * traffic_factor,
        buffer_multiplier=buffer_multiplier,
    )
