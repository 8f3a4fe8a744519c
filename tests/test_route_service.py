"""
Tests for route_service module.

Run with: pytest tests/test_route_service.py -v
"""

import pytest
from decimal import Decimal
from unittest.mock import patch, MagicMock, AsyncMock
import httpx

from fare_engine.core.config import Settings
from fare_engine.fare_errors import RoutingUnavailable
from fare_engine.fare_models import GeoPoint
from fare_engine import route_service
from fare_engine.route_service import (
    get_route_data,
    get_route_data_mock,
    parse_directions_response,
)

from .geo_helpers import DAR_CENTRE

KARIAKOO = GeoPoint(-6.8161, 39.2803)
MWENGE = GeoPoint(-6.7693, 39.2264)


# ============================================================================
# MOCK RESPONSE DATA
# ============================================================================

MOCK_SUCCESS_RESPONSE = {
    "status": "OK",
    "routes": [
        {
            "overview_polyline": {"points": "abc123"},
            "legs": [
                {
                    "distance": {"text": "12.4 km", "value": 12400},
                    "duration": {"text": "20 mins", "value": 1200},
                    "duration_in_traffic": {"text": "30 mins", "value": 1800},
                }
            ],
        }
    ],
}

MOCK_NO_TRAFFIC_RESPONSE = {
    "status": "OK",
    "routes": [
        {
            "overview_polyline": {"points": "xyz"},
            "legs": [
                {
                    "distance": {"value": 5000},
                    "duration": {"value": 600},
                }
            ],
        }
    ],
}

MOCK_ZERO_RESULTS_RESPONSE = {"status": "ZERO_RESULTS", "routes": []}

MOCK_API_ERROR_RESPONSE = {
    "status": "REQUEST_DENIED",
    "error_message": "The provided API key is invalid.",
}


def mock_client_returning(payload: dict) -> AsyncMock:
    mock_response = MagicMock()
    mock_response.json.return_value = payload
    mock_response.raise_for_status = MagicMock()

    client = AsyncMock()
    client.get.return_value = mock_response
    return client


# ============================================================================
# UNIT TESTS - WITH MOCKED HTTP
# ============================================================================

@pytest.mark.asyncio
async def test_get_route_data_success():
    """Leg distance and durations are converted and buffered once."""
    client = mock_client_returning(MOCK_SUCCESS_RESPONSE)

    result = await get_route_data(
        KARIAKOO, MWENGE, api_key="test-key", buffer_multiplier=Decimal("1.15"), client=client
    )

    assert result.distance_km == Decimal("12.4")
    assert result.duration_mins == Decimal("20")
    assert result.traffic_duration_mins == Decimal("30")
    assert result.buffered_duration_mins == Decimal("34.5")
    assert result.polyline == "abc123"


@pytest.mark.asyncio
async def test_get_route_data_request_params():
    """Coordinates and traffic options are sent to the Directions API."""
    client = mock_client_returning(MOCK_SUCCESS_RESPONSE)

    await get_route_data(KARIAKOO, MWENGE, api_key="test-key", client=client)

    _, kwargs = client.get.call_args
    params = kwargs["params"]
    assert params["origin"] == "-6.8161,39.2803"
    assert params["destination"] == "-6.7693,39.2264"
    assert params["departure_time"] == "now"
    assert params["traffic_model"] == "best_guess"
    assert params["key"] == "test-key"


@pytest.mark.asyncio
async def test_get_route_data_owned_client():
    """Without a shared client a short-lived AsyncClient is used."""
    mock_response = MagicMock()
    mock_response.json.return_value = MOCK_SUCCESS_RESPONSE
    mock_response.raise_for_status = MagicMock()

    with patch('httpx.AsyncClient') as mock_client:
        mock_instance = AsyncMock()
        mock_instance.get.return_value = mock_response
        mock_instance.__aenter__.return_value = mock_instance
        mock_instance.__aexit__.return_value = None
        mock_client.return_value = mock_instance

        result = await get_route_data(KARIAKOO, MWENGE, api_key="test-key")

    assert result.distance_km == Decimal("12.4")
    mock_instance.get.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_route_data_no_api_key():
    """Missing key fails before any request."""
    with patch.object(route_service, "get_settings", return_value=Settings(GOOGLE_MAPS_API_KEY="")):
        with pytest.raises(RoutingUnavailable) as exc_info:
            await get_route_data(KARIAKOO, MWENGE)

    assert exc_info.value.status == "CONFIG_ERROR"
    assert exc_info.value.code == "ROUTING_UNAVAILABLE"


@pytest.mark.asyncio
async def test_get_route_data_zero_results():
    """Non-OK status raises with the provider status."""
    client = mock_client_returning(MOCK_ZERO_RESULTS_RESPONSE)

    with pytest.raises(RoutingUnavailable) as exc_info:
        await get_route_data(KARIAKOO, MWENGE, api_key="test-key", client=client)

    assert exc_info.value.status == "ZERO_RESULTS"


@pytest.mark.asyncio
async def test_get_route_data_api_error():
    """REQUEST_DENIED is surfaced as RoutingUnavailable."""
    client = mock_client_returning(MOCK_API_ERROR_RESPONSE)

    with pytest.raises(RoutingUnavailable) as exc_info:
        await get_route_data(KARIAKOO, MWENGE, api_key="test-key", client=client)

    assert exc_info.value.status == "REQUEST_DENIED"


@pytest.mark.asyncio
async def test_get_route_data_timeout():
    """Timeouts are reported as TIMEOUT."""
    client = AsyncMock()
    client.get.side_effect = httpx.ReadTimeout("timed out")

    with pytest.raises(RoutingUnavailable) as exc_info:
        await get_route_data(KARIAKOO, MWENGE, api_key="test-key", client=client)

    assert exc_info.value.status == "TIMEOUT"


@pytest.mark.asyncio
async def test_get_route_data_connection_error():
    """Connection failures are reported as CONNECTION_ERROR."""
    client = AsyncMock()
    client.get.side_effect = httpx.ConnectError("refused")

    with pytest.raises(RoutingUnavailable) as exc_info:
        await get_route_data(KARIAKOO, MWENGE, api_key="test-key", client=client)

    assert exc_info.value.status == "CONNECTION_ERROR"


@pytest.mark.asyncio
async def test_get_route_data_http_error():
    """Non-2xx responses are reported as HTTP_ERROR."""
    mock_response = MagicMock()
    mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
        "500 Server Error", request=MagicMock(), response=MagicMock()
    )
    client = AsyncMock()
    client.get.return_value = mock_response

    with pytest.raises(RoutingUnavailable) as exc_info:
        await get_route_data(KARIAKOO, MWENGE, api_key="test-key", client=client)

    assert exc_info.value.status == "HTTP_ERROR"


@pytest.mark.asyncio
async def test_get_route_data_invalid_json():
    """Unparseable bodies are reported as INVALID_RESPONSE."""
    mock_response = MagicMock()
    mock_response.raise_for_status = MagicMock()
    mock_response.json.side_effect = ValueError("Expecting value")
    client = AsyncMock()
    client.get.return_value = mock_response

    with pytest.raises(RoutingUnavailable) as exc_info:
        await get_route_data(KARIAKOO, MWENGE, api_key="test-key", client=client)

    assert exc_info.value.status == "INVALID_RESPONSE"


# ============================================================================
# RESPONSE PARSING TESTS
# ============================================================================

def test_parse_without_traffic_uses_duration():
    """Without duration_in_traffic the plain duration is buffered."""
    result = parse_directions_response(MOCK_NO_TRAFFIC_RESPONSE, Decimal("1.15"))

    assert result.distance_km == Decimal("5")
    assert result.traffic_duration_mins == Decimal("10")
    assert result.buffered_duration_mins == Decimal("11.5")


def test_parse_malformed_leg():
    """A leg without distance is an invalid response."""
    payload = {"status": "OK", "routes": [{"legs": [{"duration": {"value": 60}}]}]}

    with pytest.raises(RoutingUnavailable) as exc_info:
        parse_directions_response(payload, Decimal("1.15"))

    assert exc_info.value.status == "INVALID_RESPONSE"


def test_parse_route_without_legs():
    """A route with no legs has no usable distance."""
    payload = {"status": "OK", "routes": [{"legs": []}]}

    with pytest.raises(RoutingUnavailable) as exc_info:
        parse_directions_response(payload, Decimal("1.15"))

    assert exc_info.value.status == "ZERO_RESULTS"


# ============================================================================
# UNIT TESTS - MOCK MODE
# ============================================================================

@pytest.mark.asyncio
async def test_get_route_data_mock_is_deterministic():
    """Same coordinates give the same mock route."""
    first = await get_route_data_mock(DAR_CENTRE, MWENGE)
    second = await get_route_data_mock(DAR_CENTRE, MWENGE)

    assert first == second


@pytest.mark.asyncio
async def test_get_route_data_mock_traffic_bounds():
    """Mock traffic adds 0-30% and the buffer is applied on top."""
    result = await get_route_data_mock(DAR_CENTRE, MWENGE, buffer_multiplier=Decimal("1.15"))

    assert result.duration_mins <= result.traffic_duration_mins <= result.duration_mins * Decimal("1.3")
    assert result.buffered_duration_mins == result.traffic_duration_mins * Decimal("1.15")
    assert result.distance_km > 0
