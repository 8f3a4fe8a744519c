"""
Pytest configuration and shared fixtures.

The API client swaps the loading clock and routing provider through
FastAPI dependency overrides so no test touches the wall clock or the
network.
"""
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport

from fare_engine.fare_models import RouteResult
from fare_engine.fare_pricing import PricingConfig
from fare_engine.loading_timer import LoadingTimerManager, ManualClock
from fare_engine.vehicle_registry import default_registry


@pytest.fixture
def pricing_config():
    return PricingConfig()


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture
def sample_route():
    """12.4 km, 20 min free-flow, 30 min in traffic, 34.5 min buffered."""
    return RouteResult.from_durations(
        distance_km=Decimal("12.4"),
        duration_mins=Decimal("20"),
        traffic_duration_mins=Decimal("30"),
        buffer_multiplier=Decimal("1.15"),
        polyline="abc123",
    )


@pytest.fixture
def loading_manager(manual_clock):
    return LoadingTimerManager(manual_clock)


@pytest.fixture
async def client(loading_manager, sample_route):
    """
    FastAPI AsyncClient with a manual loading clock and a stub route provider.

    Tests that need a failing provider override get_route_provider again.
    """
    from fare_engine.main import app, get_loading_manager, get_route_provider

    async def stub_provider(origin, destination):
        return sample_route

    app.dependency_overrides[get_loading_manager] = lambda: loading_manager
    app.dependency_overrides[get_route_provider] = lambda: stub_provider

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
