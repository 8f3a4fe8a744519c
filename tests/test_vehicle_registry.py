"""
Tests for vehicle_registry module.

Run with: pytest tests/test_vehicle_registry.py -v
"""

import pytest
from decimal import Decimal

from fare_engine.fare_errors import UnknownVehicle
from fare_engine.fare_models import FuelType, VehicleClass
from fare_engine.vehicle_registry import (
    VEHICLE_FLEET,
    InMemoryVehicleRegistry,
    default_registry,
)


def make_vehicle(vehicle_id: str = "van", **overrides) -> VehicleClass:
    attrs = dict(
        id=vehicle_id,
        label="Van",
        base_fare=20000,
        fuel_efficiency=9,
        traffic_rate=180,
        fuel_type=FuelType.DIESEL,
    )
    attrs.update(overrides)
    return VehicleClass(**attrs)


class TestDefaultFleet:
    """The built-in Tanzanian fleet."""

    def test_fleet_ids_in_tier_order(self, registry):
        assert registry.vehicle_ids() == ["boda", "toyo", "kirikuu", "pickup", "canter", "fuso"]

    @pytest.mark.parametrize("vehicle_id,base_fare,efficiency,traffic_rate,fuel", [
        ("boda", 3000, "35", 50, FuelType.PETROL),
        ("toyo", 10000, "15", 100, FuelType.PETROL),
        ("kirikuu", 13000, "12", 150, FuelType.DIESEL),
        ("pickup", 15000, "10", 150, FuelType.DIESEL),
        ("canter", 25000, "7", 200, FuelType.DIESEL),
        ("fuso", 50000, "4", 300, FuelType.DIESEL),
    ])
    def test_pricing_attributes(self, registry, vehicle_id, base_fare, efficiency, traffic_rate, fuel):
        vehicle = registry.get_vehicle(vehicle_id)

        assert vehicle.base_fare == base_fare
        assert vehicle.fuel_efficiency == Decimal(efficiency)
        assert vehicle.traffic_rate == traffic_rate
        assert vehicle.fuel_type == fuel

    def test_tiers(self, registry):
        assert [v.id for v in registry.vehicles_by_tier(1)] == ["boda", "toyo"]
        assert [v.id for v in registry.vehicles_by_tier(2)] == ["kirikuu", "pickup"]
        assert [v.id for v in registry.vehicles_by_tier(3)] == ["canter", "fuso"]
        assert registry.vehicles_by_tier(4) == []

    def test_free_loading_window(self, registry):
        """Boda loads in 5 minutes, everything else gets 45."""
        assert registry.get_vehicle("boda").free_loading_minutes == 5
        assert registry.get_vehicle("fuso").free_loading_minutes == 45

    def test_default_registry_is_shared(self):
        assert default_registry() is default_registry()
        assert len(default_registry()) == len(VEHICLE_FLEET)


class TestLookup:
    """find_vehicle returns None, get_vehicle raises."""

    def test_find_unknown_returns_none(self, registry):
        assert registry.find_vehicle("bajaji") is None

    def test_get_unknown_raises(self, registry):
        with pytest.raises(UnknownVehicle) as exc_info:
            registry.get_vehicle("bajaji")

        assert exc_info.value.vehicle_id == "bajaji"
        assert exc_info.value.code == "UNKNOWN_VEHICLE"

    def test_lookup_is_case_sensitive(self, registry):
        assert "kirikuu" in registry
        assert "Kirikuu" not in registry

    def test_list_vehicles_is_a_copy(self, registry):
        vehicles = registry.list_vehicles()
        vehicles.clear()

        assert len(registry.list_vehicles()) == 6


class TestCustomRegistry:
    """Registries other than the default fleet."""

    def test_custom_fleet(self):
        registry = InMemoryVehicleRegistry([make_vehicle()])

        assert registry.get_vehicle("van").base_fare == 20000
        assert "kirikuu" not in registry

    def test_duplicate_id_rejected(self):
        with pytest.raises(ValueError):
            InMemoryVehicleRegistry([make_vehicle(), make_vehicle(label="Other van")])

    @pytest.mark.parametrize("overrides", [
        {"fuel_efficiency": 0},
        {"fuel_efficiency": -2},
        {"traffic_rate": -1},
        {"base_fare": -100},
    ])
    def test_invalid_vehicle_rejected(self, overrides):
        with pytest.raises(ValueError):
            make_vehicle(**overrides)

    def test_fuel_type_coerced_from_string(self):
        assert make_vehicle(fuel_type="petrol").fuel_type == FuelType.PETROL

    def test_vehicle_is_immutable(self, registry):
        vehicle = registry.get_vehicle("kirikuu")
        with pytest.raises(AttributeError):
            vehicle.base_fare = 1

    def test_to_dict(self, registry):
        data = registry.get_vehicle("kirikuu").to_dict()

        assert data["id"] == "kirikuu"
        assert data["fuel_type"] == "diesel"
        assert data["fuel_efficiency"] == 12.0
        assert data["tier"] == 2
