"""
Vehicle Registry

Maps a vehicle id to its pricing attributes. Calculators depend on the
VehicleRegistry protocol, not on the built-in fleet, so a database-backed
registry can be swapped in without touching pricing code.

Usage:
    from .vehicle_registry import default_registry

    vehicle = default_registry().get_vehicle("kirikuu")
"""

from functools import lru_cache
from typing import Iterable, Optional, Protocol

from .fare_errors import UnknownVehicle
from .fare_models import FuelType, VehicleClass


class VehicleRegistry(Protocol):
    def find_vehicle(self, vehicle_id: str) -> Optional[VehicleClass]: ...

    def get_vehicle(self, vehicle_id: str) -> VehicleClass: ...

    def list_vehicles(self) -> list[VehicleClass]: ...


# ============================================================================
# DEFAULT FLEET (Tanzania)
# ============================================================================

VEHICLE_FLEET: tuple[VehicleClass, ...] = (
    # TIER 1: LIGHT VEHICLES
    VehicleClass(
        id="boda",
        label="Boda",
        label_sw="Pikipiki",
        capacity="Small Parcel / 20kg",
        description="Fast motorcycle delivery for documents and small packages",
        tier=1,
        base_fare=3000,
        fuel_efficiency=35,
        traffic_rate=50,
        fuel_type=FuelType.PETROL,
        free_loading_minutes=5,
    ),
    VehicleClass(
        id="toyo",
        label="Toyo",
        label_sw="Guta",
        capacity="300-500kg",
        description="Cargo tricycle for town loads and market runs",
        tier=1,
        base_fare=10000,
        fuel_efficiency=15,
        traffic_rate=100,
        fuel_type=FuelType.PETROL,
    ),
    # TIER 2: MEDIUM VEHICLES
    VehicleClass(
        id="kirikuu",
        label="Kirikuu",
        label_sw="Kirikuu",
        capacity="1 Ton",
        description="SME Standard Mini Truck - The Workhorse",
        tier=2,
        base_fare=13000,
        fuel_efficiency=12,
        traffic_rate=150,
        fuel_type=FuelType.DIESEL,
    ),
    VehicleClass(
        id="pickup",
        label="Pickup",
        label_sw="Pikapi",
        capacity="Standard Hilux (1-1.5 Ton)",
        description="Standard pickup for rough terrain & medium loads",
        tier=2,
        base_fare=15000,
        fuel_efficiency=10,
        traffic_rate=150,
        fuel_type=FuelType.DIESEL,
    ),
    # TIER 3: HEAVY VEHICLES
    VehicleClass(
        id="canter",
        label="Canter",
        label_sw="Kanta",
        capacity="3-4 Ton",
        description="Box Body Truck for house moving & bulk cargo",
        tier=3,
        base_fare=25000,
        fuel_efficiency=7,
        traffic_rate=200,
        fuel_type=FuelType.DIESEL,
    ),
    VehicleClass(
        id="fuso",
        label="Fuso",
        label_sw="Fuso",
        capacity="10+ Ton",
        description="Heavy Tipper/Truck for construction & industrial",
        tier=3,
        base_fare=50000,
        fuel_efficiency=4,
        traffic_rate=300,
        fuel_type=FuelType.DIESEL,
    ),
)


class InMemoryVehicleRegistry:
    """Registry backed by a fixed, immutable set of vehicle classes."""

    def __init__(self, vehicles: Iterable[VehicleClass]):
        self._vehicles: dict[str, VehicleClass] = {}
        for vehicle in vehicles:
            if vehicle.id in self._vehicles:
                raise ValueError(f"Duplicate vehicle id: {vehicle.id}")
            self._vehicles[vehicle.id] = vehicle

    def find_vehicle(self, vehicle_id: str) -> Optional[VehicleClass]:
        return self._vehicles.get(vehicle_id)

    def get_vehicle(self, vehicle_id: str) -> VehicleClass:
        vehicle = self._vehicles.get(vehicle_id)
        if vehicle is None:
            raise UnknownVehicle(vehicle_id)
        return vehicle

    def list_vehicles(self) -> list[VehicleClass]:
        return list(self._vehicles.values())

    def vehicles_by_tier(self, tier: int) -> list[VehicleClass]:
        return [v for v in self._vehicles.values() if v.tier == tier]

    def vehicle_ids(self) -> list[str]:
        return list(self._vehicles)

    def __contains__(self, vehicle_id: object) -> bool:
        return vehicle_id in self._vehicles

    def __len__(self) -> int:
        return len(self._vehicles)


@lru_cache
def default_registry() -> InMemoryVehicleRegistry:
    return InMemoryVehicleRegistry(VEHICLE_FLEET)
