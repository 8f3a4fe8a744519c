"""
Fare Engine Errors

Every failure the engine raises derives from FareEngineError and carries a
machine-readable code that maps onto the API error envelope.
"""

from typing import Optional

from .core.responses import ErrorCodes


class FareEngineError(Exception):
    """Base class for fare engine failures."""
    code = ErrorCodes.INTERNAL_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnknownVehicle(FareEngineError):
    """Raised when a vehicle id is not present in the registry."""
    code = ErrorCodes.UNKNOWN_VEHICLE

    def __init__(self, vehicle_id: str):
        self.vehicle_id = vehicle_id
        super().__init__(f"Invalid vehicle ID: {vehicle_id}")


class InvalidCoordinates(FareEngineError):
    """Raised when a latitude/longitude pair is malformed or out of range."""
    code = ErrorCodes.INVALID_COORDINATES

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class RoutingUnavailable(FareEngineError):
    """Raised when the routing service fails, times out, or returns no route."""
    code = ErrorCodes.ROUTING_UNAVAILABLE

    def __init__(self, message: str, status: str = "ERROR"):
        self.status = status
        super().__init__(message)
