from fare_engine.fare_models import GeoPoint

# Dar es Salaam city centre
DAR_CENTRE = GeoPoint(-6.8000, 39.2800)


def point_north_of(origin: GeoPoint, degrees: float) -> GeoPoint:
    """Point due north; along a meridian the haversine distance is R * dlat."""
    return GeoPoint(origin.lat + degrees, origin.lng)
