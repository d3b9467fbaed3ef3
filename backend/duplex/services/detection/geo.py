import math

from duplex.schemas.auth_event import GeoLocation

MEAN_EARTH_RADIUS_KM = 6371.0088


def haversine_km(a: GeoLocation, b: GeoLocation) -> float:
    """Great-circle distance between two points, in kilometres."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lambda = math.radians(b.lon - a.lon)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * MEAN_EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))
