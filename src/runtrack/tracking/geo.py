"""Great-circle distance between two coordinates."""
import math

EARTH_RADIUS_M = 6_371_000.0  # mean Earth radius


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Haversine distance in meters between two lat/lon points (degrees).

    Non-finite inputs yield 0.0 so a malformed fix can never push NaN
    into the cumulative distance.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    a = min(1.0, max(0.0, a))
    distance = EARTH_RADIUS_M * 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    if not math.isfinite(distance):
        return 0.0
    return distance


def offset_north(lat: float, meters: float) -> float:
    """Latitude reached by moving `meters` due north along a meridian."""
    return lat + math.degrees(meters / EARTH_RADIUS_M)
