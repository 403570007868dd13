"""Great-circle distance between WGS84 points, in miles."""
import math

EARTH_RADIUS_MILES = 3959.0


def distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in miles between (lat1, lng1) and (lat2, lng2)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    # Rounding can push a a hair outside [0, 1] for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def midpoint(lat1: float, lng1: float, lat2: float, lng2: float) -> tuple[float, float]:
    """Arithmetic mean of two coordinates. Only meaningful at sub-mile separation."""
    return (lat1 + lat2) / 2, (lng1 + lng2) / 2
