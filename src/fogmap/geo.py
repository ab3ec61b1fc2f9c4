"""
Geodesic helpers shared by the grid, the fog renderer and the progress metrics.

Distances use the haversine great-circle formula. Areas use the spherical-zone
formula for boxes and the equirectangular 111.32 km per degree for the
viewport estimate.
"""
import math

EARTH_RADIUS_M = 6_371_000.0      # Mean Earth radius
METERS_PER_MILE = 1609.34
METERS_PER_DEGREE = 111_320.0     # Equirectangular approximation
KM_PER_DEGREE = METERS_PER_DEGREE / 1000.0
EARTH_SURFACE_KM2 = 510_100_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance in meters between two lat/lon points.

    Args:
        lat1: Latitude 1 in degrees
        lon1: Longitude 1 in degrees
        lat2: Latitude 2 in degrees
        lon2: Longitude 2 in degrees

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in miles."""
    return meters_to_miles(haversine_m(lat1, lon1, lat2, lon2))


def meters_to_miles(meters: float) -> float:
    return meters / METERS_PER_MILE


def lat_lon_box_area_km2(south: float, west: float, north: float, east: float) -> float:
    """
    Area of a lat/lon aligned box on the sphere, in km².

    Uses the exact spherical-zone formula R² · Δλ · (sin φ2 − sin φ1), so a
    0.003° cell shrinks toward the poles the way the real ground does.
    """
    radius_km = EARTH_RADIUS_M / 1000.0
    d_lambda = math.radians(east - west)
    return abs(radius_km ** 2 * d_lambda * (math.sin(math.radians(north)) - math.sin(math.radians(south))))


def is_valid_coordinate(lat: float, lon: float) -> bool:
    """Finite latitude within [-90, 90] and finite longitude within [-180, 180]."""
    return (
        math.isfinite(lat)
        and math.isfinite(lon)
        and -90.0 <= lat <= 90.0
        and -180.0 <= lon <= 180.0
    )
