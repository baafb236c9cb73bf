"""
Shared geometry functions for GPS calculations.

All functions are pure and total over finite inputs. Distances are metres
on a spherical Earth, angles are degrees.
"""

import math
from typing import Tuple

from lap_timing.data.models import GhostPoint

EARTH_RADIUS_M = 6371000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate great circle distance between two GPS points in meters.

    Args:
        lat1, lon1: First point (decimal degrees)
        lat2, lon2: Second point (decimal degrees)

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (math.sin(delta_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    # Rounding can push a fractionally above 1 for antipodal points
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Initial bearing (forward azimuth) from point 1 to point 2.

    Returns:
        Bearing in degrees, 0 <= b < 360. Undefined for coincident points,
        callers must guard that case.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lon2 - lon1)

    x = math.sin(delta_lambda) * math.cos(phi2)
    y = (math.cos(phi1) * math.sin(phi2) -
         math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda))

    result = (math.degrees(math.atan2(x, y)) + 360) % 360
    # (-tiny + 360) % 360 can round to exactly 360.0
    return 0.0 if result >= 360 else result


def angle_difference(from_deg: float, to_deg: float) -> float:
    """Signed smallest difference from one angle to another (-180 to 180)."""
    return (to_deg - from_deg + 180) % 360 - 180


def lerp_position(lat1: float, lon1: float, lat2: float, lon2: float,
                  fraction: float) -> Tuple[float, float]:
    """Straight-line interpolation in lat/lon space."""
    return (lat1 + (lat2 - lat1) * fraction,
            lon1 + (lon2 - lon1) * fraction)


def interpolate_position(p1: GhostPoint, p2: GhostPoint,
                         target_timestamp: float) -> GhostPoint:
    """
    Interpolate a position between two timestamped samples.

    The interpolation factor is clamped to [0, 1] so targets outside the
    span snap to the nearer sample.

    Args:
        p1: Earlier sample
        p2: Later sample
        target_timestamp: Time (ms) to interpolate at

    Returns:
        Interpolated point stamped with target_timestamp
    """
    span = p2.timestamp - p1.timestamp
    if span <= 0:
        return p2

    t = max(0.0, min(1.0, (target_timestamp - p1.timestamp) / span))
    lat, lon = lerp_position(p1.latitude, p1.longitude,
                             p2.latitude, p2.longitude, t)
    return GhostPoint(latitude=lat, longitude=lon, timestamp=target_timestamp)


def point_along_bearing(lat: float, lon: float, bearing_deg: float,
                        distance_m: float) -> Tuple[float, float]:
    """Calculate point at given distance and bearing from start point."""
    lat_rad = math.radians(lat)
    lon_rad = math.radians(lon)
    bearing_rad = math.radians(bearing_deg)
    angular = distance_m / EARTH_RADIUS_M

    lat2 = math.asin(
        math.sin(lat_rad) * math.cos(angular) +
        math.cos(lat_rad) * math.sin(angular) * math.cos(bearing_rad)
    )
    lon2 = lon_rad + math.atan2(
        math.sin(bearing_rad) * math.sin(angular) * math.cos(lat_rad),
        math.cos(angular) - math.sin(lat_rad) * math.sin(lat2),
    )

    return math.degrees(lat2), math.degrees(lon2)
