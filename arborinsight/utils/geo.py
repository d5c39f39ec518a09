"""
Geodesic helpers for field coordinates.
"""
import random
from typing import Optional, Tuple

from pyproj import Geod


# WGS84 ellipsoid, the datum GPS receivers report in
WGS84 = Geod(ellps="WGS84")


def is_valid_coordinate(latitude: float, longitude: float) -> bool:
    """Check latitude/longitude against WGS84 bounds."""
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def offset_coordinate(
    latitude: float,
    longitude: float,
    azimuth_deg: float,
    distance_m: float,
) -> Tuple[float, float]:
    """
    Move a point along a geodesic.

    Args:
        latitude: Start latitude in degrees
        longitude: Start longitude in degrees
        azimuth_deg: Bearing clockwise from north, in degrees
        distance_m: Distance in meters

    Returns:
        (latitude, longitude) of the destination
    """
    lon, lat, _ = WGS84.fwd(longitude, latitude, azimuth_deg, distance_m)
    return lat, lon


def distance_meters(
    a: Tuple[float, float],
    b: Tuple[float, float],
) -> float:
    """Geodesic distance in meters between two (latitude, longitude) points."""
    _, _, dist = WGS84.inv(a[1], a[0], b[1], b[0])
    return abs(dist)


def jitter_coordinate(
    latitude: float,
    longitude: float,
    max_distance_m: float,
    rng: Optional[random.Random] = None,
) -> Tuple[float, float]:
    """
    Random point within ``max_distance_m`` of the given one.

    New trees start here so that several trees added in a row do not
    stack on the same map pin.
    """
    rng = rng or random
    azimuth = rng.uniform(0.0, 360.0)
    distance = rng.uniform(0.0, max_distance_m)
    return offset_coordinate(latitude, longitude, azimuth, distance)
