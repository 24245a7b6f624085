"""
Straight-line distance helpers.

There is no road-graph routing: a trip's distance is the haversine
great-circle distance between its endpoints, or the sum of hops over
the location pings recorded while the trip was ongoing.
"""

import math
from typing import Iterable

EARTH_RADIUS_KM = 6_371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in km between two points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def path_km(points: Iterable[tuple[float, float]]) -> float:
    """Length of a polyline of ``(lat, lng)`` points."""
    total = 0.0
    prev = None
    for point in points:
        if prev is not None:
            total += haversine_km(prev[0], prev[1], point[0], point[1])
        prev = point
    return total
