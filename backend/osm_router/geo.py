from __future__ import annotations

import math

EARTH_RADIUS_M = 6_371_000.0

Point = tuple[float, float]


def to_radians(degrees: float) -> float:
    return degrees * math.pi / 180.0


def to_degrees(radians: float) -> float:
    return radians * 180.0 / math.pi


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = to_radians(lat1)
    phi2 = to_radians(lat2)
    dphi = phi2 - phi1
    dlambda = to_radians(lon2 - lon1)
    a = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(max(0.0, a))))


def distance(p1: Point, p2: Point) -> float:
    """Great-circle distance in metres between two ``(lat, lon)`` points."""
    return haversine_m(p1[0], p1[1], p2[0], p2[1])
