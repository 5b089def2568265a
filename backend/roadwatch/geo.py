from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

from .errors import InvalidInput

EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True)
class LatLon:
    lat: float
    lon: float


def great_circle_distance_m(p1: LatLon, p2: LatLon) -> float:
    """Haversine distance in metres on a spherical earth. NaN in, NaN out."""
    phi1 = math.radians(p1.lat)
    phi2 = math.radians(p2.lat)
    dphi = phi2 - phi1
    dlambda = math.radians(p2.lon - p1.lon)
    a = math.sin(dphi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2.0) ** 2
    return EARTH_RADIUS_M * 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))


def nearest_distance_m(points: Iterable[LatLon], target: LatLon) -> float:
    """Smallest great-circle distance from ``target`` to any of ``points``."""
    best: float | None = None
    for point in points:
        dist = great_circle_distance_m(point, target)
        if best is None or dist < best:
            best = dist
    if best is None:
        raise InvalidInput(
            reason_code="empty_route_points",
            message="cannot measure distance to an empty point set",
        )
    return best
