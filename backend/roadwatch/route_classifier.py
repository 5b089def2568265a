from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import UpstreamUnavailable
from .geo import LatLon, nearest_distance_m
from .thresholds import Thresholds


class RouteStatus(str, Enum):
    ROUTING_THROUGH = "ROUTING_THROUGH"
    ROUTING_AROUND = "ROUTING_AROUND"
    NO_ROUTE = "NO_ROUTE"
    ERROR = "ERROR"


@dataclass(frozen=True)
class RouteResult:
    length_m: float
    travel_time_s: float
    traffic_delay_s: float
    points: tuple[LatLon, ...]


@dataclass(frozen=True)
class RouteClassification:
    status: RouteStatus
    distance_ratio: float | None = None
    closest_to_midpoint_m: float | None = None
    is_short_route: bool | None = None
    passes_near_midpoint: bool | None = None


def classify_route(
    route: RouteResult | None,
    midpoint: LatLon,
    thresholds: Thresholds,
) -> RouteClassification:
    """Decide whether the routing engine sends traffic through the watched segment.

    Both checks must hold for ROUTING_THROUGH: the route is shorter than
    ``detour_multiplier`` times the direct distance, and some vertex passes
    within ``midpoint_proximity_m`` of the segment midpoint. A short route can
    still use a parallel road and a long detour can still graze the midpoint.

    ``route=None`` means the engine returned no candidate at all (NO_ROUTE). A
    route with no points raises ``InvalidInput``.
    """
    if route is None:
        return RouteClassification(status=RouteStatus.NO_ROUTE)

    closest = nearest_distance_m(route.points, midpoint)
    distance_ratio = route.length_m / thresholds.direct_distance_m
    is_short = distance_ratio < thresholds.detour_multiplier
    passes_near = closest < thresholds.midpoint_proximity_m

    status = RouteStatus.ROUTING_THROUGH if (is_short and passes_near) else RouteStatus.ROUTING_AROUND
    return RouteClassification(
        status=status,
        distance_ratio=round(distance_ratio, 2),
        closest_to_midpoint_m=float(round(closest)) if math.isfinite(closest) else closest,
        is_short_route=is_short,
        passes_near_midpoint=passes_near,
    )


def _malformed(message: str) -> UpstreamUnavailable:
    return UpstreamUnavailable(
        reason_code="upstream_malformed_payload",
        message=message,
        source="routing",
    )


def _number(value: Any, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _malformed(f"TomTom route summary missing numeric {field}")
    return float(value)


def route_result_from_tomtom(payload: Any) -> RouteResult | None:
    """Parse a TomTom calculateRoute body into the first route, or None when it has none.

    A body that has routes but lacks a summary, a length or points is a fetch
    failure, not a detour.
    """
    if not isinstance(payload, dict):
        raise _malformed("TomTom response is not a JSON object")
    routes = payload.get("routes")
    if routes is None or (isinstance(routes, list) and not routes):
        return None
    if not isinstance(routes, list) or not isinstance(routes[0], dict):
        raise _malformed("TomTom routes is not a list of objects")

    route = routes[0]
    summary = route.get("summary")
    if not isinstance(summary, dict):
        raise _malformed("TomTom route missing summary")

    length_m = _number(summary.get("lengthInMeters"), "lengthInMeters")
    travel_time_s = _number(summary.get("travelTimeInSeconds", 0.0), "travelTimeInSeconds")
    traffic_delay_s = _number(summary.get("trafficDelayInSeconds", 0.0), "trafficDelayInSeconds")

    points: list[LatLon] = []
    for leg in route.get("legs") or []:
        for pt in (leg or {}).get("points") or []:
            if (
                isinstance(pt, dict)
                and isinstance(pt.get("latitude"), (int, float))
                and isinstance(pt.get("longitude"), (int, float))
            ):
                points.append(LatLon(lat=float(pt["latitude"]), lon=float(pt["longitude"])))
    if not points:
        raise _malformed("TomTom route has no polyline points")

    return RouteResult(
        length_m=length_m,
        travel_time_s=travel_time_s,
        traffic_delay_s=traffic_delay_s,
        points=tuple(points),
    )


def congestion_level(delay_s: float, duration_s: float) -> str:
    if duration_s <= 0:
        return "low"
    ratio = delay_s / duration_s
    if ratio >= 0.5:
        return "high"
    if ratio >= 0.15 or delay_s >= 60:
        return "medium"
    return "low"


def congestion_label(delay_s: float, duration_s: float) -> str:
    level = congestion_level(delay_s, duration_s)
    delay_min = math.ceil(delay_s / 60)
    if level == "high":
        return f"High (+{delay_min} min)"
    if level == "medium":
        return f"Medium (+{delay_min} min)"
    return "Low"
