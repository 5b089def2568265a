from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .river import FloodStatus, Trend
from .route_classifier import RouteStatus
from .traffic import TrafficSummary


class Confidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class Verdict:
    is_open: bool | None  # None = uncertain
    confidence: Confidence
    reason: str


def _vehicles_seen(traffic: TrafficSummary | None) -> bool:
    return traffic is not None and traffic.readings_with_live_data > 0


def assess_road_status(
    flood_status: FloodStatus,
    route_status: RouteStatus | None,
    traffic_since_flood: TrafficSummary | None,
) -> Verdict:
    """Reconcile gauge, routing and live-traffic evidence into one verdict.

    Precedence, strongest first: the gauge (a FLOODED reading closes the road
    whatever else is seen), then live vehicle detections, then the routing
    engine. A silent traffic sensor only lowers confidence; it is never read as
    a closure. ``route_status`` of None or ERROR means the routing signal is
    unknown, and ``traffic_since_flood`` of None means no traffic signal.
    """
    route_known = route_status is not None and route_status is not RouteStatus.ERROR
    routing_through = route_status is RouteStatus.ROUTING_THROUGH
    routing_away = route_status in (RouteStatus.ROUTING_AROUND, RouteStatus.NO_ROUTE)

    if flood_status is FloodStatus.FLOODED:
        return Verdict(
            is_open=False,
            confidence=Confidence.HIGH,
            reason="Water levels are above the road flooding threshold.",
        )

    if flood_status is FloodStatus.NEAR_FLOOD:
        if routing_away:
            return Verdict(
                is_open=False,
                confidence=Confidence.MEDIUM,
                reason=(
                    "Water levels are near the road flooding threshold and the route planner is "
                    "directing traffic around this road. The road may be impassable. Note that the "
                    "route planner can sometimes be wrong."
                ),
            )
        return Verdict(
            is_open=True,
            confidence=Confidence.MEDIUM,
            reason=(
                "Water levels are near the road flooding threshold but the road is likely still "
                "passable. Conditions may deteriorate, so drive with caution."
            ),
        )

    if flood_status is FloodStatus.RECEDING:
        if _vehicles_seen(traffic_since_flood):
            return Verdict(
                is_open=True,
                confidence=Confidence.HIGH,
                reason=(
                    "Cars have been detected on the road since water levels dropped. "
                    "The road appears to be open."
                ),
            )
        if routing_through:
            if traffic_since_flood is not None:
                return Verdict(
                    is_open=True,
                    confidence=Confidence.MEDIUM,
                    reason=(
                        "The route planner is directing traffic through this road, but no cars have "
                        "been detected yet. The traffic sensor can be unreliable, so the road is "
                        "probably open."
                    ),
                )
            return Verdict(
                is_open=True,
                confidence=Confidence.MEDIUM,
                reason=(
                    "The route planner is directing traffic through this road. However, the route "
                    "planner occasionally shows the road as open prematurely."
                ),
            )
        if routing_away:
            return Verdict(
                is_open=False,
                confidence=Confidence.MEDIUM,
                reason=(
                    "Water levels have dropped, but the route planner is still directing traffic "
                    "around this road. The road may still be closed or obstructed. Note that the "
                    "route planner sometimes shows the road as closed when it has reopened."
                ),
            )
        return Verdict(
            is_open=None,
            confidence=Confidence.LOW,
            reason=(
                "Water levels have dropped below the flood threshold recently. We can't confirm "
                "whether the road has reopened yet."
            ),
        )

    if flood_status is FloodStatus.CLEAR:
        if routing_through:
            return Verdict(
                is_open=True,
                confidence=Confidence.HIGH,
                reason="Water levels are normal and traffic is routing through.",
            )
        if route_status is RouteStatus.ROUTING_AROUND:
            return Verdict(
                is_open=False,
                confidence=Confidence.MEDIUM,
                reason=(
                    "Water levels are normal, but the route planner is directing traffic around this "
                    "road. There may be a closure for other reasons. The route planner can sometimes "
                    "be wrong."
                ),
            )
        return Verdict(
            is_open=True,
            confidence=Confidence.LOW,
            reason="Water levels are within normal range.",
        )

    if flood_status is FloodStatus.UNKNOWN:
        if _vehicles_seen(traffic_since_flood):
            return Verdict(
                is_open=True,
                confidence=Confidence.LOW,
                reason=(
                    "River level data is unavailable, but cars have been detected on the road. "
                    "The road appears passable, but flooding cannot be ruled out."
                ),
            )
        if route_known:
            return Verdict(
                is_open=None,
                confidence=Confidence.LOW,
                reason=(
                    "River level data is unavailable, so the route planner's view cannot be checked "
                    "against water levels. The road status is uncertain."
                ),
            )
        return Verdict(
            is_open=None,
            confidence=Confidence.LOW,
            reason="River level, route planner and traffic data are all unavailable.",
        )

    raise ValueError(f"unhandled flood status: {flood_status!r}")


def headline(flood_status: FloodStatus, trend: Trend, verdict: Verdict | None) -> tuple[str, str]:
    """Short (answer, detail) pair for the question "is the road flooded?"."""
    if flood_status is FloodStatus.FLOODED:
        if trend is Trend.RISING:
            detail = "The river is above the road flooding level and still rising. The road is impassable."
        elif trend is Trend.FALLING:
            detail = (
                "The river is above the road flooding level but starting to fall. "
                "The road is still impassable."
            )
        else:
            detail = "The river is above the road flooding level. The road is impassable."
        return "Yes.", detail

    if flood_status is FloodStatus.NEAR_FLOOD:
        if verdict is None or verdict.is_open:
            if trend is Trend.RISING:
                return (
                    "Maybe / soon.",
                    "The river is near the road flooding level and rising. The road may be passable "
                    "but conditions will likely worsen, so drive with caution.",
                )
            return (
                "Maybe / soon.",
                "The river is near the road flooding level. The road may be passable but may be "
                "affected if levels rise.",
            )
        return (
            "Probably.",
            "The river is near the historic road flooding level and the road appears to have been closed.",
        )

    if flood_status is FloodStatus.RECEDING:
        return (
            "Receding.",
            "The river was recently above road flooding level but has now dropped. Check the road status.",
        )

    if flood_status is FloodStatus.CLEAR:
        return "No.", "The river is within normal levels. The road should be clear."

    return (
        "Unknown.",
        "River level data is currently unavailable. Check the road status and flood warnings.",
    )
