from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from .assessment import Verdict, assess_road_status, headline
from .corridor import A417_MAISEMORE, Corridor
from .errors import RoadwatchError, normalize_reason_code
from .logging_utils import log_event
from .reading_store import ReadingStore
from .river import (
    FloodStatus,
    GaugeReading,
    Trend,
    determine_flood_status,
    determine_trend,
    find_recent_flood_peak_time,
    find_time_water_dropped_below_flood,
)
from .route_cache import ROUTE_CACHE
from .route_classifier import RouteClassification, RouteResult, RouteStatus, classify_route
from .settings import settings
from .thresholds import Thresholds
from .traffic import TrafficSummary, aggregate_window, select_window, window_description


class GaugeSource(Protocol):
    async def fetch_readings(self, days: int, *, now: datetime | None = None) -> list[GaugeReading]: ...

    async def fetch_latest(self) -> GaugeReading | None: ...

    async def fetch_flood_warnings(self) -> list[dict[str, Any]]: ...


class RouteSource(Protocol):
    async def fetch_route(self, corridor: Corridor) -> RouteResult | None: ...


@dataclass(frozen=True)
class RouteCheck:
    timestamp: datetime
    location: str
    classification: RouteClassification
    route: RouteResult | None

    @property
    def status(self) -> RouteStatus:
        return self.classification.status


@dataclass(frozen=True)
class RoadStatusReport:
    timestamp: datetime
    location: str
    verdict: Verdict
    answer: str
    detail: str
    current_level_m: float | None
    current_level_at: datetime | None
    trend: Trend
    flood_status: FloodStatus
    thresholds: Thresholds
    route_check: RouteCheck | None
    traffic: TrafficSummary
    traffic_since_flood: TrafficSummary | None
    dropped_below_flood_at: datetime | None
    recent_flood_peak_at: datetime | None
    reading_count: int
    flood_warnings: list[dict[str, Any]] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def route_status(self) -> RouteStatus | None:
        return self.route_check.status if self.route_check is not None else None


async def check_route(
    router: RouteSource,
    *,
    corridor: Corridor = A417_MAISEMORE,
    thresholds: Thresholds,
    now: datetime | None = None,
    use_cache: bool = True,
) -> RouteCheck:
    """Ask the routing engine for the corridor and classify its answer.

    Upstream failures propagate as ``UpstreamUnavailable``; only a real
    zero-route answer becomes NO_ROUTE.
    """
    cache_key = f"route:{corridor.label}:{thresholds.direct_distance_m}:{thresholds.detour_multiplier}:{thresholds.midpoint_proximity_m}"
    if use_cache:
        cached = ROUTE_CACHE.get(cache_key)
        if cached is not None:
            return cached

    route = await router.fetch_route(corridor)
    check = RouteCheck(
        timestamp=now or datetime.now(UTC),
        location=corridor.label,
        classification=classify_route(route, corridor.midpoint, thresholds),
        route=route,
    )
    log_event(
        "route_check",
        status=check.status.value,
        distance_ratio=check.classification.distance_ratio,
        closest_to_midpoint_m=check.classification.closest_to_midpoint_m,
        duration_s=route.travel_time_s if route is not None else None,
        delay_s=route.traffic_delay_s if route is not None else None,
    )
    if use_cache:
        ROUTE_CACHE.set(cache_key, check)
    return check


def traffic_summary(
    store: ReadingStore,
    *,
    now: datetime,
    since: datetime | None = None,
    minutes: int | None = None,
) -> TrafficSummary:
    window_minutes = int(minutes if minutes is not None else settings.traffic_window_minutes)
    return aggregate_window(
        select_window(store.readings(), now=now, minutes=window_minutes, since=since),
        description=window_description(minutes=window_minutes, since=since),
        since=since,
    )


def _unwrap(result: Any, *, source: str, errors: dict[str, str]) -> Any:
    if isinstance(result, RoadwatchError):
        errors[source] = str(result)
        log_event(
            "signal_unavailable",
            level=logging.WARNING,
            signal=source,
            reason_code=normalize_reason_code(result.reason_code),
            error=str(result),
        )
        return None
    if isinstance(result, BaseException):
        raise result
    return result


async def build_road_status(
    gauge: GaugeSource,
    router: RouteSource,
    store: ReadingStore,
    *,
    corridor: Corridor = A417_MAISEMORE,
    thresholds: Thresholds,
    now: datetime | None = None,
    lookback_days: int | None = None,
) -> RoadStatusReport:
    """Fetch every signal concurrently and reconcile them into one report.

    Any signal that fails is reported as unknown in ``errors`` and the verdict
    is still produced from whatever evidence remains.
    """
    ts = now or datetime.now(UTC)
    days = int(lookback_days if lookback_days is not None else settings.river_lookback_days)
    errors: dict[str, str] = {}

    raw_readings, raw_latest, raw_warnings, raw_route = await asyncio.gather(
        gauge.fetch_readings(days, now=ts),
        gauge.fetch_latest(),
        gauge.fetch_flood_warnings(),
        check_route(router, corridor=corridor, thresholds=thresholds, now=ts),
        return_exceptions=True,
    )
    readings: list[GaugeReading] = _unwrap(raw_readings, source="gauge_readings", errors=errors) or []
    latest: GaugeReading | None = _unwrap(raw_latest, source="gauge_latest", errors=errors)
    warnings: list[dict[str, Any]] = _unwrap(raw_warnings, source="flood_warnings", errors=errors) or []
    route_check: RouteCheck | None = _unwrap(raw_route, source="routing", errors=errors)

    # The series' newest value stands in when the single latest read failed.
    if latest is None and "gauge_latest" in errors and readings:
        latest = readings[-1]
    current_level = latest.value if latest is not None else None

    trend = determine_trend(readings, thresholds)
    flood_status = determine_flood_status(current_level, readings, thresholds, now=ts)
    dropped_at = find_time_water_dropped_below_flood(readings, thresholds)
    peak_at = find_recent_flood_peak_time(readings, thresholds, now=ts)

    traffic = traffic_summary(store, now=ts)
    since_flood: TrafficSummary | None = None
    if flood_status in (FloodStatus.RECEDING, FloodStatus.CLEAR) and dropped_at is not None:
        since_flood = traffic_summary(store, now=ts, since=dropped_at)

    # Without a gauge reading there is no flood to measure "since"; the current
    # traffic window is the best evidence of passability.
    traffic_evidence = traffic if flood_status is FloodStatus.UNKNOWN else since_flood
    route_status = route_check.status if route_check is not None else None
    verdict = assess_road_status(flood_status, route_status, traffic_evidence)
    answer, detail = headline(flood_status, trend, verdict)

    log_event(
        "road_status_assessed",
        flood_status=flood_status.value,
        trend=trend.value,
        route_status=route_status.value if route_status is not None else None,
        traffic_status=traffic.status.value,
        is_open=verdict.is_open,
        confidence=verdict.confidence.value,
        current_level_m=current_level,
        unavailable=sorted(errors),
    )

    return RoadStatusReport(
        timestamp=ts,
        location=corridor.label,
        verdict=verdict,
        answer=answer,
        detail=detail,
        current_level_m=current_level,
        current_level_at=latest.timestamp if latest is not None else None,
        trend=trend,
        flood_status=flood_status,
        thresholds=thresholds,
        route_check=route_check,
        traffic=traffic,
        traffic_since_flood=since_flood,
        dropped_below_flood_at=dropped_at,
        recent_flood_peak_at=peak_at,
        reading_count=len(readings),
        flood_warnings=warnings,
        errors=errors,
    )
