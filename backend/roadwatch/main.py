from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager, suppress
from datetime import UTC, datetime
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .corridor import A417_MAISEMORE
from .errors import UpstreamUnavailable
from .logging_utils import log_event
from .models import (
    GaugeReadingOut,
    RiverResponse,
    RoadStatusResponse,
    RouteCheckResponse,
    ThresholdsOut,
    TrafficResponse,
)
from .poller import run_poller
from .reading_store import READING_STORE, ReadingStore
from .river import determine_flood_status, determine_trend, parse_timestamp
from .settings import settings
from .status_service import build_road_status, check_route, traffic_summary
from .thresholds import Thresholds, thresholds_from_settings
from .upstream import GaugeClient, MatchingClient, RoutingClient


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.gauge = GaugeClient()
    app.state.router = RoutingClient()
    poller: asyncio.Task | None = None
    matcher: MatchingClient | None = None
    if settings.poller_enabled:
        matcher = MatchingClient()
        poller = asyncio.create_task(run_poller(matcher, READING_STORE, corridor=A417_MAISEMORE))
    yield
    if poller is not None:
        poller.cancel()
        with suppress(asyncio.CancelledError):
            await poller
    if matcher is not None:
        await matcher.aclose()
    await app.state.gauge.aclose()
    await app.state.router.aclose()


app = FastAPI(title="Road flood status", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type"],
)


def _state_client(request: Request, name: str):
    client = getattr(request.app.state, name, None)
    if client is None:
        raise HTTPException(status_code=503, detail=f"{name} client not initialised")
    return client


def gauge_client(request: Request) -> GaugeClient:
    return _state_client(request, "gauge")


def routing_client(request: Request) -> RoutingClient:
    return _state_client(request, "router")


def reading_store() -> ReadingStore:
    return READING_STORE


def thresholds() -> Thresholds:
    return thresholds_from_settings(settings)


GaugeDep = Annotated[GaugeClient, Depends(gauge_client)]
RouterDep = Annotated[RoutingClient, Depends(routing_client)]
StoreDep = Annotated[ReadingStore, Depends(reading_store)]
ThresholdsDep = Annotated[Thresholds, Depends(thresholds)]


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/route-check", response_model=RouteCheckResponse)
async def route_check(router: RouterDep, limits: ThresholdsDep) -> RouteCheckResponse:
    try:
        check = await check_route(router, corridor=A417_MAISEMORE, thresholds=limits)
    except UpstreamUnavailable as e:
        log_event("route_check_failed", reason_code=e.reason_code, error=str(e))
        raise HTTPException(status_code=502, detail=str(e)) from e
    return RouteCheckResponse.from_check(check)


@app.get("/traffic", response_model=TrafficResponse)
async def traffic(
    store: StoreDep,
    since: Annotated[str | None, Query(description="ISO 8601 instant; defaults to the trailing window")] = None,
) -> TrafficResponse:
    since_dt = None
    if since is not None:
        since_dt = parse_timestamp(since)
        if since_dt is None:
            raise HTTPException(status_code=400, detail="invalid since timestamp")
    now = datetime.now(UTC)
    summary = traffic_summary(store, now=now, since=since_dt)
    return TrafficResponse.from_summary(summary, timestamp=now, location=A417_MAISEMORE.label)


@app.get("/river", response_model=RiverResponse)
async def river(
    gauge: GaugeDep,
    limits: ThresholdsDep,
    days: Annotated[int, Query(ge=1, le=30)] = 3,
) -> RiverResponse:
    now = datetime.now(UTC)
    try:
        readings = await gauge.fetch_readings(days, now=now)
    except UpstreamUnavailable as e:
        log_event("river_fetch_failed", reason_code=e.reason_code, error=str(e))
        raise HTTPException(status_code=502, detail=str(e)) from e

    current = readings[-1].value if readings else None
    return RiverResponse(
        timestamp=now,
        station_id=gauge.station_id,
        days=days,
        current_level_m=current,
        trend=determine_trend(readings, limits),
        flood_status=determine_flood_status(current, readings, limits, now=now),
        thresholds=ThresholdsOut(
            road_flood_m=limits.road_flood_m,
            flood_warning_m=limits.flood_warning_m,
            normal_high_m=limits.normal_high_m,
        ),
        readings=[GaugeReadingOut.from_reading(r) for r in readings],
    )


@app.get("/status", response_model=RoadStatusResponse)
async def road_status(
    gauge: GaugeDep,
    router: RouterDep,
    store: StoreDep,
    limits: ThresholdsDep,
) -> RoadStatusResponse:
    t0 = time.perf_counter()
    report = await build_road_status(gauge, router, store, corridor=A417_MAISEMORE, thresholds=limits)
    log_event(
        "status_request",
        is_open=report.verdict.is_open,
        confidence=report.verdict.confidence.value,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return RoadStatusResponse.from_report(report)
