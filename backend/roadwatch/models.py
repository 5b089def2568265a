from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from .assessment import Confidence
from .river import FloodStatus, GaugeReading, Trend
from .route_classifier import RouteStatus, congestion_label, congestion_level
from .status_service import RoadStatusReport, RouteCheck
from .traffic import TrafficStatus, TrafficSummary


class GeoJSONLineString(BaseModel):
    type: Literal["LineString"] = "LineString"
    coordinates: list[tuple[float, float]]


class RouteDetail(BaseModel):
    distance_m: float
    duration_s: float
    traffic_delay_s: float
    distance_ratio: float | None = None
    closest_to_midpoint_m: float | None = None
    congestion_level: str
    congestion_label: str
    geometry: GeoJSONLineString


class RouteCheckResponse(BaseModel):
    timestamp: datetime
    location: str
    status: RouteStatus
    route: RouteDetail | None = None

    @classmethod
    def from_check(cls, check: RouteCheck) -> RouteCheckResponse:
        detail: RouteDetail | None = None
        if check.route is not None:
            route = check.route
            detail = RouteDetail(
                distance_m=route.length_m,
                duration_s=route.travel_time_s,
                traffic_delay_s=route.traffic_delay_s,
                distance_ratio=check.classification.distance_ratio,
                closest_to_midpoint_m=check.classification.closest_to_midpoint_m,
                congestion_level=congestion_level(route.traffic_delay_s, route.travel_time_s),
                congestion_label=congestion_label(route.traffic_delay_s, route.travel_time_s),
                geometry=GeoJSONLineString(coordinates=[(p.lon, p.lat) for p in route.points]),
            )
        return cls(timestamp=check.timestamp, location=check.location, status=check.status, route=detail)


class TrafficWindow(BaseModel):
    description: str
    since: datetime | None = None
    readings: int = Field(..., ge=0)
    readings_with_live_data: int = Field(..., ge=0)


class TrafficResponse(BaseModel):
    timestamp: datetime
    location: str
    status: TrafficStatus
    window: TrafficWindow
    average_speed_mph: float | None = None
    most_recent_live_speed_mph: float | None = None
    most_recent_live_timestamp: datetime | None = None
    geometry: dict[str, Any] | None = None

    @classmethod
    def from_summary(cls, summary: TrafficSummary, *, timestamp: datetime, location: str) -> TrafficResponse:
        return cls(
            timestamp=timestamp,
            location=location,
            status=summary.status,
            window=TrafficWindow(
                description=summary.description,
                since=summary.since,
                readings=summary.readings,
                readings_with_live_data=summary.readings_with_live_data,
            ),
            average_speed_mph=summary.average_speed_mph,
            most_recent_live_speed_mph=summary.most_recent_live_speed_mph,
            most_recent_live_timestamp=summary.most_recent_live_timestamp,
            geometry=summary.geometry,
        )


class GaugeReadingOut(BaseModel):
    timestamp: datetime
    value_m: float

    @classmethod
    def from_reading(cls, reading: GaugeReading) -> GaugeReadingOut:
        return cls(timestamp=reading.timestamp, value_m=reading.value)


class ThresholdsOut(BaseModel):
    road_flood_m: float
    flood_warning_m: float
    normal_high_m: float


class RiverResponse(BaseModel):
    timestamp: datetime
    station_id: str
    days: int
    current_level_m: float | None = None
    trend: Trend
    flood_status: FloodStatus
    thresholds: ThresholdsOut
    readings: list[GaugeReadingOut]


class FloodWarningOut(BaseModel):
    id: str
    flood_area_id: str
    description: str = ""
    severity: str = ""
    severity_level: int | None = None
    message: str = ""
    time_raised: datetime | None = None
    time_message_changed: datetime | None = None


class RoadStatusResponse(BaseModel):
    """Verdict plus the classified signals behind it."""

    timestamp: datetime
    location: str
    is_open: bool | None
    confidence: Confidence
    reason: str
    answer: str
    detail: str
    current_level_m: float | None = None
    current_level_at: datetime | None = None
    trend: Trend
    flood_status: FloodStatus
    thresholds: ThresholdsOut
    route_status: RouteStatus | None = None
    route: RouteCheckResponse | None = None
    traffic: TrafficResponse | None = None
    traffic_since_flood: TrafficResponse | None = None
    dropped_below_flood_at: datetime | None = None
    recent_flood_peak_at: datetime | None = None
    reading_count: int = 0
    flood_warnings: list[FloodWarningOut] = Field(default_factory=list)
    unavailable: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_report(cls, report: RoadStatusReport) -> RoadStatusResponse:
        def traffic_out(summary: TrafficSummary | None) -> TrafficResponse | None:
            if summary is None:
                return None
            return TrafficResponse.from_summary(summary, timestamp=report.timestamp, location=report.location)

        return cls(
            timestamp=report.timestamp,
            location=report.location,
            is_open=report.verdict.is_open,
            confidence=report.verdict.confidence,
            reason=report.verdict.reason,
            answer=report.answer,
            detail=report.detail,
            current_level_m=report.current_level_m,
            current_level_at=report.current_level_at,
            trend=report.trend,
            flood_status=report.flood_status,
            thresholds=ThresholdsOut(
                road_flood_m=report.thresholds.road_flood_m,
                flood_warning_m=report.thresholds.flood_warning_m,
                normal_high_m=report.thresholds.normal_high_m,
            ),
            route_status=report.route_status,
            route=RouteCheckResponse.from_check(report.route_check) if report.route_check is not None else None,
            traffic=traffic_out(report.traffic),
            traffic_since_flood=traffic_out(report.traffic_since_flood),
            dropped_below_flood_at=report.dropped_below_flood_at,
            recent_flood_peak_at=report.recent_flood_peak_at,
            reading_count=report.reading_count,
            flood_warnings=[FloodWarningOut(**w) for w in report.flood_warnings],
            unavailable=dict(report.errors),
        )
