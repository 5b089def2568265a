from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from .errors import UpstreamUnavailable

MPS_TO_MPH = 2.23694


class PollStatus(str, Enum):
    NO_MATCH = "NO_MATCH"
    NO_DATA = "NO_DATA"
    NO_LIVE_DATA = "NO_LIVE_DATA"
    HAS_LIVE_DATA = "HAS_LIVE_DATA"
    ERROR = "ERROR"


class TrafficStatus(str, Enum):
    LIKELY_OPEN = "LIKELY_OPEN"
    NO_LIVE_DATA = "NO_LIVE_DATA"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


@dataclass(frozen=True)
class TrafficReading:
    """One map-matching poll outcome."""

    timestamp: datetime
    status: PollStatus
    has_live_data: bool = False
    average_speed_mps: float | None = None
    confidence: float | None = None
    geometry: dict[str, Any] | None = None
    segments: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True)
class TrafficSummary:
    status: TrafficStatus
    description: str
    since: datetime | None
    readings: int
    readings_with_live_data: int
    average_speed_mph: float | None = None
    most_recent_live_speed_mph: float | None = None
    most_recent_live_timestamp: datetime | None = None
    geometry: dict[str, Any] | None = field(default=None, compare=False)


def mps_to_mph(mps: float) -> float:
    return mps * MPS_TO_MPH


def mph_to_mps(mph: float) -> float:
    return mph / MPS_TO_MPH


def error_reading(timestamp: datetime) -> TrafficReading:
    return TrafficReading(timestamp=timestamp, status=PollStatus.ERROR)


def _annotation_list(annotation: dict[str, Any], key: str) -> list[Any]:
    value = annotation.get(key)
    return list(value) if isinstance(value, list) else []


def classify_match(payload: dict[str, Any], *, timestamp: datetime) -> TrafficReading:
    """Classify one Mapbox map-matching response.

    Speeds are averaged only over segments whose congestion tag is known; a
    segment with no tag counts as ``unknown``. Stale segments would otherwise
    drag the live average towards free-flow.
    """
    if not isinstance(payload, dict):
        return TrafficReading(timestamp=timestamp, status=PollStatus.NO_MATCH)
    matchings = payload.get("matchings")
    if payload.get("code") != "Ok" or not isinstance(matchings, list) or not matchings:
        return TrafficReading(timestamp=timestamp, status=PollStatus.NO_MATCH)

    matching = matchings[0] if isinstance(matchings[0], dict) else {}
    confidence = matching.get("confidence")
    confidence = float(confidence) if isinstance(confidence, (int, float)) else None
    geometry = matching.get("geometry") if isinstance(matching.get("geometry"), dict) else None

    speeds: list[float] = []
    congestion: list[str] = []
    distances: list[float] = []
    try:
        for leg in matching.get("legs") or []:
            annotation = (leg or {}).get("annotation") or {}
            speeds.extend(float(s) for s in _annotation_list(annotation, "speed"))
            congestion.extend(str(c) for c in _annotation_list(annotation, "congestion"))
            distances.extend(float(d) for d in _annotation_list(annotation, "distance"))
    except (TypeError, ValueError, AttributeError) as e:
        raise UpstreamUnavailable(
            reason_code="upstream_malformed_payload",
            message=f"map-matching annotations are malformed: {e}",
            source="traffic",
        ) from e

    if not speeds:
        return TrafficReading(
            timestamp=timestamp,
            status=PollStatus.NO_DATA,
            confidence=confidence,
            geometry=geometry,
        )

    # Segment speeds are held at 0.1 mph and the live average is taken over those.
    live_speeds_mph: list[float] = []
    segments: list[dict[str, Any]] = []
    for i, speed in enumerate(speeds):
        tag = congestion[i] if i < len(congestion) else "unknown"
        speed_mph = round(mps_to_mph(speed), 1)
        if tag != "unknown":
            live_speeds_mph.append(speed_mph)
        segments.append(
            {
                "speed_mph": speed_mph,
                "congestion": tag,
                "distance_m": round(distances[i] if i < len(distances) else 0.0, 1),
            }
        )

    has_live = bool(live_speeds_mph)
    return TrafficReading(
        timestamp=timestamp,
        status=PollStatus.HAS_LIVE_DATA if has_live else PollStatus.NO_LIVE_DATA,
        has_live_data=has_live,
        average_speed_mps=mph_to_mps(sum(live_speeds_mph) / len(live_speeds_mph)) if has_live else None,
        confidence=confidence,
        geometry=geometry,
        segments=tuple(segments),
    )


def readings_after(readings: Iterable[TrafficReading], cutoff: datetime) -> list[TrafficReading]:
    """Readings strictly after ``cutoff``, newest first."""
    kept = [r for r in readings if r.timestamp > cutoff]
    return sorted(kept, key=lambda r: r.timestamp, reverse=True)


def select_window(
    readings: Iterable[TrafficReading],
    *,
    now: datetime,
    minutes: int = 30,
    since: datetime | None = None,
) -> list[TrafficReading]:
    """Readings strictly after the cutoff, newest first. ``since`` overrides ``minutes``."""
    cutoff = since if since is not None else now - timedelta(minutes=minutes)
    return readings_after(readings, cutoff)


def window_description(*, minutes: int, since: datetime | None) -> str:
    if since is not None:
        return f"since {since.isoformat()}"
    return f"last {minutes} minutes"


def aggregate_window(
    readings: Sequence[TrafficReading],
    *,
    description: str,
    since: datetime | None = None,
) -> TrafficSummary:
    """Summarise a window of polls.

    Any live poll is taken as proof the road is passable. The converse does not
    hold: a silent window only yields NO_LIVE_DATA, never a closure.
    """
    ordered = sorted(readings, key=lambda r: r.timestamp, reverse=True)
    if not ordered:
        return TrafficSummary(
            status=TrafficStatus.INSUFFICIENT_DATA,
            description=description,
            since=since,
            readings=0,
            readings_with_live_data=0,
        )

    live = [r for r in ordered if r.status is PollStatus.HAS_LIVE_DATA]
    live_speeds = [r.average_speed_mps for r in live if r.average_speed_mps is not None]
    average_mph = (
        round(mps_to_mph(sum(live_speeds) / len(live_speeds)), 1) if live_speeds else None
    )
    most_recent = next((r for r in live if r.average_speed_mps is not None), None)
    latest_geometry = next((r.geometry for r in ordered if r.geometry is not None), None)

    return TrafficSummary(
        status=TrafficStatus.LIKELY_OPEN if live else TrafficStatus.NO_LIVE_DATA,
        description=description,
        since=since,
        readings=len(ordered),
        readings_with_live_data=len(live),
        average_speed_mph=average_mph,
        most_recent_live_speed_mph=(
            round(mps_to_mph(most_recent.average_speed_mps), 1)
            if most_recent is not None and most_recent.average_speed_mps is not None
            else None
        ),
        most_recent_live_timestamp=most_recent.timestamp if most_recent is not None else None,
        geometry=latest_geometry,
    )
