from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .errors import InvalidInput
from .thresholds import Thresholds


class Trend(str, Enum):
    RISING = "RISING"
    FALLING = "FALLING"
    STEADY = "STEADY"
    UNKNOWN = "UNKNOWN"


class FloodStatus(str, Enum):
    FLOODED = "FLOODED"
    NEAR_FLOOD = "NEAR_FLOOD"
    RECEDING = "RECEDING"
    CLEAR = "CLEAR"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class GaugeReading:
    timestamp: datetime
    value: float


def _require_sorted(readings: Sequence[GaugeReading]) -> None:
    for prev, cur in zip(readings, readings[1:]):
        if cur.timestamp < prev.timestamp:
            raise InvalidInput(
                reason_code="unsorted_gauge_series",
                message="gauge readings must be sorted by timestamp ascending",
                details={"previous": prev.timestamp.isoformat(), "current": cur.timestamp.isoformat()},
            )


def determine_trend(readings: Sequence[GaugeReading], thresholds: Thresholds) -> Trend:
    """Direction of the river over the trailing readings.

    Requires ``readings`` sorted ascending by timestamp (raises ``InvalidInput``
    otherwise). Fewer than ``trend_min_readings`` gives UNKNOWN. Compares the
    last value to the first value of the trailing ``trend_window`` readings;
    a change smaller than ``trend_deadband_m`` is STEADY.
    """
    _require_sorted(readings)
    if len(readings) < thresholds.trend_min_readings:
        return Trend.UNKNOWN

    recent = readings[-thresholds.trend_window :]
    if len(recent) < 2:
        return Trend.UNKNOWN

    # Gauge values are centimetre-precise; rounding keeps a 0.02 m step at 0.02.
    diff = round(recent[-1].value - recent[0].value, 9)
    if abs(diff) < thresholds.trend_deadband_m:
        return Trend.STEADY
    return Trend.RISING if diff > 0 else Trend.FALLING


def determine_flood_status(
    current_level: float | None,
    readings: Sequence[GaugeReading],
    thresholds: Thresholds,
    *,
    now: datetime | None = None,
) -> FloodStatus:
    """Classify the road against the gauge band ladder, highest band first.

    Requires ``readings`` sorted ascending by timestamp. ``now`` anchors the
    receding lookback; it defaults to the newest reading so the call stays a
    pure function of its arguments.
    """
    _require_sorted(readings)
    if current_level is None:
        return FloodStatus.UNKNOWN

    if current_level >= thresholds.flooded_from_m:
        return FloodStatus.FLOODED
    if current_level >= thresholds.near_flood_from_m:
        return FloodStatus.NEAR_FLOOD

    if readings and current_level > thresholds.normal_high_m:
        anchor = now if now is not None else readings[-1].timestamp
        cutoff = anchor - thresholds.receding_lookback
        recent_flood = any(
            r.value >= thresholds.road_flood_m and r.timestamp > cutoff for r in readings
        )
        if recent_flood:
            return FloodStatus.RECEDING

    return FloodStatus.CLEAR


def find_time_water_dropped_below_flood(
    readings: Sequence[GaugeReading],
    thresholds: Thresholds,
) -> datetime | None:
    """First moment the series fell back below road-flood level after its last flood.

    Returns the timestamp of the reading after the last at-or-above-flood one,
    or that reading's own timestamp when it is the newest. None if the series
    never reached flood level. Requires ascending timestamps.
    """
    _require_sorted(readings)
    for i in range(len(readings) - 1, -1, -1):
        if readings[i].value >= thresholds.road_flood_m:
            if i + 1 < len(readings):
                return readings[i + 1].timestamp
            return readings[i].timestamp
    return None


def find_recent_flood_peak_time(
    readings: Sequence[GaugeReading],
    thresholds: Thresholds,
    *,
    now: datetime | None = None,
) -> datetime | None:
    _require_sorted(readings)
    if not readings:
        return None
    cutoff = (now if now is not None else readings[-1].timestamp) - thresholds.receding_lookback
    peak: GaugeReading | None = None
    for r in readings:
        if r.value >= thresholds.road_flood_m and r.timestamp > cutoff:
            if peak is None or r.value > peak.value:
                peak = r
    return peak.timestamp if peak is not None else None


def parse_timestamp(raw: Any) -> datetime | None:
    text = str(raw or "").strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_ea_readings(payload: Any) -> list[GaugeReading]:
    """Environment Agency ``readings`` body -> series sorted ascending.

    Items without a usable timestamp or a finite numeric value are dropped.
    """
    items = payload.get("items") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        return []
    out: list[GaugeReading] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        value = item.get("value")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            continue
        ts = parse_timestamp(item.get("dateTime"))
        if ts is None:
            continue
        out.append(GaugeReading(timestamp=ts, value=float(value)))
    out.sort(key=lambda r: r.timestamp)
    return out
