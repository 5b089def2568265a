from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from roadwatch.errors import UpstreamUnavailable
from roadwatch.traffic import (
    PollStatus,
    TrafficReading,
    TrafficStatus,
    aggregate_window,
    classify_match,
    error_reading,
    mph_to_mps,
    mps_to_mph,
    select_window,
    window_description,
)

NOW = datetime(2026, 2, 10, 12, 0, tzinfo=UTC)


def _match(
    *,
    speeds: list[float] | None,
    congestion: list[str] | None,
    code: str = "Ok",
) -> dict[str, Any]:
    annotation: dict[str, Any] = {"distance": [10.0] * len(speeds or [])}
    if speeds is not None:
        annotation["speed"] = speeds
    if congestion is not None:
        annotation["congestion"] = congestion
    return {
        "code": code,
        "matchings": [
            {
                "confidence": 0.9,
                "distance": 1800.0,
                "duration": 140.0,
                "geometry": {"type": "LineString", "coordinates": [[-2.27, 51.89], [-2.26, 51.87]]},
                "legs": [{"distance": 1800.0, "duration": 140.0, "annotation": annotation}],
            }
        ],
    }


def _poll(minutes_ago: int, status: PollStatus, mph: float | None = None) -> TrafficReading:
    return TrafficReading(
        timestamp=NOW - timedelta(minutes=minutes_ago),
        status=status,
        has_live_data=status is PollStatus.HAS_LIVE_DATA,
        average_speed_mps=mph_to_mps(mph) if mph is not None else None,
    )


def test_no_matchings_is_no_match() -> None:
    assert classify_match({"code": "NoMatch", "matchings": []}, timestamp=NOW).status is PollStatus.NO_MATCH
    assert classify_match({"code": "Ok", "matchings": []}, timestamp=NOW).status is PollStatus.NO_MATCH


def test_match_without_speeds_is_no_data() -> None:
    reading = classify_match(_match(speeds=None, congestion=None), timestamp=NOW)

    assert reading.status is PollStatus.NO_DATA
    assert reading.has_live_data is False
    assert reading.confidence == 0.9
    assert reading.geometry is not None


def test_all_unknown_congestion_is_no_live_data() -> None:
    reading = classify_match(_match(speeds=[10.0, 12.0], congestion=["unknown", "unknown"]), timestamp=NOW)

    assert reading.status is PollStatus.NO_LIVE_DATA
    assert reading.average_speed_mps is None
    assert len(reading.segments) == 2


def test_live_average_ignores_unknown_segments() -> None:
    reading = classify_match(
        _match(speeds=[10.0, 30.0, 20.0], congestion=["low", "unknown", "moderate"]),
        timestamp=NOW,
    )

    assert reading.status is PollStatus.HAS_LIVE_DATA
    assert reading.has_live_data is True
    assert reading.average_speed_mps == pytest.approx(mph_to_mps((22.4 + 44.7) / 2))
    assert reading.segments[1]["congestion"] == "unknown"
    assert reading.segments[0]["speed_mph"] == 22.4


def test_live_average_uses_segment_speeds_at_tenth_mph() -> None:
    raw_mph = [20.06, 20.06, 20.01]
    reading = classify_match(
        _match(speeds=[mph_to_mps(v) for v in raw_mph], congestion=["low", "low", "moderate"]),
        timestamp=NOW,
    )

    assert [s["speed_mph"] for s in reading.segments] == [20.1, 20.1, 20.0]
    summary = aggregate_window([reading], description="last 30 minutes")
    assert summary.average_speed_mph == 20.1


def test_missing_congestion_tag_counts_as_unknown() -> None:
    reading = classify_match(_match(speeds=[10.0, 20.0], congestion=["heavy"]), timestamp=NOW)

    assert reading.status is PollStatus.HAS_LIVE_DATA
    assert reading.average_speed_mps == pytest.approx(mph_to_mps(22.4))
    assert reading.segments[1]["congestion"] == "unknown"


def test_malformed_speed_annotation_is_upstream_error() -> None:
    with pytest.raises(UpstreamUnavailable) as exc:
        classify_match(_match(speeds=["fast"], congestion=["low"]), timestamp=NOW)  # type: ignore[list-item]
    assert exc.value.source == "traffic"


def test_window_with_two_live_polls_averages_only_live_polls() -> None:
    window = [
        _poll(1, PollStatus.HAS_LIVE_DATA, 20.0),
        _poll(2, PollStatus.NO_LIVE_DATA),
        _poll(3, PollStatus.HAS_LIVE_DATA, 30.0),
    ]
    summary = aggregate_window(window, description="last 30 minutes")

    assert summary.status is TrafficStatus.LIKELY_OPEN
    assert summary.readings == 3
    assert summary.readings_with_live_data == 2
    assert summary.average_speed_mph == 25.0
    assert summary.most_recent_live_speed_mph == 20.0
    assert summary.most_recent_live_timestamp == NOW - timedelta(minutes=1)


def test_most_recent_live_poll_found_regardless_of_input_order() -> None:
    window = [
        _poll(10, PollStatus.HAS_LIVE_DATA, 40.0),
        _poll(4, PollStatus.HAS_LIVE_DATA, 35.0),
        _poll(1, PollStatus.ERROR),
    ]
    summary = aggregate_window(window, description="last 30 minutes")

    assert summary.most_recent_live_speed_mph == 35.0
    assert summary.most_recent_live_timestamp == NOW - timedelta(minutes=4)


def test_silent_window_is_no_live_data_not_closed() -> None:
    window = [_poll(1, PollStatus.NO_LIVE_DATA), _poll(2, PollStatus.NO_MATCH), error_reading(NOW)]
    summary = aggregate_window(window, description="last 30 minutes")

    assert summary.status is TrafficStatus.NO_LIVE_DATA
    assert summary.readings == 3
    assert summary.readings_with_live_data == 0
    assert summary.average_speed_mph is None
    assert summary.most_recent_live_timestamp is None


def test_empty_window_is_insufficient_data() -> None:
    summary = aggregate_window([], description="last 30 minutes")

    assert summary.status is TrafficStatus.INSUFFICIENT_DATA
    assert summary.readings == 0


def test_aggregation_is_idempotent() -> None:
    window = [_poll(1, PollStatus.HAS_LIVE_DATA, 22.0), _poll(5, PollStatus.NO_DATA)]
    assert aggregate_window(window, description="x") == aggregate_window(window, description="x")


def test_select_window_trailing_minutes_and_since() -> None:
    readings = [_poll(m, PollStatus.NO_LIVE_DATA) for m in (45, 30, 20, 5)]

    trailing = select_window(readings, now=NOW, minutes=30)
    assert [r.timestamp for r in trailing] == [NOW - timedelta(minutes=5), NOW - timedelta(minutes=20)]

    since = select_window(readings, now=NOW, since=NOW - timedelta(minutes=46))
    assert len(since) == 4
    assert since[0].timestamp > since[-1].timestamp


def test_window_description() -> None:
    assert window_description(minutes=30, since=None) == "last 30 minutes"
    assert window_description(minutes=30, since=NOW).startswith("since 2026-02-10T12:00:00")


def test_unit_conversion_round_trip() -> None:
    assert mps_to_mph(10.0) == pytest.approx(22.3694)
    assert mps_to_mph(mph_to_mps(42.0)) == pytest.approx(42.0)
