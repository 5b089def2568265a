from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "empty_route_points",
        "unsorted_gauge_series",
        "invalid_gauge_series",
        "invalid_thresholds",
        "missing_credentials",
        "upstream_http_error",
        "upstream_timeout",
        "upstream_malformed_payload",
        "upstream_unavailable",
    }
)


@dataclass
class RoadwatchError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


@dataclass
class InvalidInput(RoadwatchError):
    """Input the core refuses to classify (empty point set, unsorted series, bad thresholds)."""


@dataclass
class UpstreamUnavailable(RoadwatchError):
    """An external signal failed, timed out, or answered with something unusable."""

    source: str = "unknown"


def normalize_reason_code(reason_code: str, *, default: str = "upstream_unavailable") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default
