from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta

from .errors import InvalidInput
from .settings import Settings


@dataclass(frozen=True)
class Thresholds:
    """Gauge bands and route-classification limits for one station/corridor.

    Passed explicitly into every classifier so the same code can be exercised
    against other gauges without touching module state.
    """

    road_flood_m: float = 3.98
    flood_warning_m: float = 3.90
    normal_high_m: float = 3.00
    direct_distance_m: float = 1800.0
    detour_multiplier: float = 2.5
    midpoint_proximity_m: float = 150.0

    # Safety margin below the band levels used for FLOODED / NEAR_FLOOD.
    flood_margin_m: float = 0.05
    trend_deadband_m: float = 0.02
    trend_window: int = 8
    trend_min_readings: int = 4
    receding_lookback: timedelta = timedelta(days=7)

    def __post_init__(self) -> None:
        positive = {
            "road_flood_m": self.road_flood_m,
            "flood_warning_m": self.flood_warning_m,
            "normal_high_m": self.normal_high_m,
            "direct_distance_m": self.direct_distance_m,
            "detour_multiplier": self.detour_multiplier,
            "midpoint_proximity_m": self.midpoint_proximity_m,
        }
        for name, value in positive.items():
            if not math.isfinite(value) or value <= 0.0:
                raise InvalidInput(
                    reason_code="invalid_thresholds",
                    message=f"{name} must be a positive finite number (got {value!r})",
                )
        if not (self.normal_high_m < self.flood_warning_m <= self.road_flood_m):
            raise InvalidInput(
                reason_code="invalid_thresholds",
                message="thresholds must satisfy normal_high < flood_warning <= road_flood",
                details={
                    "normal_high_m": self.normal_high_m,
                    "flood_warning_m": self.flood_warning_m,
                    "road_flood_m": self.road_flood_m,
                },
            )
        if self.flood_margin_m < 0.0 or self.trend_deadband_m < 0.0:
            raise InvalidInput(reason_code="invalid_thresholds", message="margins must be non-negative")
        if self.trend_window < 2 or self.trend_min_readings < 2:
            raise InvalidInput(reason_code="invalid_thresholds", message="trend window needs at least 2 readings")

    @property
    def flooded_from_m(self) -> float:
        return self.road_flood_m - self.flood_margin_m

    @property
    def near_flood_from_m(self) -> float:
        return self.flood_warning_m - self.flood_margin_m

    @property
    def max_route_length_m(self) -> float:
        return self.direct_distance_m * self.detour_multiplier


DEFAULT_THRESHOLDS = Thresholds()


def thresholds_from_settings(cfg: Settings) -> Thresholds:
    return Thresholds(
        road_flood_m=float(cfg.road_flood_m),
        flood_warning_m=float(cfg.flood_warning_m),
        normal_high_m=float(cfg.normal_high_m),
        direct_distance_m=float(cfg.direct_distance_m),
        detour_multiplier=float(cfg.detour_multiplier),
        midpoint_proximity_m=float(cfg.midpoint_proximity_m),
    )
