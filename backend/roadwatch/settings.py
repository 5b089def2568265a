from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_out_dir() -> str:
    # Keep logs and poll readings in backend/out by default.
    return str(Path(__file__).resolve().parents[1] / "out")


class Settings(BaseSettings):
    """Validated settings (env-driven). Thresholds default to the Sandhurst gauge."""

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Environment Agency flood-monitoring API
    ea_base_url: str = Field(
        default="https://environment.data.gov.uk/flood-monitoring",
        alias="EA_BASE_URL",
    )
    ea_station_id: str = Field(default="2618", alias="EA_STATION_ID")
    ea_flood_area_ids: str = Field(default="031FWBSE570,031WAF214", alias="EA_FLOOD_AREA_IDS")
    river_lookback_days: int = Field(default=7, ge=1, le=60, alias="RIVER_LOOKBACK_DAYS")

    # TomTom routing
    tomtom_api_key: str = Field(default="", alias="TOMTOM_API_KEY")
    tomtom_routing_url: str = Field(
        default="https://api.tomtom.com/routing/1/calculateRoute",
        alias="TOMTOM_ROUTING_URL",
    )
    route_cache_ttl_s: int = Field(default=300, ge=1, alias="ROUTE_CACHE_TTL_S")

    # Mapbox map matching
    mapbox_access_token: str = Field(default="", alias="MAPBOX_ACCESS_TOKEN")
    mapbox_matching_url: str = Field(
        default="https://api.mapbox.com/matching/v5/mapbox/driving-traffic",
        alias="MAPBOX_MATCHING_URL",
    )
    mapbox_match_radius_m: int = Field(default=25, ge=1, le=50, alias="MAPBOX_MATCH_RADIUS_M")

    # Upstream HTTP policy
    upstream_timeout_s: float = Field(default=20.0, ge=1.0, le=120.0, alias="UPSTREAM_TIMEOUT_S")
    upstream_max_attempts: int = Field(default=3, ge=1, le=10, alias="UPSTREAM_MAX_ATTEMPTS")
    upstream_backoff_base_ms: int = Field(default=250, ge=0, alias="UPSTREAM_BACKOFF_BASE_MS")
    upstream_backoff_max_ms: int = Field(default=2000, ge=0, alias="UPSTREAM_BACKOFF_MAX_MS")

    # Traffic polling and aggregation
    traffic_window_minutes: int = Field(default=30, ge=1, le=24 * 60, alias="TRAFFIC_WINDOW_MINUTES")
    poll_interval_s: int = Field(default=60, ge=5, alias="POLL_INTERVAL_S")
    # Run the traffic poller inside the API process instead of scripts/run_poller.py.
    poller_enabled: bool = Field(default=False, alias="POLLER_ENABLED")
    reading_retention_days: int = Field(default=7, ge=1, le=90, alias="READING_RETENTION_DAYS")

    # Thresholds (metres / ratio)
    road_flood_m: float = Field(default=3.98, gt=0.0, alias="ROAD_FLOOD_M")
    flood_warning_m: float = Field(default=3.90, gt=0.0, alias="FLOOD_WARNING_M")
    normal_high_m: float = Field(default=3.00, gt=0.0, alias="NORMAL_HIGH_M")
    direct_distance_m: float = Field(default=1800.0, gt=0.0, alias="DIRECT_DISTANCE_M")
    detour_multiplier: float = Field(default=2.5, gt=1.0, alias="DETOUR_MULTIPLIER")
    midpoint_proximity_m: float = Field(default=150.0, gt=0.0, alias="MIDPOINT_PROXIMITY_M")

    def flood_area_ids(self) -> frozenset[str]:
        return frozenset(
            part.strip() for part in str(self.ea_flood_area_ids or "").split(",") if part.strip()
        )


settings = Settings()
