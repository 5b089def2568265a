from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any, Final

import httpx

from .corridor import Corridor
from .errors import UpstreamUnavailable
from .river import GaugeReading, parse_ea_readings, parse_timestamp
from .route_classifier import RouteResult, route_result_from_tomtom
from .settings import settings

_RETRYABLE_STATUS: Final[set[int]] = {408, 425, 429, 500, 502, 503, 504}


def _format_http_error(resp: httpx.Response, *, label: str) -> str:
    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    if body:
        return f"{label} {resp.status_code}: {body}"
    return f"{label} HTTP {resp.status_code}"


def _backoff_s(attempt: int) -> float:
    base_ms = max(0, int(settings.upstream_backoff_base_ms))
    max_ms = max(base_ms, int(settings.upstream_backoff_max_ms))
    return min(max_ms, base_ms * (2**attempt)) / 1000.0


class UpstreamClient:
    """Shared GET-with-bounded-retry plumbing for one external API."""

    source: str = "upstream"
    label: str = "upstream"

    def __init__(self, *, client: httpx.AsyncClient | None = None, max_attempts: int | None = None) -> None:
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(float(settings.upstream_timeout_s), connect=5.0),
            headers={"accept": "application/json"},
        )
        self._max_attempts = max(1, int(max_attempts or settings.upstream_max_attempts))

    async def aclose(self) -> None:
        await self._client.aclose()

    def _unavailable(self, reason_code: str, message: str, **details: Any) -> UpstreamUnavailable:
        return UpstreamUnavailable(
            reason_code=reason_code,
            message=message,
            details=details or None,
            source=self.source,
        )

    async def _get_json(self, url: str, *, params: dict[str, str] | None = None) -> Any:
        last_err: Exception | None = None

        for attempt in range(self._max_attempts):
            try:
                resp = await self._client.get(url, params=params)

                # Fast-fail on most 4xx: bad key, bad coordinates, etc.
                if 400 <= resp.status_code < 500 and resp.status_code not in _RETRYABLE_STATUS:
                    raise self._unavailable(
                        "upstream_http_error",
                        _format_http_error(resp, label=self.label),
                        status_code=resp.status_code,
                    )
                if resp.status_code in _RETRYABLE_STATUS:
                    last_err = self._unavailable(
                        "upstream_http_error",
                        _format_http_error(resp, label=self.label),
                        status_code=resp.status_code,
                    )
                else:
                    resp.raise_for_status()
                    try:
                        return resp.json()
                    except ValueError as e:
                        raise self._unavailable(
                            "upstream_malformed_payload", f"{self.label} returned invalid JSON"
                        ) from e

            except httpx.RequestError as e:
                last_err = e
            except httpx.HTTPStatusError as e:
                raise self._unavailable("upstream_http_error", str(e)) from e

            if attempt < self._max_attempts - 1:
                await asyncio.sleep(_backoff_s(attempt))

        if isinstance(last_err, UpstreamUnavailable):
            raise last_err
        # httpx exceptions can stringify to "" (some timeouts), so include the type.
        detail = "unknown error" if last_err is None else f"{type(last_err).__name__}: {last_err!s}".rstrip(": ")
        reason = "upstream_timeout" if isinstance(last_err, httpx.TimeoutException) else "upstream_unavailable"
        raise self._unavailable(
            reason,
            f"{self.label} request failed after {self._max_attempts} attempts: {detail}",
        ) from last_err


class GaugeClient(UpstreamClient):
    """Environment Agency flood-monitoring API for one gauging station."""

    source = "gauge"
    label = "Environment Agency"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        station_id: str | None = None,
        flood_area_ids: frozenset[str] | None = None,
        client: httpx.AsyncClient | None = None,
        max_attempts: int | None = None,
    ) -> None:
        super().__init__(client=client, max_attempts=max_attempts)
        self.base_url = (base_url or settings.ea_base_url).rstrip("/")
        self.station_id = station_id or settings.ea_station_id
        self.flood_area_ids = flood_area_ids if flood_area_ids is not None else settings.flood_area_ids()

    async def fetch_readings(self, days: int, *, now: datetime | None = None) -> list[GaugeReading]:
        since = (now or datetime.now(UTC)) - timedelta(days=days)
        payload = await self._get_json(
            f"{self.base_url}/id/stations/{self.station_id}/readings",
            params={
                "since": since.astimezone(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
                "_sorted": "",
                "_limit": "10000",
            },
        )
        return parse_ea_readings(payload)

    async def fetch_latest(self) -> GaugeReading | None:
        payload = await self._get_json(
            f"{self.base_url}/id/stations/{self.station_id}/readings",
            params={"latest": ""},
        )
        readings = parse_ea_readings(payload)
        return readings[-1] if readings else None

    async def fetch_flood_warnings(self) -> list[dict[str, Any]]:
        payload = await self._get_json(f"{self.base_url}/id/floods")
        items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            return []
        out: list[dict[str, Any]] = []
        for item in items:
            if not isinstance(item, dict) or item.get("floodAreaID") not in self.flood_area_ids:
                continue
            out.append(
                {
                    "id": str(item.get("@id") or ""),
                    "flood_area_id": str(item.get("floodAreaID")),
                    "description": str(item.get("description") or ""),
                    "severity": str(item.get("severity") or ""),
                    "severity_level": (
                        item.get("severityLevel") if isinstance(item.get("severityLevel"), int) else None
                    ),
                    "message": str(item.get("message") or ""),
                    "time_raised": parse_timestamp(item.get("timeRaised")),
                    "time_message_changed": parse_timestamp(item.get("timeMessageChanged")),
                }
            )
        return out


class RoutingClient(UpstreamClient):
    """TomTom calculateRoute with live traffic between the corridor end points."""

    source = "routing"
    label = "TomTom"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        max_attempts: int | None = None,
    ) -> None:
        super().__init__(client=client, max_attempts=max_attempts)
        self.api_key = settings.tomtom_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.tomtom_routing_url).rstrip("/")

    async def fetch_route(self, corridor: Corridor) -> RouteResult | None:
        if not self.api_key:
            raise self._unavailable("missing_credentials", "TOMTOM_API_KEY is not configured")

        # TomTom format: lat,lon:lat,lon
        locations = (
            f"{corridor.origin.lat},{corridor.origin.lon}:"
            f"{corridor.destination.lat},{corridor.destination.lon}"
        )
        payload = await self._get_json(
            f"{self.base_url}/{locations}/json",
            params={
                "key": self.api_key,
                "traffic": "true",
                "travelMode": "car",
                "routeRepresentation": "polyline",
            },
        )
        return route_result_from_tomtom(payload)


class MatchingClient(UpstreamClient):
    """Mapbox map matching on the driving-traffic profile along the corridor trace."""

    source = "traffic"
    label = "Mapbox"

    def __init__(
        self,
        *,
        access_token: str | None = None,
        base_url: str | None = None,
        radius_m: int | None = None,
        client: httpx.AsyncClient | None = None,
        max_attempts: int | None = None,
    ) -> None:
        super().__init__(client=client, max_attempts=max_attempts)
        self.access_token = settings.mapbox_access_token if access_token is None else access_token
        self.base_url = (base_url or settings.mapbox_matching_url).rstrip("/")
        self.radius_m = int(radius_m or settings.mapbox_match_radius_m)

    async def fetch_match(self, corridor: Corridor) -> dict[str, Any]:
        if not self.access_token:
            raise self._unavailable("missing_credentials", "MAPBOX_ACCESS_TOKEN is not configured")

        coordinates = ";".join(f"{lon},{lat}" for lon, lat in corridor.trace)
        payload = await self._get_json(
            f"{self.base_url}/{coordinates}",
            params={
                "access_token": self.access_token,
                "annotations": "speed,congestion,distance",
                "overview": "full",
                "geometries": "geojson",
                "radiuses": ";".join(str(self.radius_m) for _ in corridor.trace),
            },
        )
        if not isinstance(payload, dict):
            raise self._unavailable("upstream_malformed_payload", "Mapbox response is not a JSON object")
        return payload
