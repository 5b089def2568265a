from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest

from roadwatch.corridor import A417_MAISEMORE
from roadwatch.errors import UpstreamUnavailable
from roadwatch.settings import settings
from roadwatch.upstream import GaugeClient, MatchingClient, RoutingClient


class _Script:
    """Replays canned responses and remembers every request it served."""

    def __init__(self, responses: list[Any]) -> None:
        self._responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _client(script: _Script) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(script))


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(settings, "upstream_backoff_base_ms", 0)
    monkeypatch.setattr(settings, "upstream_backoff_max_ms", 0)


def _readings_payload() -> dict[str, Any]:
    return {
        "items": [
            {"dateTime": "2026-01-05T10:15:00Z", "value": 3.62},
            {"dateTime": "2026-01-05T10:00:00Z", "value": 3.60},
        ]
    }


def test_gauge_readings_query_and_parse() -> None:
    script = _Script([httpx.Response(200, json=_readings_payload())])
    gauge = GaugeClient(base_url="https://ea.test/flood-monitoring", station_id="2618", client=_client(script))

    readings = asyncio.run(gauge.fetch_readings(3, now=datetime(2026, 1, 5, 12, 0, tzinfo=UTC)))

    assert [r.value for r in readings] == [3.60, 3.62]
    request = script.requests[0]
    assert request.url.path == "/flood-monitoring/id/stations/2618/readings"
    assert request.url.params["since"] == "2026-01-02T12:00:00Z"
    assert request.url.params["_limit"] == "10000"


def test_gauge_latest_returns_newest_reading() -> None:
    script = _Script([httpx.Response(200, json=_readings_payload())])
    gauge = GaugeClient(base_url="https://ea.test", client=_client(script))

    latest = asyncio.run(gauge.fetch_latest())

    assert latest is not None
    assert latest.value == 3.62
    assert "latest" in script.requests[0].url.params


def test_flood_warnings_filtered_to_configured_areas() -> None:
    payload = {
        "items": [
            {
                "@id": "https://ea.test/id/floods/031WAF214",
                "floodAreaID": "031WAF214",
                "description": "River Severn at Maisemore",
                "severity": "Flood alert",
                "severityLevel": 3,
                "message": "Flooding of low lying land is possible.",
                "timeRaised": "2026-01-05T08:00:00",
                "timeMessageChanged": "2026-01-05T08:00:00",
            },
            {"floodAreaID": "062FWF46Hereford", "severity": "Flood warning", "severityLevel": 2},
        ]
    }
    script = _Script([httpx.Response(200, json=payload)])
    gauge = GaugeClient(
        base_url="https://ea.test",
        flood_area_ids=frozenset({"031FWBSE570", "031WAF214"}),
        client=_client(script),
    )

    warnings = asyncio.run(gauge.fetch_flood_warnings())

    assert len(warnings) == 1
    assert warnings[0]["flood_area_id"] == "031WAF214"
    assert warnings[0]["severity_level"] == 3
    assert warnings[0]["time_raised"] == datetime(2026, 1, 5, 8, 0, tzinfo=UTC)


def test_retryable_status_then_success() -> None:
    script = _Script([httpx.Response(503, text="busy"), httpx.Response(200, json=_readings_payload())])
    gauge = GaugeClient(base_url="https://ea.test", client=_client(script), max_attempts=3)

    readings = asyncio.run(gauge.fetch_readings(1))

    assert len(readings) == 2
    assert len(script.requests) == 2


def test_transport_error_then_success() -> None:
    script = _Script(
        [
            httpx.ConnectError("temporary failure"),
            httpx.Response(200, json=_readings_payload()),
        ]
    )
    gauge = GaugeClient(base_url="https://ea.test", client=_client(script), max_attempts=2)

    assert len(asyncio.run(gauge.fetch_readings(1))) == 2


def test_redirect_and_decoding_failures_become_upstream_unavailable() -> None:
    script = _Script([httpx.TooManyRedirects("loop"), httpx.DecodingError("bad gzip")])
    gauge = GaugeClient(base_url="https://ea.test", client=_client(script), max_attempts=2)

    with pytest.raises(UpstreamUnavailable) as exc:
        asyncio.run(gauge.fetch_latest())

    assert len(script.requests) == 2
    assert exc.value.reason_code == "upstream_unavailable"
    assert "DecodingError" in str(exc.value)


def test_client_error_fails_fast() -> None:
    script = _Script([httpx.Response(403, text="Developer Inactive"), httpx.Response(200, json={})])
    router = RoutingClient(api_key="k", base_url="https://tomtom.test/routing/1/calculateRoute", client=_client(script))

    with pytest.raises(UpstreamUnavailable) as exc:
        asyncio.run(router.fetch_route(A417_MAISEMORE))

    assert len(script.requests) == 1
    assert exc.value.reason_code == "upstream_http_error"
    assert exc.value.source == "routing"
    assert exc.value.details == {"status_code": 403}
    assert "Developer Inactive" in str(exc.value)


def test_exhausted_retries_raise_last_error() -> None:
    script = _Script([httpx.Response(502), httpx.Response(502), httpx.Response(502)])
    gauge = GaugeClient(base_url="https://ea.test", client=_client(script), max_attempts=3)

    with pytest.raises(UpstreamUnavailable) as exc:
        asyncio.run(gauge.fetch_latest())

    assert len(script.requests) == 3
    assert exc.value.source == "gauge"
    assert exc.value.reason_code == "upstream_http_error"


def test_repeated_timeouts_are_upstream_timeout() -> None:
    script = _Script([httpx.ReadTimeout("slow"), httpx.ReadTimeout("slow")])
    gauge = GaugeClient(base_url="https://ea.test", client=_client(script), max_attempts=2)

    with pytest.raises(UpstreamUnavailable) as exc:
        asyncio.run(gauge.fetch_latest())

    assert exc.value.reason_code == "upstream_timeout"
    assert "ReadTimeout" in str(exc.value)


def test_invalid_json_is_malformed_payload() -> None:
    script = _Script([httpx.Response(200, text="<html>oops</html>")])
    gauge = GaugeClient(base_url="https://ea.test", client=_client(script))

    with pytest.raises(UpstreamUnavailable) as exc:
        asyncio.run(gauge.fetch_latest())
    assert exc.value.reason_code == "upstream_malformed_payload"


def test_routing_request_shape_and_parse() -> None:
    body = {
        "routes": [
            {
                "summary": {"lengthInMeters": 1812, "travelTimeInSeconds": 150, "trafficDelayInSeconds": 0},
                "legs": [
                    {
                        "points": [
                            {"latitude": 51.8898, "longitude": -2.2757},
                            {"latitude": 51.8841, "longitude": -2.2672},
                            {"latitude": 51.8753, "longitude": -2.2620},
                        ]
                    }
                ],
            }
        ]
    }
    script = _Script([httpx.Response(200, json=body)])
    router = RoutingClient(api_key="secret", base_url="https://tomtom.test/routing/1/calculateRoute", client=_client(script))

    route = asyncio.run(router.fetch_route(A417_MAISEMORE))

    assert route is not None
    assert route.length_m == 1812.0
    request = script.requests[0]
    assert request.url.path.endswith("/json")
    assert f"{A417_MAISEMORE.origin.lat},{A417_MAISEMORE.origin.lon}:" in request.url.path
    assert request.url.params["traffic"] == "true"
    assert request.url.params["key"] == "secret"


def test_routing_without_key_is_missing_credentials() -> None:
    script = _Script([])
    router = RoutingClient(api_key="", client=_client(script))

    with pytest.raises(UpstreamUnavailable) as exc:
        asyncio.run(router.fetch_route(A417_MAISEMORE))

    assert exc.value.reason_code == "missing_credentials"
    assert script.requests == []


def test_matching_request_uses_trace_and_radiuses() -> None:
    script = _Script([httpx.Response(200, json={"code": "Ok", "matchings": []})])
    matcher = MatchingClient(
        access_token="pk.test",
        base_url="https://mapbox.test/matching/v5/mapbox/driving-traffic",
        radius_m=25,
        client=_client(script),
    )

    payload = asyncio.run(matcher.fetch_match(A417_MAISEMORE))

    assert payload["code"] == "Ok"
    params = script.requests[0].url.params
    assert params["annotations"] == "speed,congestion,distance"
    assert params["radiuses"] == ";".join(["25"] * len(A417_MAISEMORE.trace))
    assert params["geometries"] == "geojson"


def test_matching_non_object_body_is_malformed() -> None:
    script = _Script([httpx.Response(200, json=[1, 2, 3])])
    matcher = MatchingClient(access_token="pk.test", base_url="https://mapbox.test", client=_client(script))

    with pytest.raises(UpstreamUnavailable) as exc:
        asyncio.run(matcher.fetch_match(A417_MAISEMORE))
    assert exc.value.source == "traffic"
