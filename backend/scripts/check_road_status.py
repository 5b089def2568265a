from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any, Sequence

from roadwatch.corridor import A417_MAISEMORE
from roadwatch.logging_utils import configure_logging
from roadwatch.models import RoadStatusResponse
from roadwatch.reading_store import READING_STORE
from roadwatch.settings import settings
from roadwatch.status_service import build_road_status
from roadwatch.thresholds import thresholds_from_settings
from roadwatch.upstream import GaugeClient, RoutingClient


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fetch every signal once and print the road verdict as JSON.")
    parser.add_argument("--lookback-days", type=int, default=settings.river_lookback_days)
    parser.add_argument("--summary", action="store_true", help="Print only the verdict fields.")
    parser.add_argument("--log-level", default="WARNING", help="Log level for stderr and the JSON log file.")
    return parser


async def _report(lookback_days: int) -> RoadStatusResponse:
    gauge = GaugeClient()
    router = RoutingClient()
    try:
        report = await build_road_status(
            gauge,
            router,
            READING_STORE,
            corridor=A417_MAISEMORE,
            thresholds=thresholds_from_settings(settings),
            lookback_days=lookback_days,
        )
    finally:
        await gauge.aclose()
        await router.aclose()
    return RoadStatusResponse.from_report(report)


def run_check(args: argparse.Namespace) -> dict[str, Any]:
    response = asyncio.run(_report(int(args.lookback_days)))
    payload = response.model_dump(mode="json")
    if args.summary:
        keys = ("timestamp", "is_open", "confidence", "reason", "flood_status", "route_status", "unavailable")
        return {k: payload[k] for k in keys}
    return payload


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level)
    print(json.dumps(run_check(args), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
