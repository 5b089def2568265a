from __future__ import annotations

import argparse
import asyncio
from typing import Sequence

from roadwatch.corridor import A417_MAISEMORE
from roadwatch.logging_utils import configure_logging
from roadwatch.poller import run_poller
from roadwatch.reading_store import READING_STORE
from roadwatch.settings import settings
from roadwatch.upstream import MatchingClient


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Poll map matching along the corridor and append readings to the local store."
    )
    parser.add_argument("--interval-s", type=float, default=float(settings.poll_interval_s))
    parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Stop after this many polls (default: run until interrupted).",
    )
    parser.add_argument("--log-level", default=settings.log_level)
    return parser


async def _run(args: argparse.Namespace) -> int:
    matcher = MatchingClient()
    try:
        return await run_poller(
            matcher,
            READING_STORE,
            corridor=A417_MAISEMORE,
            interval_s=args.interval_s,
            iterations=args.iterations,
        )
    finally:
        await matcher.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level)
    if args.iterations is not None and args.iterations < 1:
        raise SystemExit("--iterations must be at least 1")
    try:
        polls = asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 0
    print(f"Polls completed: {polls}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
