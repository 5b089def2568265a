from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from .corridor import A417_MAISEMORE, Corridor
from .errors import UpstreamUnavailable
from .logging_utils import log_event
from .reading_store import ReadingStore
from .settings import settings
from .traffic import TrafficReading, classify_match, error_reading, mps_to_mph


class MatchSource(Protocol):
    async def fetch_match(self, corridor: Corridor) -> dict[str, Any]: ...


async def poll_once(
    matcher: MatchSource,
    store: ReadingStore,
    *,
    corridor: Corridor = A417_MAISEMORE,
    now: datetime | None = None,
    retention: timedelta | None = None,
) -> TrafficReading:
    """Poll map matching once, append the classified reading, prune old rows.

    A failed poll is stored as an ERROR row so gaps in coverage stay visible.
    """
    ts = now or datetime.now(UTC)
    try:
        payload = await matcher.fetch_match(corridor)
        reading = classify_match(payload, timestamp=ts)
    except UpstreamUnavailable as e:
        log_event(
            "traffic_poll_failed",
            level=logging.WARNING,
            reason_code=e.reason_code,
            error=str(e),
            source=e.source,
        )
        reading = error_reading(ts)
    except Exception as e:
        log_event(
            "traffic_poll_failed",
            level=logging.ERROR,
            reason_code="upstream_unavailable",
            error=f"{type(e).__name__}: {e}",
            source="traffic",
        )
        reading = error_reading(ts)
    else:
        log_event(
            "traffic_poll_stored",
            status=reading.status.value,
            has_live_data=reading.has_live_data,
            speed_mph=(
                round(mps_to_mph(reading.average_speed_mps), 1)
                if reading.average_speed_mps is not None
                else None
            ),
        )

    store.append(reading)

    keep_for = retention if retention is not None else timedelta(days=settings.reading_retention_days)
    removed = store.prune(ts - keep_for)
    if removed:
        log_event("traffic_readings_pruned", removed=removed)
    return reading


async def run_poller(
    matcher: MatchSource,
    store: ReadingStore,
    *,
    corridor: Corridor = A417_MAISEMORE,
    interval_s: float | None = None,
    iterations: int | None = None,
    clock: Callable[[], datetime] | None = None,
) -> int:
    """Poll on a fixed interval until cancelled, or ``iterations`` times. Returns polls made."""
    wait_s = float(interval_s if interval_s is not None else settings.poll_interval_s)
    now_fn = clock or (lambda: datetime.now(UTC))
    done = 0
    while iterations is None or done < iterations:
        try:
            await poll_once(matcher, store, corridor=corridor, now=now_fn())
        except Exception as e:
            # A failed write must not stop the schedule; the next poll retries.
            log_event("traffic_poll_crashed", level=logging.ERROR, error=f"{type(e).__name__}: {e}")
        done += 1
        if iterations is not None and done >= iterations:
            break
        await asyncio.sleep(wait_s)
    return done
