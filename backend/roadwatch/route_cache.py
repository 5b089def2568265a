from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Generic, TypeVar

from .settings import settings

T = TypeVar("T")


@dataclass
class _CacheEntry(Generic[T]):
    inserted_at: float
    payload: T


class TTLCache(Generic[T]):
    """Single-process TTL cache for upstream answers that are expensive to refetch."""

    def __init__(self, *, ttl_s: int) -> None:
        self._ttl_s = max(1, int(ttl_s))
        self._lock = Lock()
        self._items: dict[str, _CacheEntry[T]] = {}
        self._hits = 0
        self._misses = 0

    def _is_expired(self, entry: _CacheEntry[T]) -> bool:
        return (time.time() - entry.inserted_at) > self._ttl_s

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._items.get(key)
            if entry is None or self._is_expired(entry):
                self._items.pop(key, None)
                self._misses += 1
                return None
            self._hits += 1
            return entry.payload

    def set(self, key: str, value: T) -> None:
        with self._lock:
            self._items[key] = _CacheEntry(inserted_at=time.time(), payload=value)

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._items)
            self._items.clear()
            return cleared

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._items),
                "hits": self._hits,
                "misses": self._misses,
                "ttl_s": self._ttl_s,
            }


# Route checks are immutable dataclasses, so entries are shared without copying.
ROUTE_CACHE: TTLCache = TTLCache(ttl_s=settings.route_cache_ttl_s)


def clear_route_cache() -> int:
    return ROUTE_CACHE.clear()


def route_cache_stats() -> dict[str, int]:
    return ROUTE_CACHE.snapshot()
