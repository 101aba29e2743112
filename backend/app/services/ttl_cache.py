from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from time import monotonic
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from backend.app.services.pagination_engine import PageResult

HOMEPAGE_SNAPSHOT_KEY = "homepage:snapshot"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Any
    stored_at: float


def make_cache_key(namespace: str, *params: object) -> str:
    parts = [str(param) for param in params if param is not None and param != ""]
    return f"{namespace}:{':'.join(parts)}"


class TTLCache:
    """
    Bounded in-process cache with per-entry expiry.

    Eviction is FIFO by insertion time, not LRU. Expired entries are dropped
    lazily when read. Runs on a single event loop, so no locking.
    """

    def __init__(
        self,
        *,
        max_size: int = 100,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._max_size = max(1, max_size)
        self._ttl_seconds = max(0.0, ttl_seconds)
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        return list(self._entries)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self._ttl_seconds:
            del self._entries[key]
            return None
        return entry.payload

    def set(self, key: str, value: Any) -> None:
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self._max_size:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]
        self._entries[key] = CacheEntry(key=key, payload=value, stored_at=self._clock())

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()


class HomepageSnapshotSlot:
    def __init__(
        self,
        *,
        ttl_seconds: float = 1800.0,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._cache = TTLCache(max_size=1, ttl_seconds=ttl_seconds, clock=clock)

    def get(self) -> PageResult | None:
        return self._cache.get(HOMEPAGE_SNAPSHOT_KEY)

    def replace(self, result: PageResult) -> None:
        self._cache.set(HOMEPAGE_SNAPSHOT_KEY, result)

    def clear(self) -> None:
        self._cache.clear()
