"""
In-process caches shared by the request path.

Both caches are best-effort: a miss is always recoverable by re-deriving the
value upstream. Entries are immutable once created, so concurrent writers of
the same key are last-writer-wins.
"""

import logging
import time
from collections.abc import Callable
from typing import Generic, TypeVar

from codepuzzles.config import settings

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class BoundedCache(Generic[K, V]):
    """Fixed-capacity map that evicts the oldest inserted key on overflow."""

    def __init__(self, max_entries: int):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: dict[K, V] = {}

    def get(self, key: K) -> V | None:
        return self._entries.get(key)

    def set(self, key: K, value: V) -> None:
        if key in self._entries:
            self._entries[key] = value
            return
        if len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug(f"🗑️  Evicted oldest cache entry: {oldest}")
        self._entries[key] = value

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[K]:
        return list(self._entries)


class TTLCache(Generic[K, V]):
    """Map whose entries expire ``ttl_seconds`` after insertion; expired entries are dropped on read and on write."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[K, tuple[float, V]] = {}

    def get(self, key: K) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: K, value: V) -> None:
        now = self._clock()
        self._prune(now)
        self._entries[key] = (now, value)

    def _prune(self, now: float) -> None:
        expired = [
            k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_seconds
        ]
        for k in expired:
            del self._entries[k]
        if expired:
            logger.debug(f"🗑️  Pruned {len(expired)} expired cache entries")

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# Process-wide instances, wired into services through the getters below
_puzzle_cache_instance = None
_file_cache_instance = None


def get_puzzle_cache() -> BoundedCache:
    global _puzzle_cache_instance
    if _puzzle_cache_instance is None:
        _puzzle_cache_instance = BoundedCache(settings.puzzle_cache_max_entries)
    return _puzzle_cache_instance


def get_file_cache() -> TTLCache:
    global _file_cache_instance
    if _file_cache_instance is None:
        _file_cache_instance = TTLCache(settings.file_cache_ttl_seconds)
    return _file_cache_instance
