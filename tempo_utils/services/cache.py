"""Geo lookup cache for the span reader.

Stores one GeoLocation (or None, meaning "this trace has no geo data") per
trace ID with a time-to-live. Expiry is lazy: an entry is only checked, and
evicted, when it is read. There is no background sweep.

The cache is owned by a single SpanReader and is not safe to share across
threads.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from tempo_utils.core.constants import DEFAULT_CACHE_TTL_MS
from tempo_utils.models.geo import GeoLocation


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds. Not affected by wall-clock changes."""
    return time.monotonic_ns() / 1_000_000


@dataclass(frozen=True)
class CacheEntry:
    """Cached lookup result.

    Attributes:
        geo_location: Result of the lookup, None when the trace has no geo data.
        fetched_at: Clock reading (ms) when the entry was stored.
    """

    geo_location: GeoLocation | None
    fetched_at: float


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time cache counters."""

    hits: int
    misses: int
    size: int


class GeoCache:
    """TTL cache of geo lookups keyed by trace ID.

    Example:
        cache = GeoCache(ttl_ms=60_000)
        cache.store("trace-1", None)
        entry = cache.get("trace-1")   # CacheEntry(geo_location=None, ...)
        entry.geo_location is None     # cached "no geo data"
    """

    def __init__(
        self,
        ttl_ms: float = DEFAULT_CACHE_TTL_MS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize GeoCache.

        Args:
            ttl_ms: Entry lifetime in milliseconds.
            clock: Millisecond clock, monotonic_ms by default.
        """
        self._ttl_ms = ttl_ms
        self._clock = clock or monotonic_ms
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    @property
    def ttl_ms(self) -> float:
        return self._ttl_ms

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, trace_id: str) -> CacheEntry | None:
        """Look up a trace, counting the hit or miss.

        An expired entry is evicted and counts as a miss.

        Args:
            trace_id: Trace identifier.

        Returns:
            The live entry, or None on a miss.
        """
        entry = self._entries.get(trace_id)
        if entry is not None and self._clock() - entry.fetched_at > self._ttl_ms:
            del self._entries[trace_id]
            entry = None

        if entry is None:
            self._misses += 1
            return None

        self._hits += 1
        return entry

    def store(self, trace_id: str, geo_location: GeoLocation | None) -> None:
        """Store a lookup result, replacing any previous entry."""
        self._entries[trace_id] = CacheEntry(
            geo_location=geo_location,
            fetched_at=self._clock(),
        )

    def clear(self) -> int:
        """Drop all entries. Hit/miss counters are kept.

        Returns:
            Number of entries dropped.
        """
        previous_size = len(self._entries)
        self._entries.clear()
        return previous_size

    def stats(self) -> CacheStats:
        return CacheStats(hits=self._hits, misses=self._misses, size=len(self._entries))
