"""In-process TTL cache for computed analytics results.

Entries carry their own TTL and expire lazily: an expired entry is removed
the next time ``get`` touches it. There is no background sweep; call
``cleanup_expired`` to purge explicitly. All operations hold one re-entrant
lock, so concurrent readers and writers never lose updates.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .strategies import CacheStrategy
from .strategies import should_serve_stale as _should_serve_stale

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    data: T
    timestamp: float
    ttl_seconds: float
    tags: frozenset[str] = field(default_factory=frozenset)

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl_seconds


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "size": self.size,
            "hit_rate": round(self.hit_rate, 4),
        }


class AnalyticsCache:
    """Thread-safe TTL cache with substring and tag invalidation.

    Construct one per application (or per test) and pass it to the
    components that need it.
    """

    def __init__(
        self,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            max_entries: Optional size bound; the least recently used entry
                is evicted when a new key would exceed it.
            clock: Source of the current time in seconds.
        """
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._lock = threading.RLock()
        self._stats = CacheStats()

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._stats.misses += 1
                logger.debug(f"Cache expired: {key}")
                return None

            self._entries.move_to_end(key)
            self._stats.hits += 1
            return entry.data

    def peek(self, key: str) -> CacheEntry[Any] | None:
        """Return the raw entry even if expired, without evicting it."""
        with self._lock:
            return self._entries.get(key)

    def set(
        self,
        key: str,
        data: Any,
        ttl_seconds: float,
        tags: Iterable[str] = (),
    ) -> None:
        """Store a value with its own TTL."""
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif self.max_entries is not None and len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache evicted (LRU): {evicted}")

            self._entries[key] = CacheEntry(
                data=data,
                timestamp=self._clock(),
                ttl_seconds=ttl_seconds,
                tags=frozenset(tags),
            )

    def set_with_strategy(self, key: str, data: Any, strategy: CacheStrategy) -> None:
        self.set(key, data, strategy.ttl_seconds, strategy.tags)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate(self, pattern: str) -> int:
        """Delete every key containing ``pattern``.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            doomed = [key for key in self._entries if pattern in key]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug(f"Invalidated {len(doomed)} cache entries matching '{pattern}'")
        return len(doomed)

    def invalidate_tag(self, tag: str) -> int:
        """Delete every entry stored with ``tag``."""
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if tag in entry.tags]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup_expired(self) -> int:
        """Remove all expired entries now.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            doomed = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def get_or_set(
        self,
        key: str,
        factory: Callable[[], T],
        ttl_seconds: float,
        tags: Iterable[str] = (),
    ) -> T:
        """Return the cached value or compute, store and return it.

        The factory runs outside the lock; concurrent callers that miss at
        the same time may each compute, and the last write wins.
        """
        cached = self.get(key)
        if cached is not None:
            return cached  # type: ignore[no-any-return]

        value = factory()
        self.set(key, value, ttl_seconds, tags)
        return value

    def should_serve_stale(self, timestamp: float, strategy: CacheStrategy) -> bool:
        """True if an entry written at ``timestamp`` may be served stale."""
        return _should_serve_stale(timestamp, strategy, now=self._clock())

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                size=len(self._entries),
            )

    def reset_stats(self) -> None:
        with self._lock:
            self._stats = CacheStats()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
