"""Unit tests for AnalyticsCache."""

from __future__ import annotations

import threading
import time

import pytest

from devfolio_insights.cache.analytics_cache import AnalyticsCache
from devfolio_insights.cache.strategies import CACHE_STRATEGIES


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> AnalyticsCache:
    return AnalyticsCache(clock=clock)


class TestGetSet:
    """Tests for basic get/set behavior."""

    def test_round_trip_returns_same_object(self, cache: AnalyticsCache) -> None:
        """An immediate get returns exactly what was stored."""
        value = {"predictions": [1, 2, 3]}
        cache.set("growth:u1", value, 60)

        assert cache.get("growth:u1") is value

    def test_missing_key(self, cache: AnalyticsCache) -> None:
        """Unknown keys return None."""
        assert cache.get("nope") is None

    def test_expiry_with_real_clock(self) -> None:
        """An entry with a 1 second TTL is gone after 1.1 seconds."""
        cache = AnalyticsCache()
        cache.set("k", "v", 1)
        time.sleep(1.1)

        assert cache.get("k") is None
        assert "k" not in cache

    def test_ttl_boundary(self, cache: AnalyticsCache, clock: FakeClock) -> None:
        """An entry is valid up to and including its TTL."""
        cache.set("k", "v", 10)
        clock.advance(10)
        assert cache.get("k") == "v"

        clock.advance(0.001)
        assert cache.get("k") is None

    def test_overwrite_resets_ttl(self, cache: AnalyticsCache, clock: FakeClock) -> None:
        """Setting a key again replaces the value and timestamp."""
        cache.set("k", 1, 10)
        clock.advance(8)
        cache.set("k", 2, 10)
        clock.advance(8)

        assert cache.get("k") == 2

    def test_peek_does_not_evict(self, cache: AnalyticsCache, clock: FakeClock) -> None:
        """peek returns expired entries and leaves them in place."""
        cache.set("k", "v", 5)
        clock.advance(6)

        entry = cache.peek("k")
        assert entry is not None
        assert entry.data == "v"
        assert entry.is_expired(clock())
        assert "k" in cache


class TestInvalidation:
    """Tests for invalidate, invalidate_tag, clear and cleanup."""

    def test_invalidate_substring(self, cache: AnalyticsCache) -> None:
        """Every key containing the pattern is removed."""
        cache.set("growth:user-1:abc", 1, 60)
        cache.set("career:user-1:def", 2, 60)
        cache.set("growth:user-2:abc", 3, 60)

        assert cache.invalidate("user-1") == 2
        assert cache.keys() == ["growth:user-2:abc"]

    def test_invalidate_no_match(self, cache: AnalyticsCache) -> None:
        """No matches removes nothing."""
        cache.set("a", 1, 60)

        assert cache.invalidate("zzz") == 0
        assert len(cache) == 1

    def test_invalidate_tag(self, cache: AnalyticsCache) -> None:
        """Entries are removed by tag."""
        cache.set("p1", 1, 60, tags=["profile"])
        cache.set("p2", 2, 60, tags=["profile", "github"])
        cache.set("s1", 3, 60, tags=["search"])

        assert cache.invalidate_tag("profile") == 2
        assert cache.keys() == ["s1"]

    def test_clear(self, cache: AnalyticsCache) -> None:
        """clear empties the cache."""
        cache.set("a", 1, 60)
        cache.set("b", 2, 60)
        cache.clear()

        assert len(cache) == 0

    def test_cleanup_expired(self, cache: AnalyticsCache, clock: FakeClock) -> None:
        """Only expired entries are purged."""
        cache.set("short", 1, 5)
        cache.set("long", 2, 500)
        clock.advance(10)

        assert cache.cleanup_expired() == 1
        assert cache.keys() == ["long"]


class TestEviction:
    """Tests for the optional size bound."""

    def test_lru_eviction(self, clock: FakeClock) -> None:
        """The least recently used entry is evicted first."""
        cache = AnalyticsCache(max_entries=2, clock=clock)
        cache.set("a", 1, 60)
        cache.set("b", 2, 60)
        cache.get("a")
        cache.set("c", 3, 60)

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache

    def test_overwrite_does_not_evict(self, clock: FakeClock) -> None:
        """Replacing an existing key never evicts another."""
        cache = AnalyticsCache(max_entries=2, clock=clock)
        cache.set("a", 1, 60)
        cache.set("b", 2, 60)
        cache.set("a", 3, 60)

        assert len(cache) == 2
        assert cache.get("b") == 2

    def test_invalid_max_entries(self) -> None:
        """The size bound must be positive."""
        with pytest.raises(ValueError):
            AnalyticsCache(max_entries=0)


class TestHelpers:
    """Tests for get_or_set, stats and should_serve_stale."""

    def test_get_or_set_computes_once(self, cache: AnalyticsCache) -> None:
        """The factory runs only on a miss."""
        calls = []

        def factory() -> str:
            calls.append(1)
            return "computed"

        assert cache.get_or_set("k", factory, 60) == "computed"
        assert cache.get_or_set("k", factory, 60) == "computed"
        assert len(calls) == 1

    def test_stats(self, cache: AnalyticsCache) -> None:
        """Hits and misses are counted."""
        cache.set("k", 1, 60)
        cache.get("k")
        cache.get("k")
        cache.get("missing")

        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (2, 1, 1)
        assert stats.hit_rate == pytest.approx(2 / 3)
        assert stats.to_dict()["hit_rate"] == pytest.approx(0.6667)

    def test_should_serve_stale(self, cache: AnalyticsCache, clock: FakeClock) -> None:
        """Serve stale only past TTL and inside the SWR window."""
        strategy = CACHE_STRATEGIES["standard"]  # 300s TTL, 60s SWR
        written = clock()

        clock.advance(200)
        assert not cache.should_serve_stale(written, strategy)
        clock.advance(130)
        assert cache.should_serve_stale(written, strategy)
        clock.advance(100)
        assert not cache.should_serve_stale(written, strategy)


class TestConcurrency:
    """Tests for concurrent access."""

    def test_concurrent_writers_lose_nothing(self) -> None:
        """Parallel sets on distinct keys are all retained."""
        cache = AnalyticsCache()

        def writer(offset: int) -> None:
            for i in range(200):
                cache.set(f"k{offset}:{i}", i, 60)
                cache.get(f"k{offset}:{i}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(cache) == 8 * 200
        assert cache.stats().hits == 8 * 200
