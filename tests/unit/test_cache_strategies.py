"""Unit tests for cache strategies and key helpers."""

from __future__ import annotations

import pytest

from devfolio_insights.cache.strategies import (
    CACHE_STRATEGIES,
    generate_cache_key,
    get_cache_strategy,
    is_cache_stale,
    should_serve_stale,
)


class TestStrategies:
    """Tests for the strategy table."""

    @pytest.mark.parametrize(
        ("name", "ttl", "swr", "tags"),
        [
            ("realtime", 60, 30, ()),
            ("standard", 300, 60, ()),
            ("static", 3600, 300, ()),
            ("permanent", 86400, 3600, ()),
            ("profile", 600, 120, ("profile",)),
            ("githubStats", 1800, 300, ("github",)),
            ("searchResults", 180, 60, ("search",)),
            ("session", 3600, None, ("session",)),
        ],
    )
    def test_strategy_values(
        self, name: str, ttl: int, swr: int | None, tags: tuple[str, ...]
    ) -> None:
        """Each named strategy has its TTL, SWR window and tags."""
        strategy = get_cache_strategy(name)

        assert strategy.ttl_seconds == ttl
        assert strategy.stale_while_revalidate_seconds == swr
        assert strategy.tags == tags

    def test_unknown_strategy(self) -> None:
        """Unknown names raise KeyError listing the options."""
        with pytest.raises(KeyError, match="realtime"):
            get_cache_strategy("forever")

    def test_table_is_complete(self) -> None:
        """All eight strategies are registered."""
        assert len(CACHE_STRATEGIES) == 8


class TestKeysAndStaleness:
    """Tests for key generation and staleness checks."""

    def test_generate_cache_key(self) -> None:
        """Parts are joined with colons in order."""
        assert generate_cache_key("user", 42, "stats") == "user:42:stats"
        assert generate_cache_key("profile") == "profile"

    def test_is_cache_stale(self) -> None:
        """Stale strictly after the TTL."""
        assert not is_cache_stale(1000.0, 60, now=1060.0)
        assert is_cache_stale(1000.0, 60, now=1060.5)

    def test_should_serve_stale_window(self) -> None:
        """True only between TTL and TTL + SWR."""
        realtime = CACHE_STRATEGIES["realtime"]  # 60 / 30

        assert not should_serve_stale(1000.0, realtime, now=1050.0)
        assert should_serve_stale(1000.0, realtime, now=1070.0)
        assert should_serve_stale(1000.0, realtime, now=1090.0)
        assert not should_serve_stale(1000.0, realtime, now=1091.0)

    def test_no_swr_window_never_stale(self) -> None:
        """Strategies without an SWR window never serve stale."""
        session = CACHE_STRATEGIES["session"]

        assert not should_serve_stale(1000.0, session, now=1000.0 + 3601)
