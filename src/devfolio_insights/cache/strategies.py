"""Named cache strategies and key helpers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CacheStrategy:
    """TTL policy for one kind of cached result."""

    ttl_seconds: int
    stale_while_revalidate_seconds: int | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)


CACHE_STRATEGIES: dict[str, CacheStrategy] = {
    # Frequently changing data
    "realtime": CacheStrategy(ttl_seconds=60, stale_while_revalidate_seconds=30),
    "standard": CacheStrategy(ttl_seconds=300, stale_while_revalidate_seconds=60),
    "static": CacheStrategy(ttl_seconds=3600, stale_while_revalidate_seconds=300),
    # Rarely changing data
    "permanent": CacheStrategy(ttl_seconds=86400, stale_while_revalidate_seconds=3600),
    "profile": CacheStrategy(
        ttl_seconds=600, stale_while_revalidate_seconds=120, tags=("profile",)
    ),
    "githubStats": CacheStrategy(
        ttl_seconds=1800, stale_while_revalidate_seconds=300, tags=("github",)
    ),
    "searchResults": CacheStrategy(
        ttl_seconds=180, stale_while_revalidate_seconds=60, tags=("search",)
    ),
    "session": CacheStrategy(ttl_seconds=3600, tags=("session",)),
}

KEY_DELIMITER = ":"


def get_cache_strategy(name: str) -> CacheStrategy:
    """Resolve a strategy by name.

    Raises:
        KeyError: If the strategy is unknown.
    """
    try:
        return CACHE_STRATEGIES[name]
    except KeyError:
        raise KeyError(
            f"Unknown cache strategy '{name}'. "
            f"Available: {', '.join(sorted(CACHE_STRATEGIES))}"
        ) from None


def generate_cache_key(namespace: str, *parts: str | int | float) -> str:
    """Join a namespace and ordered parameters into a deterministic key."""
    return KEY_DELIMITER.join([namespace, *(str(p) for p in parts)])


def is_cache_stale(timestamp: float, ttl_seconds: float, now: float | None = None) -> bool:
    """True if an entry written at ``timestamp`` is older than its TTL."""
    now = time.time() if now is None else now
    return now - timestamp > ttl_seconds


def should_serve_stale(
    timestamp: float, strategy: CacheStrategy, now: float | None = None
) -> bool:
    """True if an expired entry is still inside the strategy's SWR window.

    Strategies without a stale-while-revalidate window never serve stale.
    """
    if not strategy.stale_while_revalidate_seconds:
        return False

    now = time.time() if now is None else now
    age = now - timestamp
    max_stale_age = strategy.ttl_seconds + strategy.stale_while_revalidate_seconds
    return strategy.ttl_seconds < age <= max_stale_age
