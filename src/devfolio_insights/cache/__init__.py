"""Result caching for the analytics engine."""

from .analytics_cache import AnalyticsCache, CacheEntry, CacheStats
from .strategies import (
    CACHE_STRATEGIES,
    CacheStrategy,
    generate_cache_key,
    get_cache_strategy,
    is_cache_stale,
    should_serve_stale,
)

__all__ = [
    "AnalyticsCache",
    "CacheEntry",
    "CacheStats",
    "CACHE_STRATEGIES",
    "CacheStrategy",
    "generate_cache_key",
    "get_cache_strategy",
    "is_cache_stale",
    "should_serve_stale",
]
