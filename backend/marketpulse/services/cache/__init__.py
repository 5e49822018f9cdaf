"""
Cache module for MarketPulse.

Provides Redis caching (with in-memory fallback) for upstream responses.
"""

from marketpulse.services.cache.redis_client import (
    CacheEntry,
    ResponseCache,
    get_response_cache,
    init_redis,
    close_redis,
)

__all__ = [
    "CacheEntry",
    "ResponseCache",
    "get_response_cache",
    "init_redis",
    "close_redis",
]
