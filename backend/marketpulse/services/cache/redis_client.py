"""
Redis cache client for upstream API responses.

Every payload is stored with the time it was written so callers can ask
for a fresh copy (younger than a TTL) or, after an upstream failure, for
whatever stale copy is still around.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from marketpulse.core.config import settings

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_pool: Optional[redis.Redis] = None


async def init_redis() -> Optional[redis.Redis]:
    """
    Initialize Redis connection pool.
    Called on application startup.
    """
    global _redis_pool

    if _redis_pool is not None:
        return _redis_pool
    if not settings.redis_enabled:
        return None

    try:
        _redis_pool = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        # Test connection
        await _redis_pool.ping()
        logger.info(f"Redis connected: {settings.redis_url}")
        return _redis_pool
    except Exception as e:
        logger.warning(f"Redis connection failed: {e}. Using in-memory fallback.")
        _redis_pool = None
        return None


async def close_redis() -> None:
    """Close Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.close()
        _redis_pool = None
        logger.info("Redis connection closed")


def get_redis() -> Optional[redis.Redis]:
    """Get the Redis connection pool."""
    return _redis_pool


@dataclass
class CacheEntry:
    """A cached payload and the epoch second it was stored."""

    data: Any
    stored_at: float

    def age(self, now: float) -> float:
        return now - self.stored_at


class ResponseCache:
    """
    TTL cache for upstream responses.

    Keys:
    - market_{coin_id} → CoinMarket payload
    - history_{coin_id} → market chart payload
    - yahoo_{symbol} → IndexQuote payload
    - trending_coins → trending list
    - fear_greed_index → sentiment payload

    Backend entries expire after `stale_ttl` seconds; freshness is judged
    by the caller against `stored_at`.
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        stale_ttl: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._redis = redis_client
        self._stale_ttl = stale_ttl or settings.stale_ttl_s
        self._clock = clock
        # In-memory fallback when Redis is unavailable
        self._memory_cache: Dict[str, Tuple[str, float]] = {}
        self._stats = {"hits": 0, "misses": 0, "stale_hits": 0}

    @property
    def redis(self) -> Optional[redis.Redis]:
        return self._redis or _redis_pool

    def _memory_get(self, key: str) -> Optional[str]:
        """Fallback to memory cache."""
        item = self._memory_cache.get(key)
        if item is None:
            return None
        raw, expires_at = item
        if expires_at <= self._clock():
            del self._memory_cache[key]
            return None
        return raw

    def _memory_set(self, key: str, value: str):
        """Fallback to memory cache."""
        self._memory_cache[key] = (value, self._clock() + self._stale_ttl)

    async def _read(self, key: str) -> Optional[CacheEntry]:
        raw = None
        if self.redis:
            try:
                raw = await self.redis.get(key)
            except Exception as e:
                logger.debug(f"Redis get failed for {key}: {e}")
                raw = self._memory_get(key)
        else:
            raw = self._memory_get(key)

        if raw is None:
            return None
        payload = json.loads(raw)
        return CacheEntry(data=payload["data"], stored_at=payload["stored_at"])

    async def set(self, key: str, data: Any) -> None:
        """Store a JSON-serializable payload stamped with the current time."""
        value = json.dumps({"data": data, "stored_at": self._clock()})

        if self.redis:
            try:
                await self.redis.set(key, value, ex=self._stale_ttl)
                return
            except Exception as e:
                logger.debug(f"Redis set failed for {key}: {e}")

        self._memory_set(key, value)

    async def get_fresh(self, key: str, max_age: float) -> Optional[Any]:
        """Payload stored less than `max_age` seconds ago, else None."""
        entry = await self._read(key)
        if entry is None or entry.age(self._clock()) >= max_age:
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return entry.data

    async def get_stale(self, key: str) -> Optional[Any]:
        """Payload regardless of age, for use when the upstream call failed."""
        entry = await self._read(key)
        if entry is None:
            return None
        self._stats["stale_hits"] += 1
        return entry.data

    async def delete(self, key: str) -> None:
        if self.redis:
            try:
                await self.redis.delete(key)
            except Exception as e:
                logger.debug(f"Redis delete failed for {key}: {e}")
        self._memory_cache.pop(key, None)

    def stats(self) -> Dict[str, Any]:
        """Counters for the health endpoint."""
        return {
            "backend": "redis" if self.redis else "memory",
            "memory_keys": len(self._memory_cache),
            **self._stats,
        }


# Singleton instance
_response_cache: Optional[ResponseCache] = None


def get_response_cache() -> ResponseCache:
    """Get the response cache singleton."""
    global _response_cache
    if _response_cache is None:
        _response_cache = ResponseCache()
    return _response_cache
