"""
Tests for the response cache (in-memory backend and Redis fallback).
"""

from unittest.mock import AsyncMock

import pytest

from marketpulse.services.cache.redis_client import ResponseCache


class TestResponseCache:
    @pytest.mark.asyncio
    async def test_fresh_read(self, memory_cache):
        await memory_cache.set("market_bitcoin", {"price": 1.0})
        assert await memory_cache.get_fresh("market_bitcoin", 300) == {"price": 1.0}

    @pytest.mark.asyncio
    async def test_expired_entry_is_stale_only(self, memory_cache, clock):
        await memory_cache.set("market_bitcoin", {"price": 1.0})
        clock.advance(301)
        assert await memory_cache.get_fresh("market_bitcoin", 300) is None
        assert await memory_cache.get_stale("market_bitcoin") == {"price": 1.0}

    @pytest.mark.asyncio
    async def test_stale_entry_expires(self, memory_cache, clock):
        await memory_cache.set("trending_coins", [1, 2])
        clock.advance(4 * 3600 + 1)
        assert await memory_cache.get_stale("trending_coins") is None

    @pytest.mark.asyncio
    async def test_missing_key(self, memory_cache):
        assert await memory_cache.get_fresh("nope", 60) is None
        assert await memory_cache.get_stale("nope") is None

    @pytest.mark.asyncio
    async def test_delete(self, memory_cache):
        await memory_cache.set("fear_greed_index", {"value": 40})
        await memory_cache.delete("fear_greed_index")
        assert await memory_cache.get_stale("fear_greed_index") is None

    @pytest.mark.asyncio
    async def test_stats(self, memory_cache, clock):
        await memory_cache.set("a", 1)
        await memory_cache.get_fresh("a", 60)
        clock.advance(120)
        await memory_cache.get_fresh("a", 60)
        await memory_cache.get_stale("a")

        stats = memory_cache.stats()
        assert stats["backend"] == "memory"
        assert stats["memory_keys"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["stale_hits"] == 1


class TestRedisFallback:
    @pytest.mark.asyncio
    async def test_redis_errors_fall_back_to_memory(self, clock):
        redis_client = AsyncMock()
        redis_client.set.side_effect = ConnectionError("down")
        redis_client.get.side_effect = ConnectionError("down")
        cache = ResponseCache(redis_client=redis_client, stale_ttl=600, clock=clock)

        await cache.set("yahoo_SPY", {"symbol": "SPY"})
        assert await cache.get_fresh("yahoo_SPY", 900) == {"symbol": "SPY"}
        redis_client.set.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_redis_stores_with_stale_ttl(self, clock):
        redis_client = AsyncMock()
        cache = ResponseCache(redis_client=redis_client, stale_ttl=600, clock=clock)

        await cache.set("market_bitcoin", {"price": 2.0})

        key, value = redis_client.set.call_args.args
        assert key == "market_bitcoin"
        assert redis_client.set.call_args.kwargs["ex"] == 600
        assert '"stored_at"' in value
