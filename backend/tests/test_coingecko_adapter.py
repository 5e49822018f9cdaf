"""
Tests for the CoinGecko adapter: payload parsing, caching and 429 retry.
"""

from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from marketpulse.core.config import settings
from marketpulse.services.base import ExternalAPIError, RateLimitError
from marketpulse.services.data_ingestion.coingecko_adapter import (
    CoinGeckoClient,
    history_cache_key,
    market_cache_key,
    parse_market,
    parse_retry_after,
    parse_series,
    parse_trending,
)
from marketpulse.services.data_ingestion.rate_limit import RateLimitState


class FakeResponse:
    def __init__(self, status=200, payload=None, headers=None):
        self.status = status
        self.payload = payload
        self.headers = headers or {}

    async def json(self, content_type=None):
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    closed = False

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None):
        self.calls.append((url, params))
        return self.responses.pop(0)


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def client(memory_cache, sleep):
    return CoinGeckoClient(cache=memory_cache, rate_limit=RateLimitState(30), sleep=sleep)


class TestParsing:
    def test_parse_series_drops_missing_values(self):
        payload = {
            "prices": [[1000, 10.5], [2000, None], [3000, 11.0]],
            "total_volumes": [[1000, 5.0], [3000, None]],
        }
        prices, volumes = parse_series(payload)
        assert [(p.timestamp, p.price) for p in prices] == [(1000, 10.5), (3000, 11.0)]
        assert [(v.timestamp, v.volume) for v in volumes] == [(1000, 5.0)]

    def test_parse_series_empty_payload(self):
        assert parse_series({}) == ([], [])

    def test_parse_market(self):
        row = {
            "current_price": 64000.0,
            "price_change_percentage_24h": -1.2,
            "total_volume": 2.5e10,
            "market_cap": 1.2e12,
            "high_24h": 65000.0,
            "low_24h": 63000.0,
            "last_updated": "2024-06-03T16:00:00Z",
        }
        market = parse_market("bitcoin", row)
        assert market.coin_id == "bitcoin"
        assert market.price == 64000.0
        assert market.change_24h == -1.2

    def test_parse_trending(self):
        payload = {
            "coins": [
                {
                    "item": {
                        "id": "pepe",
                        "name": "Pepe",
                        "symbol": "pepe",
                        "price_btc": 1.5e-10,
                        "market_cap_rank": 30,
                        "thumb": "https://example.com/thumb.png",
                        "data": {"price_change_percentage_24h": {"usd": 12.5}},
                    }
                }
            ]
        }
        coins = parse_trending(payload)
        assert len(coins) == 1
        assert coins[0].symbol == "PEPE"
        assert coins[0].price_change_percentage_24h == 12.5
        assert coins[0].large is None


class TestRequestRetry:
    @pytest.mark.asyncio
    async def test_retry_after_header_honoured(self, client, sleep):
        client._session = FakeSession([
            FakeResponse(429, headers={"Retry-After": "3"}),
            FakeResponse(200, payload={"ok": True}),
        ])
        assert await client._request("/ping", {}) == {"ok": True}
        sleep.assert_awaited_once_with(3.0)

    @pytest.mark.asyncio
    async def test_http_date_retry_after_uses_backoff(self, client, sleep):
        client._session = FakeSession([
            FakeResponse(429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}),
            FakeResponse(200, payload={"ok": True}),
        ])
        assert await client._request("/ping", {}) == {"ok": True}
        sleep.assert_awaited_once_with(settings.retry_delay_s)

    @pytest.mark.parametrize(
        "value,expected",
        [(None, 10.0), ("", 10.0), ("7", 7.0), ("-3", 10.0), ("soon", 10.0)],
    )
    def test_parse_retry_after(self, value, expected):
        assert parse_retry_after(value, 10.0) == expected

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, client, sleep):
        client._session = FakeSession(
            [FakeResponse(429) for _ in range(settings.max_retries + 1)]
        )
        with pytest.raises(RateLimitError):
            await client._request("/ping", {})

        delays = [c.args[0] for c in sleep.await_args_list]
        assert delays == [settings.retry_delay_s * 2**i for i in range(settings.max_retries)]

    @pytest.mark.asyncio
    async def test_http_error_raises(self, client):
        client._session = FakeSession([FakeResponse(500)])
        with pytest.raises(ExternalAPIError) as exc_info:
            await client._request("/ping", {})
        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_rate_limit_headers_recorded(self, client):
        headers = {
            "x-ratelimit-remaining": "4",
            "x-ratelimit": "30",
            "x-ratelimit-reset": "9999999999",
        }
        client._session = FakeSession([FakeResponse(200, payload={}, headers=headers)])
        await client._request("/ping", {})
        assert client.rate_limit.remaining == 4


class TestFetchJson:
    @pytest.mark.asyncio
    async def test_fresh_cache_skips_network(self, client, memory_cache):
        await memory_cache.set("key", {"cached": True})
        with patch.object(client, "_request", new=AsyncMock()) as request:
            assert await client.fetch_json("/x", cache_key="key", max_age=60) == {"cached": True}
            request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_success_is_cached(self, client, memory_cache):
        with patch.object(client, "_request", new=AsyncMock(return_value=[1, 2])):
            await client.fetch_json("/x", cache_key="key", max_age=60)
        assert await memory_cache.get_fresh("key", 60) == [1, 2]

    @pytest.mark.asyncio
    async def test_error_falls_back_to_stale(self, client, memory_cache, clock):
        await memory_cache.set("key", {"old": True})
        clock.advance(600)
        failing = AsyncMock(side_effect=aiohttp.ClientError("boom"))
        with patch.object(client, "_request", new=failing):
            assert await client.fetch_json("/x", cache_key="key", max_age=60) == {"old": True}

    @pytest.mark.asyncio
    async def test_error_without_cache_raises(self, client):
        failing = AsyncMock(side_effect=aiohttp.ClientError("boom"))
        with patch.object(client, "_request", new=failing):
            with pytest.raises(ExternalAPIError):
                await client.fetch_json("/x", cache_key="key", max_age=60)

    @pytest.mark.asyncio
    async def test_waits_when_budget_low(self, client, sleep):
        client.rate_limit.remaining = 1
        client.rate_limit.remaining_time = 5
        with patch.object(client, "_request", new=AsyncMock(return_value={})):
            await client.fetch_json("/x")
        sleep.assert_awaited_once_with(6.0)


class TestEndpoints:
    @pytest.mark.asyncio
    async def test_get_market(self, client):
        rows = [{"current_price": 3000.0, "market_cap": 3.6e11}]
        with patch.object(client, "_request", new=AsyncMock(return_value=rows)):
            market = await client.get_market("ethereum")
        assert market.price == 3000.0
        assert await client.cache.get_stale(market_cache_key("ethereum")) == rows

    @pytest.mark.asyncio
    async def test_get_market_empty(self, client):
        with patch.object(client, "_request", new=AsyncMock(return_value=[])):
            with pytest.raises(ExternalAPIError):
                await client.get_market("nope")

    @pytest.mark.asyncio
    async def test_get_market_chart(self, client):
        payload = {"prices": [[1, 10.0], [2, 11.0]], "total_volumes": [[1, 5.0], [2, 6.0]]}
        with patch.object(client, "_request", new=AsyncMock(return_value=payload)) as request:
            prices, volumes = await client.get_market_chart("bitcoin")
        assert [p.price for p in prices] == [10.0, 11.0]
        assert len(volumes) == 2
        assert request.await_args.args[0] == "/coins/bitcoin/market_chart"
        assert await client.cache.get_stale(history_cache_key("bitcoin")) == payload

    @pytest.mark.asyncio
    async def test_get_market_chart_without_prices(self, client):
        with patch.object(client, "_request", new=AsyncMock(return_value={"prices": []})):
            with pytest.raises(ExternalAPIError):
                await client.get_market_chart("bitcoin")

    @pytest.mark.asyncio
    async def test_get_trending_invalid_payload(self, client):
        with patch.object(client, "_request", new=AsyncMock(return_value={"nfts": []})):
            with pytest.raises(ExternalAPIError):
                await client.get_trending()

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        failing = AsyncMock(side_effect=ExternalAPIError("CoinGecko", "down"))
        with patch.object(client, "_request", new=failing):
            assert await client.health_check() is False
