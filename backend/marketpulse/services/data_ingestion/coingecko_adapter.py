"""
CoinGecko Data Adapter

Fetches spot market data, price/volume history and the trending list
from the public CoinGecko API.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from marketpulse.core.config import settings
from marketpulse.schemas.market import CoinMarket, PricePoint, TrendingCoin, VolumePoint
from marketpulse.services.base import ExternalAPIError, RateLimitError
from marketpulse.services.cache.redis_client import ResponseCache, get_response_cache
from marketpulse.services.data_ingestion.rate_limit import RateLimitState

logger = logging.getLogger(__name__)

SERVICE_NAME = "CoinGecko"
TRENDING_CACHE_KEY = "trending_coins"
# Pause before a call once the remaining budget drops to this
BUDGET_RESERVE = 2


def market_cache_key(coin_id: str) -> str:
    return f"market_{coin_id}"


def history_cache_key(coin_id: str) -> str:
    return f"history_{coin_id}"


def parse_retry_after(value: Optional[str], default: float) -> float:
    """Seconds from a Retry-After header; HTTP-date or garbage gives `default`."""
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        logger.debug(f"Unparseable Retry-After header: {value!r}")
        return default
    return seconds if seconds >= 0 else default


def parse_series(
    payload: dict,
) -> tuple[list[PricePoint], list[VolumePoint]]:
    """
    Convert a market_chart payload into price and volume series.

    Pairs with a missing value are dropped; everything else is validated
    by the PricePoint/VolumePoint models.
    """
    prices = [
        PricePoint(timestamp=int(ts), price=price)
        for ts, price in payload.get("prices") or []
        if price is not None
    ]
    volumes = [
        VolumePoint(timestamp=int(ts), volume=volume)
        for ts, volume in payload.get("total_volumes") or []
        if volume is not None
    ]
    return prices, volumes


def parse_market(coin_id: str, row: dict) -> CoinMarket:
    return CoinMarket(
        coin_id=coin_id,
        price=row["current_price"],
        change_24h=row.get("price_change_percentage_24h"),
        volume_24h=row.get("total_volume"),
        market_cap=row.get("market_cap"),
        high_24h=row.get("high_24h"),
        low_24h=row.get("low_24h"),
        last_updated=row.get("last_updated"),
    )


def parse_trending(payload: dict) -> list[TrendingCoin]:
    coins = []
    for entry in payload.get("coins") or []:
        item = entry.get("item") or {}
        data = item.get("data") or {}
        change = (data.get("price_change_percentage_24h") or {}).get("usd")
        coins.append(
            TrendingCoin(
                id=item["id"],
                name=item["name"],
                symbol=str(item["symbol"]).upper(),
                price_btc=item.get("price_btc"),
                market_cap_rank=item.get("market_cap_rank"),
                thumb=item.get("thumb"),
                large=item.get("large"),
                price_change_percentage_24h=change,
            )
        )
    return coins


class CoinGeckoClient:
    """
    Thin async client for the CoinGecko v3 API.

    - Serves fresh cached payloads without a network call
    - Waits when the reported rate-limit budget is nearly spent
    - Retries HTTP 429 with doubling delay
    - Falls back to stale cached payloads when the call fails
    """

    def __init__(
        self,
        cache: Optional[ResponseCache] = None,
        rate_limit: Optional[RateLimitState] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._session: Optional[aiohttp.ClientSession] = None
        self.cache = cache or get_response_cache()
        self.rate_limit = rate_limit or RateLimitState(settings.coingecko_rate_limit)
        self._sleep = sleep

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure we have an active HTTP session."""
        if self._session is None or self._session.closed:
            headers = {"Accept": "application/json"}
            if settings.coingecko_api_key:
                headers["x-cg-pro-api-key"] = settings.coingecko_api_key
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=settings.request_timeout_s),
                headers=headers,
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request(self, path: str, params: dict) -> Any:
        session = await self._ensure_session()
        delay = settings.retry_delay_s

        for attempt in range(settings.max_retries + 1):
            url = f"{settings.coingecko_base_url.rstrip('/')}{path}"
            async with session.get(url, params=params) as response:
                self.rate_limit.update_from_headers(response.headers, time.time())

                if response.status == 429:
                    if attempt == settings.max_retries:
                        raise RateLimitError(
                            SERVICE_NAME, f"Rate limited on {path}", {"attempts": attempt + 1}
                        )
                    wait = parse_retry_after(response.headers.get("Retry-After"), delay)
                    logger.warning(
                        f"Rate limited. Retrying in {wait:.0f} seconds... "
                        f"({settings.max_retries - attempt} retries left)"
                    )
                    await self._sleep(wait)
                    delay *= 2
                    continue

                if response.status >= 400:
                    raise ExternalAPIError(
                        SERVICE_NAME,
                        f"HTTP {response.status} from {path}",
                        {"status": response.status},
                    )
                return await response.json()

    async def fetch_json(
        self,
        path: str,
        params: Optional[dict] = None,
        cache_key: Optional[str] = None,
        max_age: Optional[float] = None,
    ) -> Any:
        """GET a CoinGecko endpoint with caching, budget checks and retry."""
        if cache_key and max_age:
            cached = await self.cache.get_fresh(cache_key, max_age)
            if cached is not None:
                logger.info(f"Using cached data for {cache_key}")
                return cached

        wait = self.rate_limit.wait_time(BUDGET_RESERVE)
        if wait > 0:
            logger.warning(f"Approaching rate limit. Waiting {wait:.0f}s...")
            await self._sleep(wait)

        try:
            data = await self._request(path, params or {})
        except (aiohttp.ClientError, asyncio.TimeoutError, ExternalAPIError) as e:
            logger.error(f"API Error for {path}: {e}")
            if cache_key:
                stale = await self.cache.get_stale(cache_key)
                if stale is not None:
                    logger.warning(f"Using stale cached data for {cache_key} due to error")
                    return stale
            if isinstance(e, ExternalAPIError):
                raise
            raise ExternalAPIError(SERVICE_NAME, f"Request to {path} failed: {e}") from e

        if cache_key and data is not None:
            await self.cache.set(cache_key, data)
        return data

    async def get_market(self, coin_id: str) -> CoinMarket:
        """Current spot market data for a coin."""
        rows = await self.fetch_json(
            "/coins/markets",
            {
                "vs_currency": "usd",
                "ids": coin_id,
                "price_change_percentage": "1h,24h,7d,30d,1y",
                "precision": "2",
            },
            cache_key=market_cache_key(coin_id),
            max_age=settings.market_cache_ttl_s,
        )
        if not rows:
            raise ExternalAPIError(SERVICE_NAME, f"No market data found for {coin_id}")
        return parse_market(coin_id, rows[0])

    async def get_market_chart(
        self, coin_id: str, days: int = 1
    ) -> tuple[list[PricePoint], list[VolumePoint]]:
        """Price and volume history for a coin, ascending by timestamp."""
        payload = await self.fetch_json(
            f"/coins/{coin_id}/market_chart",
            {"vs_currency": "usd", "days": str(days), "precision": "2"},
            cache_key=history_cache_key(coin_id),
            max_age=settings.history_cache_ttl_s,
        )
        prices, volumes = parse_series(payload or {})
        if not prices:
            raise ExternalAPIError(SERVICE_NAME, f"No price data returned for {coin_id}")
        return prices, volumes

    async def get_trending(self) -> list[TrendingCoin]:
        """Trending search list."""
        payload = await self.fetch_json(
            "/search/trending",
            cache_key=TRENDING_CACHE_KEY,
            max_age=settings.trending_cache_ttl_s,
        )
        if not payload or "coins" not in payload:
            raise ExternalAPIError(SERVICE_NAME, "Invalid response from trending endpoint")
        return parse_trending(payload)

    async def health_check(self) -> bool:
        try:
            await self.fetch_json("/ping")
            return True
        except ExternalAPIError:
            return False


# Singleton instance
_client_instance: Optional[CoinGeckoClient] = None


def get_coingecko_client() -> CoinGeckoClient:
    """Get or create the CoinGecko client."""
    global _client_instance
    if _client_instance is None:
        _client_instance = CoinGeckoClient()
    return _client_instance
