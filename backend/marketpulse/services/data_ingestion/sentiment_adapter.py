"""
Fear & Greed Index Adapter

Fetches the crypto Fear & Greed Index from alternative.me.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

import aiohttp

from marketpulse.core.config import settings
from marketpulse.schemas.market import FearGreedIndex
from marketpulse.services.base import ExternalAPIError
from marketpulse.services.cache.redis_client import ResponseCache, get_response_cache

logger = logging.getLogger(__name__)

SERVICE_NAME = "FearGreed"
FEAR_GREED_CACHE_KEY = "fear_greed_index"
NEUTRAL_VALUE = 50


def classify_fear_greed(value: int) -> str:
    """Sentiment label for an index value."""
    if value >= 75:
        return "Extreme Greed"
    if value >= 60:
        return "Greed"
    if value >= 45:
        return "Neutral"
    if value >= 25:
        return "Fear"
    return "Extreme Fear"


def parse_fear_greed(payload: dict, now: datetime) -> FearGreedIndex:
    """Validate an alternative.me payload."""
    rows = payload.get("data") or []
    if not rows:
        raise ExternalAPIError(SERVICE_NAME, "Invalid response from Fear & Greed API")

    row = rows[0]
    try:
        value = int(row.get("value"))
    except (TypeError, ValueError):
        raise ExternalAPIError(SERVICE_NAME, f"Invalid Fear & Greed value: {row.get('value')!r}")
    if value < 0 or value > 100:
        raise ExternalAPIError(SERVICE_NAME, f"Fear & Greed value out of range: {value}")

    try:
        timestamp = datetime.fromtimestamp(int(row.get("timestamp")), tz=timezone.utc)
    except (TypeError, ValueError):
        timestamp = now

    return FearGreedIndex(
        value=value,
        value_classification=row.get("value_classification") or classify_fear_greed(value),
        timestamp=timestamp,
        last_updated=now,
    )


class FearGreedClient:
    """Client for the alternative.me Fear & Greed endpoint."""

    def __init__(self, cache: Optional[ResponseCache] = None):
        self._session: Optional[aiohttp.ClientSession] = None
        self.cache = cache or get_response_cache()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure we have an active HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=10),
                headers={
                    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
                    "Accept": "application/json",
                },
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _download(self) -> dict:
        session = await self._ensure_session()
        params = {"limit": "1", "format": "json"}
        async with session.get(settings.fear_greed_url, params=params) as response:
            if response.status != 200:
                raise ExternalAPIError(
                    SERVICE_NAME,
                    f"Fear & Greed API returned status {response.status}",
                    {"status": response.status},
                )
            return await response.json(content_type=None)

    async def get_index(self) -> FearGreedIndex:
        """
        Current index value, cached for an hour.

        Falls back to the cached value after an error, or to a neutral
        placeholder carrying the error when nothing is cached.
        """
        now = datetime.now(timezone.utc)

        cached = await self.cache.get_fresh(FEAR_GREED_CACHE_KEY, settings.fear_greed_cache_ttl_s)
        if cached is not None:
            logger.info("Using cached Fear & Greed Index data")
            return FearGreedIndex(**cached).model_copy(update={"from_cache": True})

        try:
            logger.info("Fetching fresh Fear & Greed Index data...")
            result = parse_fear_greed(await self._download(), now)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, ExternalAPIError) as e:
            logger.error(f"Failed to fetch Fear & Greed Index: {e}")
            stale = await self.cache.get_stale(FEAR_GREED_CACHE_KEY)
            if stale is not None:
                logger.warning("Using cached Fear & Greed Index data after error")
                return FearGreedIndex(**stale).model_copy(
                    update={"from_cache": True, "error": f"Using cached data due to API error: {e}"}
                )
            return FearGreedIndex(
                value=NEUTRAL_VALUE,
                value_classification=classify_fear_greed(NEUTRAL_VALUE),
                timestamp=now,
                last_updated=now,
                error=f"Failed to fetch Fear & Greed Index: {e}",
            )

        await self.cache.set(FEAR_GREED_CACHE_KEY, result.model_dump(mode="json"))
        return result


# Singleton instance
_client_instance: Optional[FearGreedClient] = None


def get_fear_greed_client() -> FearGreedClient:
    """Get or create the Fear & Greed client."""
    global _client_instance
    if _client_instance is None:
        _client_instance = FearGreedClient()
    return _client_instance
