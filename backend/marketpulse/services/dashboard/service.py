"""
Dashboard Assembly Service

Fetches every market-data source concurrently, runs the indicator engine
on crypto price history and merges the results into one DashboardSnapshot.
A failing source keeps its previous value (marked as cached) instead of
failing the whole refresh.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from marketpulse.core.config import settings
from marketpulse.schemas.dashboard import CoinSnapshot, DashboardError, DashboardSnapshot
from marketpulse.schemas.market import FearGreedIndex, IndexQuote, TrendingCoin
from marketpulse.services.data_ingestion.coingecko_adapter import (
    CoinGeckoClient,
    get_coingecko_client,
)
from marketpulse.services.data_ingestion.rate_limit import RateLimitState
from marketpulse.services.data_ingestion.sentiment_adapter import (
    FearGreedClient,
    NEUTRAL_VALUE,
    classify_fear_greed,
    get_fear_greed_client,
)
from marketpulse.services.data_ingestion.yahoo_adapter import fetch_index_quote
from marketpulse.services.indicators.service import IndicatorService, get_indicator_service

logger = logging.getLogger(__name__)

IndexFetcher = Callable[[str], Awaitable[IndexQuote]]

# Bounds for the retry interval after a failed refresh (ms)
ERROR_RETRY_MIN_MS = 5_000
ERROR_RETRY_MAX_MS = 30_000
# Stretch the interval once fewer requests than this remain
LOW_BUDGET = 5


def next_update_delay(
    interval_ms: int, had_error: bool, rate_limit: RateLimitState
) -> int:
    """
    Milliseconds until the next refresh.

    - After a failed refresh: retry sooner, between 5 and 30 seconds
    - With a low request budget: wait for the reset, at most twice the interval
    - Otherwise: the configured interval
    """
    if had_error:
        return int(min(ERROR_RETRY_MAX_MS, max(ERROR_RETRY_MIN_MS, interval_ms / 2)))
    if rate_limit.remaining < LOW_BUDGET:
        return int(
            min(
                interval_ms * 2,
                max(interval_ms, rate_limit.remaining_time * 1000 + 1000),
            )
        )
    return interval_ms


class DashboardService:
    """
    Dashboard Assembly Service.

    Holds the latest DashboardSnapshot and refreshes it on demand.
    """

    def __init__(
        self,
        coingecko: Optional[CoinGeckoClient] = None,
        fear_greed: Optional[FearGreedClient] = None,
        indicators: Optional[IndicatorService] = None,
        index_fetcher: Optional[IndexFetcher] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.coingecko = coingecko or get_coingecko_client()
        self.fear_greed = fear_greed or get_fear_greed_client()
        self.indicators = indicators or get_indicator_service()
        self._index_fetcher = index_fetcher or fetch_index_quote
        self._clock = clock
        self._sleep = sleep
        self._snapshot = DashboardSnapshot(rate_limit=self.coingecko.rate_limit.snapshot())
        self.last_refresh_failed = False

    @property
    def name(self) -> str:
        return "DashboardService"

    @property
    def snapshot(self) -> DashboardSnapshot:
        return self._snapshot

    @property
    def rate_limit(self) -> RateLimitState:
        return self.coingecko.rate_limit

    async def refresh(self) -> DashboardSnapshot:
        """Fetch all sources concurrently and replace the snapshot."""
        started = self._clock()
        logger.info("Starting dashboard data update...")

        try:
            wait = self.rate_limit.wait_time(0)
            if wait > 0:
                logger.warning(f"Rate limit reached. Waiting {wait:.0f} seconds...")
                await self._sleep(wait)

            # One reference time for every asset's level decay
            now_ms = int(self._clock() * 1000)
            coins = list(settings.tracked_coins)
            indices = list(settings.tracked_indices)

            results = await asyncio.gather(
                *(self.get_coin_snapshot(coin_id, now_ms) for coin_id in coins),
                *(self._index_fetcher(symbol) for symbol in indices),
                self.coingecko.get_trending(),
                self.fear_greed.get_index(),
                return_exceptions=True,
            )
            coin_results = results[: len(coins)]
            index_results = results[len(coins) : len(coins) + len(indices)]
            trending_result, fear_greed_result = results[-2:]

            previous = self._snapshot
            assets = {
                coin_id: self._coin_or_fallback(coin_id, outcome, previous)
                for coin_id, outcome in zip(coins, coin_results)
            }
            quotes = {
                symbol: self._index_or_fallback(symbol, outcome, previous)
                for symbol, outcome in zip(indices, index_results)
            }
            trending, trending_error = self._trending_or_fallback(trending_result, previous)
            fear_greed = self._fear_greed_or_fallback(fear_greed_result, previous)

            finished = self._clock()
            self._snapshot = DashboardSnapshot(
                assets=assets,
                indices=quotes,
                trending=trending,
                trending_error=trending_error,
                fear_greed=fear_greed,
                last_updated=datetime.fromtimestamp(finished, tz=timezone.utc),
                update_time_ms=int((finished - started) * 1000),
                rate_limit=self.rate_limit.snapshot(),
            )
            self.last_refresh_failed = False
            logger.info(
                f"Dashboard updated in {self._snapshot.update_time_ms}ms "
                f"at {self._snapshot.last_updated.isoformat()}"
            )
            self._log_source_warnings()

        except Exception as e:
            logger.error(f"Critical error updating dashboard data: {e}")
            finished = self._clock()
            self.last_refresh_failed = True
            self._snapshot = self._snapshot.model_copy(
                update={
                    "last_updated": datetime.fromtimestamp(finished, tz=timezone.utc),
                    "update_time_ms": int((finished - started) * 1000),
                    "rate_limit": self.rate_limit.snapshot(),
                    "error": DashboardError(
                        message="Failed to update dashboard data",
                        details=str(e),
                        timestamp=datetime.fromtimestamp(finished, tz=timezone.utc),
                        status=getattr(e, "status", None),
                    ),
                }
            )

        return self._snapshot

    async def get_coin_snapshot(self, coin_id: str, now_ms: int) -> CoinSnapshot:
        """Spot data, history and indicators for one coin."""
        market = await self.coingecko.get_market(coin_id)
        prices, volumes = await self.coingecko.get_market_chart(coin_id)
        indicators = await asyncio.to_thread(
            self.indicators.analyze, prices, volumes, now=now_ms
        )
        return CoinSnapshot(coin_id=coin_id, market=market, indicators=indicators)

    def _coin_or_fallback(
        self, coin_id: str, outcome, previous: DashboardSnapshot
    ) -> CoinSnapshot:
        if not isinstance(outcome, Exception):
            return outcome
        logger.error(f"Error fetching {coin_id} data: {outcome}")
        cached = previous.assets.get(coin_id)
        if cached is not None and (cached.market or cached.indicators):
            return cached.model_copy(
                update={"from_cache": True, "error": f"Using cached data: {outcome}"}
            )
        return CoinSnapshot(coin_id=coin_id, error=f"Failed to fetch {coin_id} data: {outcome}")

    def _index_or_fallback(
        self, symbol: str, outcome, previous: DashboardSnapshot
    ) -> IndexQuote:
        if not isinstance(outcome, Exception):
            return outcome
        logger.error(f"Error fetching {symbol} data: {outcome}")
        cached = previous.indices.get(symbol)
        if cached is not None and cached.price is not None:
            return cached.model_copy(
                update={"from_cache": True, "error": f"Using cached data: {outcome}"}
            )
        return IndexQuote(symbol=symbol, error=f"Failed to fetch {symbol} data: {outcome}")

    def _trending_or_fallback(
        self, outcome, previous: DashboardSnapshot
    ) -> tuple[list[TrendingCoin], Optional[str]]:
        if not isinstance(outcome, Exception):
            return outcome, None
        logger.error(f"Error fetching trending coins: {outcome}")
        if previous.trending:
            return previous.trending, f"Using cached data: {outcome}"
        return [], f"Failed to fetch trending coins: {outcome}"

    def _fear_greed_or_fallback(
        self, outcome, previous: DashboardSnapshot
    ) -> FearGreedIndex:
        if not isinstance(outcome, Exception):
            return outcome
        logger.error(f"Error fetching Fear & Greed Index: {outcome}")
        if previous.fear_greed is not None:
            return previous.fear_greed.model_copy(
                update={"from_cache": True, "error": f"Using cached data: {outcome}"}
            )
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        return FearGreedIndex(
            value=NEUTRAL_VALUE,
            value_classification=classify_fear_greed(NEUTRAL_VALUE),
            timestamp=now,
            last_updated=now,
            error=f"Failed to fetch Fear & Greed Index: {outcome}",
        )

    def _log_source_warnings(self) -> None:
        snapshot = self._snapshot
        sources = [(coin_id, s.error) for coin_id, s in snapshot.assets.items()]
        sources += [(symbol, q.error) for symbol, q in snapshot.indices.items()]
        sources.append(("Trending", snapshot.trending_error))
        if snapshot.fear_greed is not None:
            sources.append(("Fear & Greed", snapshot.fear_greed.error))
        for name, error in sources:
            if error:
                logger.warning(f"{name} data warning: {error}")

    async def health_check(self) -> bool:
        return self._snapshot.error is None


# Singleton instance
_service_instance: Optional[DashboardService] = None


def get_dashboard_service() -> DashboardService:
    """Get or create dashboard service instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = DashboardService()
    return _service_instance
