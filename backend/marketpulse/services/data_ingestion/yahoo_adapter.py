"""
Yahoo Finance Data Adapter

Fetches equity-index proxy quotes (SPY, ^GSPC) from Yahoo Finance.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

import yfinance as yf

from marketpulse.core.config import settings
from marketpulse.schemas.market import IndexQuote
from marketpulse.services.cache.redis_client import ResponseCache, get_response_cache

logger = logging.getLogger(__name__)


def yahoo_cache_key(symbol: str) -> str:
    return f"yahoo_{symbol}"


def _as_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def build_index_quote(symbol: str, info: dict, closes: list[float]) -> IndexQuote:
    """
    Merge Yahoo `info` fields with a daily close history.

    Moving averages and the 52-week range come from the history when
    Yahoo does not report them.
    """
    price = info.get("regularMarketPrice") or info.get("currentPrice")
    if price is None and closes:
        price = closes[-1]
    if price is None:
        raise ValueError(f"No price available for {symbol}")

    previous_close = info.get("previousClose") or info.get("regularMarketPreviousClose")
    if previous_close is None and len(closes) > 1:
        previous_close = closes[-2]

    change = None
    change_percent = None
    if previous_close:
        change = price - previous_close
        change_percent = change / previous_close * 100

    def trailing_mean(period: int) -> Optional[float]:
        if len(closes) < period:
            return None
        return sum(closes[-period:]) / period

    year_window = closes[-252:]

    return IndexQuote(
        symbol=symbol,
        price=float(price),
        change=_as_float(change),
        change_percent=_as_float(change_percent),
        volume=info.get("regularMarketVolume") or info.get("volume"),
        previous_close=_as_float(previous_close),
        open=_as_float(info.get("regularMarketOpen") or info.get("open")),
        high=_as_float(info.get("regularMarketDayHigh") or info.get("dayHigh")),
        low=_as_float(info.get("regularMarketDayLow") or info.get("dayLow")),
        year_high=_as_float(info.get("fiftyTwoWeekHigh") or (max(year_window) if year_window else None)),
        year_low=_as_float(info.get("fiftyTwoWeekLow") or (min(year_window) if year_window else None)),
        sma_50=_as_float(info.get("fiftyDayAverage") or trailing_mean(50)),
        sma_200=_as_float(info.get("twoHundredDayAverage") or trailing_mean(200)),
        timestamp=datetime.now(timezone.utc),
    )


def _download_quote(symbol: str) -> IndexQuote:
    ticker = yf.Ticker(symbol)
    hist = ticker.history(period="1y", interval="1d")
    closes = [] if hist.empty else [float(c) for c in hist["Close"].tolist()]

    try:
        info = ticker.info or {}
    except Exception as e:
        logger.debug(f"Could not get live quote for {symbol}: {e}")
        info = {}

    return build_index_quote(symbol, info, closes)


async def fetch_index_quote(
    symbol: str, cache: Optional[ResponseCache] = None
) -> IndexQuote:
    """
    Fetch an index quote with a 15 minute cache.

    On failure the last cached quote is returned marked `from_cache`; with
    nothing cached, a quote carrying only the symbol and the error.
    """
    cache = cache or get_response_cache()
    key = yahoo_cache_key(symbol)

    cached = await cache.get_fresh(key, settings.yahoo_cache_ttl_s)
    if cached is not None:
        logger.info(f"Using cached Yahoo data for {symbol}")
        return IndexQuote(**cached).model_copy(update={"from_cache": True})

    try:
        logger.info(f"Fetching {symbol} from Yahoo Finance...")
        quote = await asyncio.to_thread(_download_quote, symbol)
    except Exception as e:
        logger.error(f"Failed to fetch {symbol} data from Yahoo Finance: {e}")
        stale = await cache.get_stale(key)
        if stale is not None:
            logger.warning(f"Using cached Yahoo data after error for {symbol}")
            return IndexQuote(**stale).model_copy(
                update={"from_cache": True, "error": f"Using cached data due to API error: {e}"}
            )
        return IndexQuote(symbol=symbol, error=f"Failed to fetch data: {e}")

    await cache.set(key, quote.model_dump(mode="json"))
    return quote
