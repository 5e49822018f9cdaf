"""
Data Ingestion Service

CONTRACT:
    Input:  asset identifiers (coin ids, index symbols)
    Output: CoinMarket, PricePoint/VolumePoint series, IndexQuote,
            TrendingCoin list, FearGreedIndex

RESPONSIBILITIES:
    - Fetch spot data, history and trending list from CoinGecko
    - Fetch index proxies from Yahoo Finance
    - Fetch the Fear & Greed sentiment index
    - Cache responses (fresh reads + stale fallback)
    - Track the outbound rate-limit budget and retry HTTP 429
"""

from marketpulse.services.data_ingestion.rate_limit import RateLimitState
from marketpulse.services.data_ingestion.coingecko_adapter import (
    CoinGeckoClient,
    get_coingecko_client,
)
from marketpulse.services.data_ingestion.yahoo_adapter import fetch_index_quote
from marketpulse.services.data_ingestion.sentiment_adapter import (
    FearGreedClient,
    classify_fear_greed,
    get_fear_greed_client,
)

__all__ = [
    "RateLimitState",
    "CoinGeckoClient",
    "get_coingecko_client",
    "fetch_index_quote",
    "FearGreedClient",
    "classify_fear_greed",
    "get_fear_greed_client",
]
