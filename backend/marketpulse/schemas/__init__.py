"""
MarketPulse Schema Contracts

This module defines all JSON contracts between system components.
These are the authoritative interfaces - all modules must conform to these schemas.
"""

from marketpulse.schemas.market import (
    PricePoint,
    VolumePoint,
    CoinMarket,
    IndexQuote,
    TrendingCoin,
    FearGreedIndex,
)
from marketpulse.schemas.indicators import (
    LevelType,
    ClusterOptions,
    IndicatorParams,
    SwingPoint,
    PriceLevel,
    MACDData,
    BollingerBandsData,
    IndicatorSet,
    AnalysisRequest,
)
from marketpulse.schemas.dashboard import (
    RateLimitInfo,
    CoinSnapshot,
    DashboardError,
    DashboardSnapshot,
)

__all__ = [
    # Market
    "PricePoint",
    "VolumePoint",
    "CoinMarket",
    "IndexQuote",
    "TrendingCoin",
    "FearGreedIndex",
    # Indicators
    "LevelType",
    "ClusterOptions",
    "IndicatorParams",
    "SwingPoint",
    "PriceLevel",
    "MACDData",
    "BollingerBandsData",
    "IndicatorSet",
    "AnalysisRequest",
    # Dashboard
    "RateLimitInfo",
    "CoinSnapshot",
    "DashboardError",
    "DashboardSnapshot",
]
