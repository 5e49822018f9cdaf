"""
CONTRACT 1: Market Data Layer

Input: upstream provider payloads (CoinGecko, Yahoo Finance, alternative.me)
Output: PricePoint / VolumePoint series and quote records

This module normalizes raw market data into the shapes the indicator
engine and the dashboard consume.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# SERIES POINTS
# =============================================================================


class PricePoint(BaseModel):
    """Single price observation. Series are ordered ascending by timestamp."""

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(..., description="Epoch milliseconds")
    price: float = Field(..., allow_inf_nan=False)


class VolumePoint(BaseModel):
    """Traded volume, matched to a PricePoint by exact timestamp."""

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(..., description="Epoch milliseconds")
    volume: float = Field(..., ge=0, allow_inf_nan=False)


# =============================================================================
# UPSTREAM RECORDS
# =============================================================================


class CoinMarket(BaseModel):
    """Spot market data for a crypto asset."""

    coin_id: str
    price: float
    change_24h: Optional[float] = Field(default=None, description="24h change %")
    volume_24h: Optional[float] = None
    market_cap: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    last_updated: Optional[str] = None


class IndexQuote(BaseModel):
    """Equity-index proxy quote (SPY, ^GSPC)."""

    symbol: str
    price: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    volume: Optional[int] = None
    previous_close: Optional[float] = None
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    year_high: Optional[float] = None
    year_low: Optional[float] = None
    sma_50: Optional[float] = None
    sma_200: Optional[float] = None
    timestamp: Optional[datetime] = None
    from_cache: bool = False
    error: Optional[str] = None


class TrendingCoin(BaseModel):
    """Entry of the trending-asset list."""

    id: str
    name: str
    symbol: str
    price_btc: Optional[float] = None
    market_cap_rank: Optional[int] = None
    thumb: Optional[str] = None
    large: Optional[str] = None
    price_change_percentage_24h: Optional[float] = None


class FearGreedIndex(BaseModel):
    """Market sentiment index (0 = extreme fear, 100 = extreme greed)."""

    value: int = Field(..., ge=0, le=100)
    value_classification: str
    timestamp: datetime
    last_updated: datetime
    from_cache: bool = False
    error: Optional[str] = None
