"""
CONTRACT 3: Dashboard Assembly

Input: results of every market-data source
Output: DashboardSnapshot

The merged, read-only view served by the HTTP API.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from marketpulse.schemas.market import CoinMarket, FearGreedIndex, IndexQuote, TrendingCoin
from marketpulse.schemas.indicators import IndicatorSet


class RateLimitInfo(BaseModel):
    """Outbound rate-limit budget as last reported by the provider."""

    remaining: int
    limit: int
    reset_time: int = Field(default=0, description="Epoch seconds")
    remaining_time: int = Field(default=0, description="Seconds until reset")
    last_updated: Optional[datetime] = None


class CoinSnapshot(BaseModel):
    """Market data and indicators for one crypto asset."""

    coin_id: str
    market: Optional[CoinMarket] = None
    indicators: Optional[IndicatorSet] = None
    from_cache: bool = False
    error: Optional[str] = None


class DashboardError(BaseModel):
    """Failure of a whole refresh cycle."""

    message: str
    details: str
    timestamp: datetime
    status: Optional[int] = None


class DashboardSnapshot(BaseModel):
    """
    Complete dashboard state.
    Returned by: Dashboard Service
    Consumed by: HTTP API
    """

    assets: dict[str, CoinSnapshot] = Field(default_factory=dict)
    indices: dict[str, IndexQuote] = Field(default_factory=dict)
    trending: list[TrendingCoin] = Field(default_factory=list)
    trending_error: Optional[str] = None
    fear_greed: Optional[FearGreedIndex] = None
    last_updated: Optional[datetime] = None
    update_time_ms: Optional[int] = None
    error: Optional[DashboardError] = None
    rate_limit: Optional[RateLimitInfo] = None
