"""
CONTRACT 2: Indicator Engine

Input: PricePoint series (+ optional VolumePoint series) and IndicatorParams
Output: IndicatorSet

This module describes every structure produced by the engine.
Pure Python/NumPy - all math is deterministic.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from marketpulse.schemas.market import PricePoint, VolumePoint


THIRTY_DAYS_MS = 30 * 24 * 60 * 60 * 1000


# =============================================================================
# ENUMS
# =============================================================================


class LevelType(str, Enum):
    HIGH = "high"
    LOW = "low"


# =============================================================================
# PARAMETERS
# =============================================================================


class ClusterOptions(BaseModel):
    """Tuning for support/resistance clustering."""

    threshold: float = Field(
        default=0.01, ge=0, description="Relative price distance (0.01 = 1%)"
    )
    volume_weighted: bool = True
    time_decay: bool = True
    half_life_ms: int = Field(
        default=THIRTY_DAYS_MS, gt=0, description="Age at which a touch weighs half"
    )


class IndicatorParams(BaseModel):
    """All tunables of one analysis pass."""

    sma_period: int = Field(default=50, ge=1)
    rsi_period: int = Field(default=14, ge=1)
    macd_fast: int = Field(default=12, ge=1)
    macd_slow: int = Field(default=26, ge=1)
    macd_signal: int = Field(default=9, ge=1)
    bb_period: int = Field(default=20, ge=1)
    bb_std_dev: float = Field(default=2.0, ge=0)
    swing_left_bars: int = Field(default=3, ge=1)
    swing_right_bars: int = Field(default=3, ge=1)
    cluster: ClusterOptions = Field(default_factory=ClusterOptions)


# =============================================================================
# SUPPORT / RESISTANCE
# =============================================================================


class SwingPoint(PricePoint):
    """Local extremum found by the swing detector."""

    type: LevelType
    volume: float = Field(default=0.0, ge=0)
    strength: float = 1.0


class PriceLevel(BaseModel):
    """Consolidated support/resistance zone built from one or more swing points."""

    model_config = ConfigDict(frozen=True)

    price: float
    strength: float = Field(..., ge=0)
    touches: int = Field(..., ge=1)
    type: LevelType
    volume: float = Field(..., ge=0, description="Sum of member volumes")
    max_volume: float = Field(..., ge=0)
    first_touch: int
    last_touch: int
    timestamps: list[int] = Field(default_factory=list)


# =============================================================================
# OUTPUT: Indicator Components
# =============================================================================


class MACDData(BaseModel):
    """Latest MACD values. None until the signal line has warmed up."""

    value: Optional[float] = None
    signal: Optional[float] = None
    histogram: Optional[float] = None


class BollingerBandsData(BaseModel):
    """Latest Bollinger Band values."""

    upper: Optional[float] = None
    middle: Optional[float] = None
    lower: Optional[float] = None
    percent_b: Optional[float] = Field(
        default=None, description="Price position within bands (0-100)"
    )
    bandwidth: Optional[float] = Field(
        default=None, description="Band width as % of middle band"
    )


# =============================================================================
# OUTPUT: IndicatorSet (Complete Response)
# =============================================================================


class IndicatorSet(BaseModel):
    """
    Complete indicator analysis for one asset.
    Returned by: Indicator Service
    Consumed by: Dashboard assembly, analysis endpoint
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "sma": 64250.12,
                "rsi": 58.3,
                "macd": {"value": 112.4, "signal": 98.1, "histogram": 14.3},
                "bollinger": {
                    "upper": 65120.0,
                    "middle": 64300.0,
                    "lower": 63480.0,
                    "percent_b": 71.2,
                    "bandwidth": 2.55,
                },
                "support_levels": [
                    {
                        "price": 63510.4,
                        "strength": 3.9,
                        "touches": 2,
                        "type": "low",
                        "volume": 2.1e10,
                        "max_volume": 1.1e10,
                        "first_touch": 1717400000000,
                        "last_touch": 1717430000000,
                        "timestamps": [1717400000000, 1717430000000],
                    }
                ],
                "resistance_levels": [],
                "computed_at": "2024-06-03T16:00:00Z",
            }
        },
    )

    sma: Optional[float] = None
    rsi: Optional[float] = Field(default=None, ge=0, le=100)
    macd: MACDData = Field(default_factory=MACDData)
    bollinger: BollingerBandsData = Field(default_factory=BollingerBandsData)
    support_levels: list[PriceLevel] = Field(
        default_factory=list, description="Strongest first"
    )
    resistance_levels: list[PriceLevel] = Field(
        default_factory=list, description="Strongest first"
    )
    computed_at: Optional[datetime] = Field(
        default=None, description="Display only"
    )

    def top_levels(self, count: int) -> "IndicatorSet":
        """Copy keeping only the `count` strongest levels on each side."""
        return self.model_copy(
            update={
                "support_levels": self.support_levels[:count],
                "resistance_levels": self.resistance_levels[:count],
            }
        )


# =============================================================================
# INPUT: AnalysisRequest
# =============================================================================


class AnalysisRequest(BaseModel):
    """
    Ad-hoc analysis of a caller-supplied series.
    Sent by: API
    Received by: Indicator Service
    """

    prices: list[PricePoint] = Field(..., description="Ascending by timestamp")
    volumes: Optional[list[VolumePoint]] = None
    params: IndicatorParams = Field(default_factory=IndicatorParams)
    now: Optional[int] = Field(
        default=None,
        description="Reference time (epoch ms) for time decay; defaults to the last price timestamp",
    )

    @model_validator(mode="after")
    def _check_ordering(self) -> "AnalysisRequest":
        stamps = [p.timestamp for p in self.prices]
        if any(b < a for a, b in zip(stamps, stamps[1:])):
            raise ValueError("prices must be ordered ascending by timestamp")
        return self
