"""
Indicator Engine Service

CONTRACT:
    Input:  AnalysisRequest (PricePoint series + optional VolumePoint series)
    Output: IndicatorSet

RESPONSIBILITIES:
    - Moving averages and oscillators (SMA, EMA, RSI, MACD)
    - Volatility bands (Bollinger, %B, bandwidth)
    - Swing-point detection
    - Support/resistance clustering with strength scoring

PURE PYTHON - Uses NumPy for calculations.
All math is deterministic and reproducible.
"""

from marketpulse.services.indicators.interface import IndicatorServiceInterface
from marketpulse.services.indicators.service import IndicatorService, get_indicator_service

__all__ = [
    "IndicatorServiceInterface",
    "IndicatorService",
    "get_indicator_service",
]
