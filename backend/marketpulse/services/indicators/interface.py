"""
Indicator Engine Service Interface

Defines the contract for the indicator calculation layer.
"""

from abc import abstractmethod
from typing import Optional, Sequence

from marketpulse.services.base import BaseService
from marketpulse.schemas.market import PricePoint, VolumePoint
from marketpulse.schemas.indicators import AnalysisRequest, IndicatorParams, IndicatorSet


class IndicatorServiceInterface(BaseService[AnalysisRequest, IndicatorSet]):
    """
    Indicator Engine Service Contract.

    INPUT: AnalysisRequest
        - prices: PricePoint series, ascending by timestamp
        - volumes: optional VolumePoint series (matched by timestamp)
        - params: IndicatorParams
        - now: reference time for time decay

    OUTPUT: IndicatorSet
        - Latest SMA, RSI, MACD and Bollinger values (None while warming up)
        - Support and resistance levels, strongest first
    """

    @property
    def name(self) -> str:
        return "IndicatorService"

    @abstractmethod
    async def execute(self, input_data: AnalysisRequest) -> IndicatorSet:
        """Analyze the series carried by the request."""
        pass

    @abstractmethod
    def analyze(
        self,
        prices: Sequence[PricePoint],
        volumes: Optional[Sequence[VolumePoint]] = None,
        params: Optional[IndicatorParams] = None,
        *,
        now: Optional[int] = None,
    ) -> IndicatorSet:
        """
        Run the full indicator pipeline on one series.

        Args:
            prices: Price series, ascending by timestamp
            volumes: Volume series matched to prices by exact timestamp
            params: Indicator tunables (defaults to IndicatorParams())
            now: Reference time in epoch ms for level time decay

        Returns:
            IndicatorSet with the latest value of every indicator
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Indicator service is always healthy (pure computation)."""
        pass
