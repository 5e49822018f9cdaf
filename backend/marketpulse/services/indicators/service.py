"""
Indicator Engine Service Implementation

Runs the indicator pipeline on a price series and packages the latest
values into an IndicatorSet. Pure Python/NumPy calculations.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Mapping, Optional, Sequence

from marketpulse.core.config import settings
from marketpulse.schemas.market import PricePoint, VolumePoint
from marketpulse.schemas.indicators import (
    AnalysisRequest,
    BollingerBandsData,
    IndicatorParams,
    IndicatorSet,
    MACDData,
    PriceLevel,
)
from marketpulse.services.base import MalformedSeriesError
from marketpulse.services.indicators.interface import IndicatorServiceInterface
from marketpulse.services.indicators.calculations import (
    sma,
    rsi,
    macd,
    bollinger_bands,
    last_or_none,
)
from marketpulse.services.indicators.levels import (
    find_swing_highs_and_lows,
    group_price_levels,
)

logger = logging.getLogger(__name__)


def _check_ordering(prices: Sequence[PricePoint]) -> None:
    """Series must arrive ascending by timestamp; the engine never sorts."""
    for i in range(1, len(prices)):
        if prices[i].timestamp < prices[i - 1].timestamp:
            raise MalformedSeriesError(
                "prices must be ordered ascending by timestamp",
                {"index": i, "timestamp": prices[i].timestamp},
            )


class IndicatorService(IndicatorServiceInterface):
    """
    Indicator Engine Service.

    Stateless: every call only reads its arguments, so analyses of
    different assets may run concurrently.
    """

    def __init__(self, default_params: Optional[IndicatorParams] = None):
        self._default_params = default_params

    @property
    def name(self) -> str:
        return "IndicatorService"

    @property
    def default_params(self) -> IndicatorParams:
        return self._default_params or settings.indicator_params()

    async def execute(self, input_data: AnalysisRequest) -> IndicatorSet:
        """Analyze the series carried by the request."""
        return self.analyze(
            input_data.prices,
            input_data.volumes,
            input_data.params,
            now=input_data.now,
        )

    def analyze(
        self,
        prices: Sequence[PricePoint],
        volumes: Optional[Sequence[VolumePoint]] = None,
        params: Optional[IndicatorParams] = None,
        *,
        now: Optional[int] = None,
    ) -> IndicatorSet:
        """Run all indicators on one series. Short series give None fields."""
        params = params or self.default_params
        _check_ordering(prices)

        closes = [p.price for p in prices]
        if now is None and prices:
            now = prices[-1].timestamp

        macd_data = self._calculate_macd(closes, params)
        bollinger = self._calculate_bollinger(closes, params)
        support, resistance = self._calculate_levels(prices, volumes, params, now)

        return IndicatorSet(
            sma=last_or_none(sma(closes, params.sma_period)),
            rsi=last_or_none(rsi(closes, params.rsi_period)),
            macd=macd_data,
            bollinger=bollinger,
            support_levels=support,
            resistance_levels=resistance,
            computed_at=datetime.now(timezone.utc),
        )

    async def analyze_many(
        self,
        series: Mapping[str, Sequence[PricePoint]],
        volumes: Optional[Mapping[str, Sequence[VolumePoint]]] = None,
        params: Optional[IndicatorParams] = None,
        *,
        now: Optional[int] = None,
    ) -> dict[str, IndicatorSet]:
        """Analyze several assets concurrently. Failed assets are logged and omitted."""
        volumes = volumes or {}
        assets = list(series)
        outcomes = await asyncio.gather(
            *(
                asyncio.to_thread(
                    self.analyze, series[asset], volumes.get(asset), params, now=now
                )
                for asset in assets
            ),
            return_exceptions=True,
        )

        results = {}
        for asset, outcome in zip(assets, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Error calculating indicators for {asset}: {outcome}")
                continue
            results[asset] = outcome
        return results

    def _calculate_macd(self, closes: list[float], params: IndicatorParams) -> MACDData:
        series = macd(closes, params.macd_fast, params.macd_slow, params.macd_signal)
        return MACDData(
            value=last_or_none(series.macd),
            signal=last_or_none(series.signal),
            histogram=last_or_none(series.histogram),
        )

    def _calculate_bollinger(
        self, closes: list[float], params: IndicatorParams
    ) -> BollingerBandsData:
        bands = bollinger_bands(closes, params.bb_period, params.bb_std_dev)
        return BollingerBandsData(
            upper=last_or_none(bands.upper),
            middle=last_or_none(bands.middle),
            lower=last_or_none(bands.lower),
            percent_b=last_or_none(bands.percent_b),
            bandwidth=last_or_none(bands.bandwidth),
        )

    def _calculate_levels(
        self,
        prices: Sequence[PricePoint],
        volumes: Optional[Sequence[VolumePoint]],
        params: IndicatorParams,
        now: Optional[int],
    ) -> tuple[list[PriceLevel], list[PriceLevel]]:
        """Support from swing lows, resistance from swing highs."""
        swing_highs, swing_lows = find_swing_highs_and_lows(
            prices, params.swing_left_bars, params.swing_right_bars
        )
        volume_lookup = volumes or {}

        support = group_price_levels(
            swing_lows, params.cluster, now=now, volumes=volume_lookup
        )
        resistance = group_price_levels(
            swing_highs, params.cluster, now=now, volumes=volume_lookup
        )
        return support, resistance

    async def health_check(self) -> bool:
        """Indicator service is always healthy (pure computation)."""
        return True


# Singleton instance
_service_instance: Optional[IndicatorService] = None


def get_indicator_service() -> IndicatorService:
    """Get or create indicator service instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = IndicatorService()
    return _service_instance
