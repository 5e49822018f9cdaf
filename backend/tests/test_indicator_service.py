"""
Tests for IndicatorService assembly.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from conftest import BASE_TS, MINUTE_MS, make_series, make_volumes
from marketpulse.schemas.indicators import (
    AnalysisRequest,
    ClusterOptions,
    IndicatorParams,
)
from marketpulse.schemas.market import PricePoint
from marketpulse.services.base import MalformedSeriesError
from marketpulse.services.indicators.service import IndicatorService


@pytest.fixture
def zigzag_params():
    return IndicatorParams(
        sma_period=3,
        rsi_period=3,
        bb_period=5,
        swing_left_bars=1,
        swing_right_bars=1,
        cluster=ClusterOptions(threshold=0.01, volume_weighted=False, time_decay=False),
    )


@pytest.fixture
def service():
    return IndicatorService(default_params=IndicatorParams())


class TestAnalyze:
    def test_short_series_gives_empty_set(self, service):
        result = service.analyze(make_series([1.0, 2.0, 3.0]))
        assert result.sma is None
        assert result.rsi is None
        assert result.macd.signal is None
        assert result.bollinger.upper is None
        assert result.support_levels == []
        assert result.resistance_levels == []
        assert result.computed_at is not None

    def test_empty_series(self, service):
        result = service.analyze([])
        assert result.sma is None
        assert result.macd.value is None

    def test_unordered_series_rejected(self, service):
        prices = [
            PricePoint(timestamp=BASE_TS + MINUTE_MS, price=1.0),
            PricePoint(timestamp=BASE_TS, price=2.0),
        ]
        with pytest.raises(MalformedSeriesError):
            service.analyze(prices)

    def test_long_series_fills_every_indicator(self, service):
        result = service.analyze(make_series([100.0 + i for i in range(60)]))
        assert result.sma == pytest.approx(sum(range(110, 160)) / 50)
        assert result.rsi == pytest.approx(99.0099, abs=1e-4)
        assert result.macd.value is not None
        assert result.macd.signal is not None
        assert result.macd.histogram == pytest.approx(result.macd.value - result.macd.signal)
        assert result.bollinger.upper >= result.bollinger.middle >= result.bollinger.lower

    def test_levels_from_swings(self, service, zigzag_prices, zigzag_params):
        result = service.analyze(zigzag_prices, params=zigzag_params)

        assert len(result.resistance_levels) == 1
        assert result.resistance_levels[0].price == pytest.approx(102.5)
        assert result.resistance_levels[0].touches == 4

        assert sorted(level.price for level in result.support_levels) == [96, 97, 98, 99]
        assert all(level.type.value == "low" for level in result.support_levels)

    def test_time_decay_defaults_to_last_timestamp(self, service, zigzag_prices):
        params = IndicatorParams(swing_left_bars=1, swing_right_bars=1)
        volumes = make_volumes([10.0] * len(zigzag_prices))
        result = service.analyze(zigzag_prices, volumes, params)
        assert result.resistance_levels
        assert result.support_levels

    def test_top_levels(self, service, zigzag_prices, zigzag_params):
        result = service.analyze(zigzag_prices, params=zigzag_params).top_levels(2)
        assert len(result.support_levels) == 2
        assert len(result.resistance_levels) == 1


class TestExecute:
    @pytest.mark.asyncio
    async def test_execute_uses_request_params(self, service, zigzag_prices, zigzag_params):
        request = AnalysisRequest(prices=zigzag_prices, params=zigzag_params)
        result = await service.execute(request)
        assert result.sma == pytest.approx((104 + 96 + 105) / 3)

    def test_request_rejects_unordered_prices(self):
        with pytest.raises(PydanticValidationError):
            AnalysisRequest(
                prices=[
                    {"timestamp": 2, "price": 1.0},
                    {"timestamp": 1, "price": 1.0},
                ]
            )

    @pytest.mark.asyncio
    async def test_health_check(self, service):
        assert await service.health_check() is True


class TestAnalyzeMany:
    @pytest.mark.asyncio
    async def test_failed_asset_is_omitted(self, service, zigzag_prices, zigzag_params):
        bad = [
            PricePoint(timestamp=BASE_TS + MINUTE_MS, price=1.0),
            PricePoint(timestamp=BASE_TS, price=2.0),
        ]
        results = await service.analyze_many(
            {"bitcoin": zigzag_prices, "broken": bad}, params=zigzag_params
        )
        assert list(results) == ["bitcoin"]
        assert len(results["bitcoin"].resistance_levels) == 1
