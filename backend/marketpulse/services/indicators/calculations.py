"""
Technical Indicator Calculations

Pure Python/NumPy implementations of the moving-average, oscillator and
volatility-band indicators. All math is deterministic.

Short input never raises: outputs are simply shorter (or empty). Values
that cannot be computed yet are None, never NaN.
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

import numpy as np

from marketpulse.services.base import MalformedSeriesError

SeriesLike = Union[Sequence[float], np.ndarray]

# RS used when the window has no losses (RSI = 100 - 100/101)
ZERO_LOSS_RS = 100.0
# %B when the bands collapse onto the middle band
FLAT_BAND_PERCENT_B = 50.0
# Bandwidth when the middle band is zero
ZERO_MIDDLE_BANDWIDTH = 0.0
# Relative width below which the bands are treated as collapsed
FLAT_BAND_TOLERANCE = 1e-12


@dataclass
class MACDSeries:
    """MACD output, every list positionally aligned with the input series."""

    macd: np.ndarray
    signal: list[Optional[float]] = field(default_factory=list)
    histogram: list[Optional[float]] = field(default_factory=list)


@dataclass
class BollingerSeries:
    """Bollinger output, aligned to windows ending at index period-1 onward."""

    upper: np.ndarray
    middle: np.ndarray
    lower: np.ndarray
    bandwidth: np.ndarray
    percent_b: np.ndarray


def _empty() -> np.ndarray:
    return np.empty(0, dtype=float)


def as_series(data: SeriesLike, name: str = "series") -> np.ndarray:
    """Convert to a 1-D float array, failing fast on malformed values."""
    try:
        arr = np.asarray(data, dtype=float)
    except (TypeError, ValueError) as e:
        raise MalformedSeriesError(f"{name} is not numeric: {e}") from e

    if arr.ndim != 1:
        raise MalformedSeriesError(
            f"{name} must be one-dimensional", {"shape": list(arr.shape)}
        )
    if not np.all(np.isfinite(arr)):
        bad = int(np.flatnonzero(~np.isfinite(arr))[0])
        raise MalformedSeriesError(
            f"{name} contains a non-finite value", {"index": bad}
        )
    return arr


def check_period(period: int, name: str = "period") -> int:
    """Lookback periods must be positive integers."""
    if isinstance(period, bool) or not isinstance(period, (int, np.integer)):
        raise MalformedSeriesError(f"{name} must be an integer, got {period!r}")
    if period < 1:
        raise MalformedSeriesError(f"{name} must be >= 1, got {period}")
    return int(period)


def last_or_none(values) -> Optional[float]:
    """Current value of an indicator output: its last element, if any."""
    if len(values) == 0:
        return None
    value = values[-1]
    return None if value is None else float(value)


# =============================================================================
# MOVING AVERAGES
# =============================================================================


def sma(data: SeriesLike, period: int) -> np.ndarray:
    """Simple Moving Average. Length max(0, n - period + 1)."""
    closes = as_series(data)
    period = check_period(period)
    if len(closes) < period:
        return _empty()

    result = np.empty(len(closes) - period + 1)
    for i in range(len(result)):
        result[i] = np.mean(closes[i : i + period])
    return result


def ema(data: SeriesLike, period: int) -> np.ndarray:
    """Exponential Moving Average seeded with the first value. Full length."""
    values = as_series(data)
    period = check_period(period)
    if len(values) == 0:
        return _empty()

    k = 2 / (period + 1)
    result = np.empty(len(values))
    result[0] = values[0]
    for i in range(1, len(values)):
        result[i] = values[i] * k + result[i - 1] * (1 - k)
    return result


# =============================================================================
# MOMENTUM INDICATORS
# =============================================================================


def rsi(data: SeriesLike, period: int = 14) -> np.ndarray:
    """
    Relative Strength Index over a plain (unsmoothed) trailing window.

    Element k corresponds to input index period + k. A window without
    losses uses RS = ZERO_LOSS_RS instead of dividing by zero.
    """
    closes = as_series(data)
    period = check_period(period)
    if len(closes) <= period:
        return _empty()

    deltas = np.diff(closes)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    result = np.empty(len(closes) - period)
    for i in range(period, len(closes)):
        avg_gain = np.sum(gains[i - period : i]) / period
        avg_loss = np.sum(losses[i - period : i]) / period

        if avg_loss == 0:
            rs = ZERO_LOSS_RS
        else:
            rs = avg_gain / avg_loss
        result[i - period] = 100 - (100 / (1 + rs))

    return result


def macd(
    data: SeriesLike,
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MACDSeries:
    """
    MACD (Moving Average Convergence Divergence).

    The signal line is the EMA of the MACD line taken from index
    slow_period - 1 onward. It stays None until index
    slow_period + signal_period - 2, so a series shorter than
    slow_period + signal_period - 1 has no defined signal at its tail.
    """
    closes = as_series(data)
    fast_period = check_period(fast_period, "fast_period")
    slow_period = check_period(slow_period, "slow_period")
    signal_period = check_period(signal_period, "signal_period")

    n = len(closes)
    if n == 0:
        return MACDSeries(macd=_empty())

    macd_line = ema(closes, fast_period) - ema(closes, slow_period)

    signal_line: list[Optional[float]] = [None] * n
    histogram: list[Optional[float]] = [None] * n

    start = slow_period - 1
    if n > start:
        smoothed = ema(macd_line[start:], signal_period)
        first_defined = slow_period + signal_period - 2
        for offset, value in enumerate(smoothed):
            i = start + offset
            if i < first_defined:
                continue
            signal_line[i] = float(value)
            histogram[i] = float(macd_line[i] - value)

    return MACDSeries(macd=macd_line, signal=signal_line, histogram=histogram)


# =============================================================================
# VOLATILITY INDICATORS
# =============================================================================


def standard_deviation(values: SeriesLike) -> float:
    """Population standard deviation. 0.0 for an empty window."""
    arr = as_series(values, "values")
    if len(arr) == 0:
        return 0.0
    return float(np.std(arr))


def bollinger_bands(
    data: SeriesLike, period: int = 20, std_dev: float = 2.0
) -> BollingerSeries:
    """
    Bollinger Bands.

    percent_b and bandwidth are expressed in percent. Collapsed bands
    (zero variance) give percent_b = FLAT_BAND_PERCENT_B; a zero middle
    band gives bandwidth = ZERO_MIDDLE_BANDWIDTH.
    """
    closes = as_series(data, "prices")
    period = check_period(period)
    if not math.isfinite(std_dev) or std_dev < 0:
        raise MalformedSeriesError(f"std_dev must be a finite value >= 0, got {std_dev}")

    if len(closes) < period:
        return BollingerSeries(
            upper=_empty(),
            middle=_empty(),
            lower=_empty(),
            bandwidth=_empty(),
            percent_b=_empty(),
        )

    size = len(closes) - period + 1
    upper = np.empty(size)
    middle = np.empty(size)
    lower = np.empty(size)
    bandwidth = np.empty(size)
    percent_b = np.empty(size)

    for k, i in enumerate(range(period - 1, len(closes))):
        window = closes[i - period + 1 : i + 1]
        mean = float(np.mean(window))
        std = float(np.std(window))

        middle[k] = mean
        upper[k] = mean + std * std_dev
        lower[k] = mean - std * std_dev

        width = upper[k] - lower[k]
        if width <= FLAT_BAND_TOLERANCE * max(abs(mean), 1.0):
            percent_b[k] = FLAT_BAND_PERCENT_B
        else:
            percent_b[k] = (closes[i] - lower[k]) / width * 100

        if mean == 0:
            bandwidth[k] = ZERO_MIDDLE_BANDWIDTH
        else:
            bandwidth[k] = width / mean * 100

    return BollingerSeries(
        upper=upper,
        middle=middle,
        lower=lower,
        bandwidth=bandwidth,
        percent_b=percent_b,
    )
