"""
Support/Resistance Detection

Swing-point detection and volume/recency weighted clustering of swing
points into price levels. No wall-clock reads: the reference time for
decay is always passed in by the caller.
"""

import math
from typing import Mapping, Optional, Sequence, Union

from marketpulse.schemas.indicators import (
    ClusterOptions,
    LevelType,
    PriceLevel,
    SwingPoint,
    THIRTY_DAYS_MS,
)
from marketpulse.schemas.market import PricePoint, VolumePoint
from marketpulse.services.base import MalformedSeriesError
from marketpulse.services.indicators.calculations import check_period

VolumeLookup = Union[Mapping[int, float], Sequence[VolumePoint]]


# =============================================================================
# SWING POINTS
# =============================================================================


def _is_swing_high(prices: Sequence[PricePoint], i: int, left: int, right: int) -> bool:
    current = prices[i].price
    for j in range(i - left, i):
        if prices[j].price > current:
            return False
    for j in range(i + 1, i + right + 1):
        if prices[j].price >= current:
            return False
    return True


def _is_swing_low(prices: Sequence[PricePoint], i: int, left: int, right: int) -> bool:
    current = prices[i].price
    for j in range(i - left, i):
        if prices[j].price < current:
            return False
    for j in range(i + 1, i + right + 1):
        if prices[j].price <= current:
            return False
    return True


def find_swing_highs_and_lows(
    prices: Sequence[PricePoint], left_bars: int = 3, right_bars: int = 3
) -> tuple[list[SwingPoint], list[SwingPoint]]:
    """
    Flag local extrema using a left/right window comparison.

    Only indices with a full window on both sides are candidates. A tie
    on the right side disqualifies a candidate; a tie on the left does not,
    so on a flat top the last bar of the plateau is the one flagged.

    Returns: (swing_highs, swing_lows), each in index order.
    """
    left_bars = check_period(left_bars, "left_bars")
    right_bars = check_period(right_bars, "right_bars")

    swing_highs: list[SwingPoint] = []
    swing_lows: list[SwingPoint] = []

    for i in range(left_bars, len(prices) - right_bars):
        point = prices[i]
        if _is_swing_high(prices, i, left_bars, right_bars):
            swing_highs.append(
                SwingPoint(timestamp=point.timestamp, price=point.price, type=LevelType.HIGH)
            )
        elif _is_swing_low(prices, i, left_bars, right_bars):
            swing_lows.append(
                SwingPoint(timestamp=point.timestamp, price=point.price, type=LevelType.LOW)
            )

    return swing_highs, swing_lows


# =============================================================================
# CLUSTERING
# =============================================================================


def _volume_map(volumes: VolumeLookup) -> Mapping[int, float]:
    if isinstance(volumes, Mapping):
        return volumes
    return {v.timestamp: v.volume for v in volumes}


def attach_volume(
    points: Sequence[SwingPoint], volumes: VolumeLookup
) -> list[SwingPoint]:
    """Copy each point with the volume traded at its exact timestamp (0 if none)."""
    by_timestamp = _volume_map(volumes)
    attached = []
    for p in points:
        try:
            volume = float(by_timestamp.get(p.timestamp, 0.0))
        except (TypeError, ValueError):
            raise MalformedSeriesError(f"volume at {p.timestamp} is not numeric")
        if not math.isfinite(volume) or volume < 0:
            raise MalformedSeriesError(
                f"volume at {p.timestamp} must be finite and >= 0, got {volume}"
            )
        attached.append(p.model_copy(update={"volume": volume}))
    return attached


def time_decay(timestamp: int, now: int, half_life_ms: int = THIRTY_DAYS_MS) -> float:
    """Exponential half-life decay: 1.0 at `now`, 0.5 one half-life earlier."""
    if half_life_ms <= 0:
        raise MalformedSeriesError(f"half_life_ms must be > 0, got {half_life_ms}")
    try:
        return 0.5 ** ((now - timestamp) / half_life_ms)
    except OverflowError:
        raise MalformedSeriesError(
            f"now={now} lies too far before timestamp {timestamp} "
            f"for half_life_ms={half_life_ms}"
        )


def _build_level(
    group: list[SwingPoint], options: ClusterOptions, now: Optional[int]
) -> PriceLevel:
    total_value = 0.0
    total_weight = 0.0
    total_volume = 0.0
    max_volume = 0.0

    for level in group:
        decay = (
            time_decay(level.timestamp, now, options.half_life_ms)
            if options.time_decay
            else 1.0
        )
        if options.volume_weighted:
            weight = level.volume * decay
        else:
            weight = decay

        total_value += level.price * weight
        total_weight += weight
        total_volume += level.volume
        max_volume = max(max_volume, level.volume)

    if not (math.isfinite(total_value) and math.isfinite(total_weight)):
        raise MalformedSeriesError("level weights overflowed; check `now` and half_life_ms")

    mean_price = sum(level.price for level in group) / len(group)
    if options.volume_weighted and total_weight > 0:
        price = total_value / total_weight
    else:
        price = mean_price

    touches = len(group)
    volume_factor = math.log10(max_volume + 1) * 0.5 + 1
    confidence = 1.0 if options.volume_weighted else 0.8
    strength = math.sqrt(touches) * volume_factor * confidence

    timestamps = sorted(level.timestamp for level in group)

    return PriceLevel(
        price=price,
        strength=strength,
        touches=touches,
        type=group[0].type,
        volume=total_volume,
        max_volume=max_volume,
        first_touch=timestamps[0],
        last_touch=timestamps[-1],
        timestamps=timestamps,
    )


def group_price_levels(
    levels: Sequence[SwingPoint],
    options: Optional[ClusterOptions] = None,
    *,
    now: Optional[int] = None,
    volumes: Optional[VolumeLookup] = None,
) -> list[PriceLevel]:
    """
    Cluster swing points of one type into support/resistance levels.

    Points are sorted by price and grouped greedily: a point joins the
    current group when it lies within `threshold` of the most recently
    added member, so a group may span more than `threshold` from its
    first member.

    Args:
        levels: Swing points, all of the same type
        options: Clustering tunables (defaults to ClusterOptions())
        now: Reference time in epoch ms; required when time decay is on
        volumes: Optional volume lookup attached before clustering

    Returns:
        Levels sorted by descending strength
    """
    options = options or ClusterOptions()
    if not levels:
        return []
    if options.time_decay and now is None:
        raise MalformedSeriesError("`now` is required when time decay is enabled")

    points = attach_volume(levels, volumes) if volumes is not None else list(levels)
    ordered = sorted(points, key=lambda p: p.price)

    groups: list[list[SwingPoint]] = []
    current = [ordered[0]]
    for level in ordered[1:]:
        last = current[-1]
        if last.price == 0:
            joins = level.price == 0
        else:
            joins = abs((level.price - last.price) / last.price) <= options.threshold
        if joins:
            current.append(level)
        else:
            groups.append(current)
            current = [level]
    groups.append(current)

    result = [_build_level(group, options, now) for group in groups]
    result.sort(key=lambda lvl: lvl.strength, reverse=True)
    return result
