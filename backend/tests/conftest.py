"""
Shared fixtures for the MarketPulse backend tests.
"""

import os

# Settings are read once at import time: keep tests offline
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENABLE_POLLING", "false")
os.environ.setdefault("API_RATE_LIMIT_ENABLED", "false")

import pytest

from marketpulse.schemas.market import PricePoint, VolumePoint
from marketpulse.services.cache.redis_client import ResponseCache

MINUTE_MS = 60_000
BASE_TS = 1_700_000_000_000


def make_series(prices, start=BASE_TS, step=MINUTE_MS):
    """Build an ascending PricePoint series from raw prices."""
    return [PricePoint(timestamp=start + i * step, price=p) for i, p in enumerate(prices)]


def make_volumes(volumes, start=BASE_TS, step=MINUTE_MS):
    return [VolumePoint(timestamp=start + i * step, volume=v) for i, v in enumerate(volumes)]


class FakeClock:
    """Manually advanced clock in epoch seconds."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    """ResponseCache with no Redis and a controllable clock."""
    return ResponseCache(redis_client=None, stale_ttl=4 * 3600, clock=clock)


@pytest.fixture
def zigzag_prices():
    """Alternating series with swing highs at 1,3,5,7 and lows at 2,4,6,8."""
    return make_series([100, 101, 99, 102, 98, 103, 97, 104, 96, 105])
