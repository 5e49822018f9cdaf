"""
Outbound rate-limit bookkeeping.

Tracks the request budget reported by the provider in its response
headers so callers can pause before exhausting it.
"""

import logging
from datetime import datetime, timezone
from typing import Mapping, Optional

from marketpulse.schemas.dashboard import RateLimitInfo

logger = logging.getLogger(__name__)

LOW_BUDGET_WARNING = 10


def _header_int(headers: Mapping[str, str], name: str) -> Optional[int]:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class RateLimitState:
    """Remaining request budget for one provider."""

    def __init__(self, limit: int):
        self.limit = limit
        self.remaining = limit
        self.reset_time = 0
        self.remaining_time = 0
        self.last_updated: Optional[datetime] = None

    def update_from_headers(self, headers: Optional[Mapping[str, str]], now: float) -> bool:
        """
        Refresh from `x-ratelimit-*` headers.

        Args:
            headers: Response headers (case-insensitive mapping or dict)
            now: Current time in epoch seconds

        Returns:
            True if all three headers were present and numeric
        """
        if not headers:
            return False

        remaining = _header_int(headers, "x-ratelimit-remaining")
        limit = _header_int(headers, "x-ratelimit")
        reset_time = _header_int(headers, "x-ratelimit-reset")
        if remaining is None or limit is None or reset_time is None:
            return False

        self.remaining = remaining
        self.limit = limit
        self.reset_time = reset_time
        self.remaining_time = max(0, reset_time - int(now))
        self.last_updated = datetime.fromtimestamp(now, tz=timezone.utc)

        if remaining < LOW_BUDGET_WARNING:
            logger.warning(
                f"Rate limit warning: {remaining}/{limit} requests remaining. "
                f"Resets in {self.remaining_time}s"
            )
        return True

    def wait_time(self, threshold: int) -> float:
        """Seconds to pause before the next call when the budget is at or below `threshold`."""
        if self.remaining <= threshold:
            return float(self.remaining_time + 1)
        return 0.0

    def snapshot(self) -> RateLimitInfo:
        return RateLimitInfo(
            remaining=self.remaining,
            limit=self.limit,
            reset_time=self.reset_time,
            remaining_time=self.remaining_time,
            last_updated=self.last_updated,
        )
