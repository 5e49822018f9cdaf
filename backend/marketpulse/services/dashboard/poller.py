"""
Dashboard Poller

Background task that refreshes the dashboard on an adaptive schedule.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from marketpulse.core.config import settings
from marketpulse.services.dashboard.service import (
    DashboardService,
    get_dashboard_service,
    next_update_delay,
)

logger = logging.getLogger(__name__)


class DashboardPoller:
    """
    Refreshes a DashboardService until stopped.

    The first refresh runs immediately; later ones are spaced by
    `next_update_delay`.
    """

    def __init__(
        self,
        service: Optional[DashboardService] = None,
        interval_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.service = service or get_dashboard_service()
        self.interval_ms = interval_ms or settings.update_interval_ms
        self._sleep = sleep
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> bool:
        """Start the polling loop."""
        if self._running:
            logger.warning("Dashboard poller already running")
            return True

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Dashboard poller started (interval {self.interval_ms}ms)")
        return True

    async def stop(self) -> None:
        """Stop the polling loop."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Dashboard poller stopped")

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.service.refresh()
                delay_ms = next_update_delay(
                    self.interval_ms,
                    self.service.last_refresh_failed,
                    self.service.rate_limit,
                )
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Dashboard poll error: {e}")
                delay_ms = next_update_delay(self.interval_ms, True, self.service.rate_limit)

            logger.info(f"Next dashboard update in {delay_ms / 1000:.0f} seconds")
            await self._sleep(delay_ms / 1000)


# Singleton instance
_poller: Optional[DashboardPoller] = None


def get_dashboard_poller() -> DashboardPoller:
    """Get the dashboard poller singleton."""
    global _poller
    if _poller is None:
        _poller = DashboardPoller()
    return _poller


async def start_dashboard_poller() -> DashboardPoller:
    """Start the dashboard poller."""
    poller = get_dashboard_poller()
    await poller.start()
    return poller


async def stop_dashboard_poller() -> None:
    """Stop the dashboard poller."""
    global _poller
    if _poller:
        await _poller.stop()
        _poller = None
