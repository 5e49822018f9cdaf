"""
Dashboard Service

CONTRACT:
    Input:  tracked coins and index symbols (from settings)
    Output: DashboardSnapshot

RESPONSIBILITIES:
    - Fetch every source concurrently
    - Run the indicator engine on each coin's price history
    - Keep the previous value of any source that fails
    - Schedule refreshes around the provider's rate limit
"""

from marketpulse.services.dashboard.service import (
    DashboardService,
    get_dashboard_service,
    next_update_delay,
)
from marketpulse.services.dashboard.poller import (
    DashboardPoller,
    get_dashboard_poller,
    start_dashboard_poller,
    stop_dashboard_poller,
)

__all__ = [
    "DashboardService",
    "get_dashboard_service",
    "next_update_delay",
    "DashboardPoller",
    "get_dashboard_poller",
    "start_dashboard_poller",
    "stop_dashboard_poller",
]
