"""
Dashboard API Endpoints

Read-only views of the latest dashboard snapshot.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from marketpulse.schemas.dashboard import CoinSnapshot, DashboardSnapshot
from marketpulse.services.dashboard import get_dashboard_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=DashboardSnapshot, response_model_exclude={"rate_limit"})
async def get_dashboard():
    """
    Latest dashboard snapshot.

    Includes crypto assets with indicators, index quotes, trending coins
    and the Fear & Greed Index. Rate-limit details are served by /health.
    """
    return get_dashboard_service().snapshot


@router.get("/assets/{coin_id}", response_model=CoinSnapshot)
async def get_asset(
    coin_id: str,
    top: Optional[int] = Query(
        default=None, ge=1, le=50, description="Keep only the N strongest levels per side"
    ),
):
    """Snapshot of one tracked coin."""
    coin_id = coin_id.lower().strip()
    asset = get_dashboard_service().snapshot.assets.get(coin_id)
    if asset is None:
        raise HTTPException(status_code=404, detail=f"Asset not tracked: {coin_id}")

    if top is not None and asset.indicators is not None:
        asset = asset.model_copy(update={"indicators": asset.indicators.top_levels(top)})
    return asset
