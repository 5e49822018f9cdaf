"""
Indicator API Endpoints

Endpoints for technical indicator calculations.
"""

import logging

from fastapi import APIRouter, HTTPException

from marketpulse.schemas.indicators import AnalysisRequest, IndicatorSet
from marketpulse.services.base import ValidationError
from marketpulse.services.indicators import get_indicator_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/analyze", response_model=IndicatorSet)
async def analyze_series(request: AnalysisRequest):
    """
    Run the indicator engine on a caller-supplied series.

    Returns SMA, RSI, MACD, Bollinger Bands and support/resistance levels
    for the last point of the series. Fields needing more history than
    supplied are null.
    """
    service = get_indicator_service()
    try:
        return await service.execute(request)
    except ValidationError as e:
        logger.warning(f"Rejected analysis request: {e.message}")
        raise HTTPException(status_code=422, detail=e.message)
