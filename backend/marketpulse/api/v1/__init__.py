"""
API v1 Router

All API endpoints for the dashboard frontend.
"""

from fastapi import APIRouter

from marketpulse.api.v1.endpoints import dashboard, indicators

router = APIRouter()

# Include all endpoint routers
router.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])
router.include_router(indicators.router, prefix="/indicators", tags=["Indicators"])
