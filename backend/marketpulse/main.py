"""
MarketPulse Backend - FastAPI Application

Main entry point for the backend API.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketpulse.core.config import settings
from marketpulse.api.v1 import router as api_v1_router
from marketpulse.middleware.rate_limiter import RequestRateLimitMiddleware

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

START_TIME = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")

    # Initialize Redis cache
    from marketpulse.services.cache.redis_client import init_redis, close_redis
    redis_client = await init_redis()
    if redis_client:
        logger.info("Redis cache connected")
    else:
        logger.info("Redis unavailable - using in-memory cache")

    # Start dashboard poller
    from marketpulse.services.dashboard import start_dashboard_poller, stop_dashboard_poller
    if settings.enable_polling:
        poller = await start_dashboard_poller()
    else:
        poller = None
        logger.info("Dashboard poller disabled (enable_polling=false)")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if poller:
        await stop_dashboard_poller()

    from marketpulse.services.data_ingestion import get_coingecko_client, get_fear_greed_client
    await get_coingecko_client().close()
    await get_fear_greed_client().close()
    await close_redis()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    MarketPulse Market Dashboard API

    ## Architecture
    - **Data Ingestion**: CoinGecko, Yahoo Finance, Fear & Greed Index
    - **Indicator Engine**: SMA, RSI, MACD, Bollinger Bands (pure Python/NumPy)
    - **Level Engine**: Swing points clustered into support/resistance levels
    - **Dashboard**: Periodic refresh with per-source cached fallback
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Inbound limit on /api routes, sized to the upstream CoinGecko budget
app.add_middleware(
    RequestRateLimitMiddleware,
    limit=settings.inbound_rate_limit,
    window_s=settings.rate_limit_window_s,
    enabled=settings.api_rate_limit_enabled,
)

# CORS middleware - allow local frontend ports
cors_origins = [
    "http://localhost:3000",
    "http://localhost:3001",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:3001",
]
# Add any additional origins from settings
if settings.allowed_origins:
    cors_origins.extend([o for o in settings.allowed_origins if o not in cors_origins])

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint with rate-limit and cache state."""
    from marketpulse.services.cache import get_response_cache
    from marketpulse.services.dashboard import get_dashboard_service

    rate_limit = get_dashboard_service().rate_limit.snapshot()
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "uptime": time.time() - START_TIME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "rate_limit": {
            **rate_limit.model_dump(mode="json"),
            "window_s": settings.rate_limit_window_s,
        },
        "cache": get_response_cache().stats(),
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "MarketPulse Backend API",
        "docs": "/docs",
        "health": "/health",
    }
