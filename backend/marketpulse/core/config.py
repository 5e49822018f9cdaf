"""
Application Configuration

All settings loaded from environment variables.
"""

from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

from marketpulse.schemas.indicators import ClusterOptions, IndicatorParams


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "MarketPulse"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 3000

    # CORS (Frontend URL)
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Polling
    update_interval_ms: int = 600_000
    enable_polling: bool = True

    # CoinGecko
    coingecko_api_key: Optional[str] = None
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    rate_limit_window_s: int = 60
    api_rate_limit_enabled: bool = True
    api_rate_limit: Optional[int] = None
    max_retries: int = 2
    retry_delay_s: float = 10.0
    request_timeout_s: float = 15.0

    # Other sources
    fear_greed_url: str = "https://api.alternative.me/fng/"
    tracked_coins: list[str] = ["bitcoin", "ethereum"]
    tracked_indices: list[str] = ["SPY", "^GSPC"]

    # Cache (seconds)
    redis_url: str = "redis://localhost:6379"
    redis_enabled: bool = True
    cache_ttl_s: int = 900
    market_cache_ttl_s: int = 300
    history_cache_ttl_s: int = 3600
    trending_cache_ttl_s: int = 300
    fear_greed_cache_ttl_s: int = 3600
    yahoo_cache_ttl_s: int = 900

    # Indicator defaults
    sma_period: int = 50
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bb_period: int = 20
    bb_std_dev: float = 2.0
    swing_left_bars: int = 3
    swing_right_bars: int = 3
    level_threshold: float = 0.01
    level_volume_weighted: bool = True
    level_time_decay: bool = True
    level_half_life_days: float = 30.0

    @property
    def coingecko_rate_limit(self) -> int:
        """Requests per window: higher with an API key."""
        return 30 if self.coingecko_api_key else 8

    @property
    def inbound_rate_limit(self) -> int:
        """Requests per window allowed on /api routes: the CoinGecko budget unless set."""
        return self.api_rate_limit or self.coingecko_rate_limit

    @property
    def stale_ttl_s(self) -> int:
        """How long cached payloads stay available as a stale fallback."""
        return self.cache_ttl_s * 4

    def indicator_params(self) -> IndicatorParams:
        """Build the default IndicatorParams from settings."""
        return IndicatorParams(
            sma_period=self.sma_period,
            rsi_period=self.rsi_period,
            macd_fast=self.macd_fast,
            macd_slow=self.macd_slow,
            macd_signal=self.macd_signal,
            bb_period=self.bb_period,
            bb_std_dev=self.bb_std_dev,
            swing_left_bars=self.swing_left_bars,
            swing_right_bars=self.swing_right_bars,
            cluster=ClusterOptions(
                threshold=self.level_threshold,
                volume_weighted=self.level_volume_weighted,
                time_decay=self.level_time_decay,
                half_life_ms=int(self.level_half_life_days * 24 * 60 * 60 * 1000),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
