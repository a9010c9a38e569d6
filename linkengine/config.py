from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Link engine settings, read from the environment (then `.env`, then the
    defaults below). Names are case-insensitive: `PIXEL_DELAY_SECONDS=0.5`
    overrides `pixel_delay_seconds`.
    """

    # Environment
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Application
    app_name: str = "Link Engine"
    app_version: str = "1.0.0"

    # Database
    database_url: str = "sqlite:///./link_engine.db"
    database_busy_timeout: int = 15  # SQLite lock wait in seconds

    # Short links
    base_url: str = "http://127.0.0.1:8000"
    short_code_strategy: str = "random"  # Options: "random", "pronounceable"
    short_code_length: int = 7
    max_retries: int = 10  # Allocation attempts before giving up

    # Cache settings
    cache_enabled: bool = True
    cache_backend: str = "redis"  # Options: "redis", "memory", "null"
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl: int = 300  # Upper bound for a cached link snapshot (seconds)

    # Visitor enrichment
    geo_backend: str = "ip_api"  # Options: "ip_api", "null"
    geo_api_url: str = "http://ip-api.com/json"
    geo_timeout_seconds: float = 2.0

    # Resolution
    pixel_delay_seconds: float = 1.2
    unique_window_hours: int = 24
    resolve_timeout_seconds: float = 5.0

    # Client addresses. X-Forwarded-For is only read when the direct peer is
    # listed here (addresses or CIDR ranges, JSON list in the environment).
    trusted_proxies: List[str] = []

    # Per-IP rate limits (fixed windows)
    rate_limit_enabled: bool = True
    rate_limit_backend: str = "redis"  # Options: "redis", "memory", "null"
    redirect_rate_limit: int = 100
    redirect_rate_window_seconds: int = 60
    create_rate_limit: int = 10
    create_rate_window_seconds: int = 900

    # Store resilience
    store_max_retries: int = 3
    store_retry_backoff: float = 0.05  # Seconds, multiplied by attempt number

    # Expiry sweeper
    sweep_interval_seconds: int = 60

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Create settings instance
settings = Settings()
