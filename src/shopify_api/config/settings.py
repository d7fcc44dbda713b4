"""Configuration management using Pydantic Settings.

Loads configuration from environment variables with .env file support.
"""

from typing import Optional

from pydantic_settings import BaseSettings

from shopify_api.config.constants import (
    AIRTABLE_API_URL,
    AIRTABLE_RATE_LIMIT_BACKOFF_SECONDS,
    DEFAULT_AIRTABLE_TABLE,
    RETRY_CRON,
    STAGE_TIMEOUT_SECONDS,
    SYNC_CRON,
)


class Settings(BaseSettings):
    """Application configuration."""

    # Shopify Admin API Configuration
    shopify_shop_name: Optional[str] = None
    shopify_access_token: Optional[str] = None
    shopify_api_version: str = "2024-10"

    # Airtable Configuration
    airtable_base_id: Optional[str] = None
    airtable_api_key: Optional[str] = None
    airtable_table_name: str = DEFAULT_AIRTABLE_TABLE
    airtable_api_url: str = AIRTABLE_API_URL

    # Intermediate order store
    database_url: str = "sqlite+aiosqlite:///./orders.db"

    # Scheduler Configuration
    sync_cron: str = SYNC_CRON
    retry_cron: str = RETRY_CRON
    scheduler_timezone: str = "UTC"
    scheduler_autostart: bool = True

    # Sync robustness
    stage_timeout_seconds: float = STAGE_TIMEOUT_SECONDS
    airtable_rate_limit_retries: int = 0
    airtable_rate_limit_backoff_seconds: float = AIRTABLE_RATE_LIMIT_BACKOFF_SECONDS

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 9090
    log_level: str = "INFO"
    environment: str = "development"

    # GlitchTip Error Monitoring
    glitchtip_dsn: Optional[str] = None

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Create a global settings instance
settings = Settings()
