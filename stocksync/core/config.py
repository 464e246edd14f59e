# stocksync/core/config.py

import os
from functools import lru_cache
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./stocksync.db"

    # Security
    SECRET_KEY: str
    ENCRYPTION_KEY: str
    WEBHOOK_SECRET: str = ""  # Used when a store has no secret of its own

    # Basic Auth for dashboard routes
    BASIC_AUTH_USERNAME: str = "admin"
    BASIC_AUTH_PASSWORD: Optional[str] = None

    # Webhook / sync behaviour
    WEBHOOK_TOLERANCE_SECONDS: int = 300
    SYNC_COOLDOWN_SECONDS: int = 300
    COOLDOWN_BACKEND: str = "memory"  # 'memory' or 'database'
    COOLDOWN_PURGE_MINUTES: int = 10
    WEBHOOK_LOG_DEFAULT_LIMIT: int = 50

    # Remote stores
    REMOTE_TIMEOUT_SECONDS: float = 30.0
    STOCK_CONNECTOR_NAMESPACE: str = "wcsc/v1"
    COMMERCE_API_NAMESPACE: str = "wc/v3"
    USER_AGENT: str = "StockSync/1.0"

    # Scheduled catalog pulls
    CATALOG_SYNC_ENABLED: bool = False
    CATALOG_SYNC_SCHEDULE: str = "0 * * * *"  # Every hour

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def async_database_url(self) -> str:
        # Convert postgresql:// to postgresql+asyncpg:// for async support
        if self.DATABASE_URL.startswith('postgresql://'):
            return self.DATABASE_URL.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return self.DATABASE_URL


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
