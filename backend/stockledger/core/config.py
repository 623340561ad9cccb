"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly.
"""

import logging
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database
    database_url: str = "sqlite:///./data/stockledger.db"
    # Ignored for SQLite; its transactions start with BEGIN IMMEDIATE instead
    db_isolation_level: str = "READ COMMITTED"
    # Seconds a SQLite transaction waits for another writer to finish
    sqlite_lock_timeout: float = 30.0

    # Security - tokens are issued elsewhere, we only verify them
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 240

    # Server
    debug: bool = False
    log_level: str = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"
    default_page_size: int = 20
    max_page_size: int = 500

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_read: str = "120/minute"
    rate_limit_write: str = "30/minute"

    # Ledger
    quantity_scale: int = 3  # DECIMAL(18, 3)
    count_reference_prefix: str = "KK"
    adjustment_reference_prefix: str = "ADJ"
    allow_negative_counted_qty: bool = False

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("quantity_scale")
    @classmethod
    def validate_quantity_scale(cls, v: int) -> int:
        if not 0 <= v <= 6:
            raise ValueError("quantity_scale must be between 0 and 6")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
