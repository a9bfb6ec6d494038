"""
Application Settings for the Quota Ledger

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    QUOTA_* values control the optimistic-lock retry loop of the
    annual quota service. They are read once and handed to the service
    as an explicit RetryPolicy.
    """

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Database Configuration (SQLModel/SQLAlchemy)
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    # Quota Ledger Configuration
    quota_max_retries: int = 3
    quota_retry_base_delay_ms: int = 50
    free_plan_name: str = "free"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("quota_max_retries")
    @classmethod
    def validate_max_retries(cls, value: int) -> int:
        """At least one attempt is always made."""
        if value < 1:
            raise ValueError("QUOTA_MAX_RETRIES must be >= 1")
        return value

    @field_validator("quota_retry_base_delay_ms")
    @classmethod
    def validate_base_delay(cls, value: int) -> int:
        if value < 0:
            raise ValueError("QUOTA_RETRY_BASE_DELAY_MS must be >= 0")
        return value

    @property
    def async_database_url(self) -> Optional[str]:
        """DATABASE_URL rewritten for the asyncpg driver."""
        database_url = self.database_url
        if not database_url:
            return None
        if database_url.startswith("postgresql://"):
            return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if database_url.startswith("postgres://"):
            return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
        return database_url

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
