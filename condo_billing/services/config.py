"""Application configuration from environment variables."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./condo_billing.db",
        description="SQLAlchemy async database URL",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/billing.log", description="Log file path")

    # Distribution
    dues_lookahead_days: int = Field(
        default=15,
        ge=0,
        description="Days before a future dues period starts that it becomes payable",
    )

    # Aggregation
    max_lookback_years: int = Field(
        default=5,
        ge=0,
        description="Prior fiscal years the dues slow path may scan",
    )
    max_lookback_periods: int = Field(
        default=24,
        ge=1,
        description="Open water bills read per unit, newest first",
    )

    # Reconciliation
    reconcile_tolerance: int = Field(
        default=1,
        ge=0,
        description="Variance in minor units tolerated before a bill is reported",
    )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
