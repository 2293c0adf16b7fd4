"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables and .env file.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="locktime", description="Application name")
    debug: bool = Field(default=False, description="Echo SQL statements")
    log_level: str = Field(default="INFO", description="Logging level")

    # Database settings
    database_url: str = Field(
        default="sqlite:///./locktime.db",
        description="SQLAlchemy connection URL",
    )

    # Timer settings
    timer_tick_seconds: int = Field(
        default=1,
        description="Cadence of countdown recomputation in seconds",
    )

    # Reporting settings
    stats_windows_days: Tuple[int, ...] = Field(
        default=(7, 30),
        description="Trailing windows (days) for total locked time",
    )
    recent_items_limit: int = Field(
        default=3,
        description="Number of recent locks/notifications on the dashboard",
    )

    # Directory settings
    user_search_limit: int = Field(
        default=10,
        description="Maximum users returned by a partner search",
    )
    user_search_min_length: int = Field(
        default=2,
        description="Shortest query a partner search runs",
    )

    # Command settings
    idempotency_ttl_hours: int = Field(
        default=24,
        description="How long completed command responses stay cached",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings instance (cached for performance)

    Example:
        >>> settings = get_settings()
        >>> settings.stats_windows_days
        (7, 30)
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
