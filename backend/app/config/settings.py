"""
Application Configuration

This module provides type-safe configuration loading using Pydantic settings.
Environment variables are loaded from .env file and validated.

Usage:
    from app.config import settings

    # Access settings
    db_url = settings.POSTGRES_URL
    max_days = settings.SNOOZE_MAX_DAYS
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.enums.api import RateLimitType


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Revision Planner"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "planner"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "revision_planner"

    @property
    def POSTGRES_URL(self) -> str:
        """Async PostgreSQL connection URL."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Snooze bounds (inclusive)
    SNOOZE_MIN_DAYS: int = 1
    SNOOZE_MAX_DAYS: int = 30

    # Revision frequency profiles (day offsets from the first-studied date)
    FREQUENCY_LIGHT: list[int] = [7, 14, 28]
    FREQUENCY_STANDARD: list[int] = [7, 14, 21, 28]
    FREQUENCY_INTENSIVE: list[int] = [3, 7, 14, 21, 28]

    # importance + difficulty thresholds for profile selection
    FREQUENCY_LIGHT_MAX_SCORE: int = 4
    FREQUENCY_STANDARD_MAX_SCORE: int = 7

    # Metrics windows in days
    WINDOW_DAYS_WEEK: int = 7
    WINDOW_DAYS_MONTH: int = 30
    WINDOW_DAYS_ALL: int = 3650

    # Leaderboard batch
    LEADERBOARD_MAX_CONCURRENCY: int = 8
    LEADERBOARD_BATCH_TIMEOUT_SECONDS: float = 120.0
    LEADERBOARD_SCHEDULER_ENABLED: bool = True
    LEADERBOARD_RECOMPUTE_HOUR: int = 2
    LEADERBOARD_RECOMPUTE_MINUTE: int = 0

    # Dashboard
    UPCOMING_FORECAST_DAYS: int = 7

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "100/minute"
    RATE_LIMIT_ANALYTICS: str = "30/minute"
    RATE_LIMIT_BATCH: str = "5/minute"

    def get_rate_limit(self, rate_limit_type: RateLimitType) -> str:
        """Return the configured limit string for an endpoint class."""
        limits = {
            RateLimitType.DEFAULT: self.RATE_LIMIT_DEFAULT,
            RateLimitType.ANALYTICS: self.RATE_LIMIT_ANALYTICS,
            RateLimitType.BATCH: self.RATE_LIMIT_BATCH,
        }
        return limits.get(rate_limit_type, self.RATE_LIMIT_DEFAULT)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@lru_cache()
def load_yaml_config() -> dict[str, Any]:
    """Load application configuration from config/default.yaml."""
    config_path = Path(__file__).parent.parent.parent.parent / "config" / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


yaml_config: dict[str, Any] = load_yaml_config()
