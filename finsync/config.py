"""Application configuration management."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_path: str = "/data/finsync.db"

    # Server
    public_url: str = "http://localhost:3000"
    log_level: str = "info"

    # Sync cycle
    sync_interval_seconds: int = 300
    sync_window_past_days: int = 30
    sync_window_future_days: int = 60
    sync_max_distance_days: int = 90
    provider_max_results: int = 250

    # Google Calendar
    provider_integration_enabled: bool = True
    google_calendar_id: str = "primary"
    google_access_token: Optional[str] = None  # Bootstrap token; the API can replace it at runtime
    event_timezone: str = "UTC"
    default_event_duration_minutes: int = 60

    # Retention (days)
    sync_log_retention_days: int = 90

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
