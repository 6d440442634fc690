from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline configuration, read from ANALYTICS_* environment variables."""

    db_path: str = "data/analytics.db"

    primary_queue_name: str = "mainqueue"
    backup_queue_name: str = "backupqueue"
    poison_queue_name: str = "poisonqueue"

    # Enrichment is disabled when no key is set
    maps_key: Optional[str] = None
    maps_base_url: str = "https://atlas.microsoft.com/search/address/reverse/json"
    geocode_timeout_seconds: float = Field(5.0, gt=0)

    visibility_timeout_seconds: float = Field(30.0, gt=0)
    max_dequeue_count: int = Field(5, ge=1)
    retry_delay_seconds: float = Field(1.0, ge=0)
    poll_interval_seconds: float = Field(1.0, gt=0)
    consumer_enabled: bool = True

    default_window_days: int = Field(7, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="ANALYTICS_",
        env_file=".env",
        extra="ignore",
    )


def get_settings() -> Settings:
    return Settings()
