"""Resilience layer configuration settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Resilience layer configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "json"
    admin_api_port: int = 8010

    # Default retry bucket
    default_retry_max_retries: int = Field(default=3, ge=0, le=20)
    default_retry_wait_seconds: float = Field(default=1.0, ge=0.0)
    default_retry_max_duration_seconds: float | None = None

    # Default semaphore bulkhead bucket
    default_bulkhead_max_concurrent_calls: int = Field(default=25, ge=1)
    default_bulkhead_max_wait_seconds: float = Field(default=0.5, ge=0.0)

    # Thread pool bulkhead defaults
    bulkhead_core_thread_pool_size: int = Field(default=10, ge=1)
    bulkhead_max_thread_pool_size: int = Field(default=30, ge=1)
    bulkhead_queue_capacity: int = Field(default=100, ge=0)
    bulkhead_keep_alive_seconds: float = Field(default=20.0, ge=0.0)

    # Scale applied to bulkhead utilization (100.0 yields a percentage)
    bulkhead_utilization_scale: float = 100.0

    # Bound for per-service live unit caches; None keeps every unit
    max_live_units: int | None = Field(default=None, ge=1)

    # Monitoring Configuration
    enable_metrics: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
