"""Application configuration settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = ".env"
ENV_FILE_ENCODING = "utf-8"


class Settings(BaseSettings):
    """Delivery engine configuration values loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding=ENV_FILE_ENCODING,
        extra="ignore",
    )

    database_url: str = Field(
        default="sqlite:///./chat_notifier.db",
        description="Database connection URL used by SQLAlchemy when the relational store is enabled",
        min_length=1,
    )
    store_backend: Literal["memory", "sqlalchemy"] = Field(
        default="memory",
        description="Persistence used for notification records, recipients and workspaces",
    )
    app_timezone: str = Field(
        default="UTC",
        description="Timezone used for server-side schedule decisions such as the weekly digest day",
    )

    channel_max_retries: int = Field(default=3, ge=0)
    channel_initial_delay_ms: int = Field(default=1000, gt=0)
    channel_backoff_multiplier: float = Field(default=2.0, ge=1.0)
    channel_max_delay_ms: int = Field(default=30000, gt=0)
    default_rate_limit_retry_after_seconds: int = Field(
        default=60,
        gt=0,
        description="Retry-after applied when the platform rate limits without a hint",
    )

    record_max_retries: int = Field(default=3, ge=1)
    retry_sweep_limit: int = Field(default=100, gt=0)

    workspace_degraded_threshold: int = Field(default=3, gt=0)
    workspace_unhealthy_threshold: int = Field(default=10, gt=0)

    batch_max_entries: int = Field(default=50, gt=0)
    task_thread_limit: int = Field(default=1000, gt=0)
    always_immediate_types: list[str] = Field(
        default_factory=lambda: ["task_assigned", "comment_mention"],
        description="Notification types that bypass batching",
    )

    notification_concurrency: int = Field(default=10, gt=0)
    batch_concurrency: int = Field(default=5, gt=0)
    digest_concurrency: int = Field(default=5, gt=0)
    surface_concurrency: int = Field(default=10, gt=0)
    analytics_concurrency: int = Field(default=5, gt=0)
    notification_debounce_ms: int = Field(default=100, ge=0)
    batch_delay_ms: int = Field(default=1000, ge=0)
    surface_debounce_ms: int = Field(default=500, ge=0)

    weekly_digest_weekday: int = Field(
        default=0, ge=0, le=6, description="Weekday (Monday=0) on which weekly digests go out"
    )
    sweep_interval_seconds: int = Field(default=60, gt=0)

    @model_validator(mode="after")
    def _validate_thresholds(self) -> "Settings":
        if self.workspace_unhealthy_threshold < self.workspace_degraded_threshold:
            raise ValueError(
                "WORKSPACE_UNHEALTHY_THRESHOLD must be greater than or equal to "
                "WORKSPACE_DEGRADED_THRESHOLD"
            )
        if self.channel_max_delay_ms < self.channel_initial_delay_ms:
            raise ValueError(
                "CHANNEL_MAX_DELAY_MS must be greater than or equal to CHANNEL_INITIAL_DELAY_MS"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the settings cache to force reloading from the environment."""

    get_settings.cache_clear()


__all__ = ["Settings", "get_settings", "reset_settings_cache"]
