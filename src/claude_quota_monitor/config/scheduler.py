"""Scheduler configuration settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    """
    Configuration settings for the adaptive polling scheduler.

    Settings can be configured via environment variables with
    QUOTA_MONITOR_SCHEDULER__ prefix. User preferences override
    refresh_interval and adaptive_refresh at runtime.
    """

    refresh_interval: int = Field(
        default=60,
        ge=15,
        le=3600,
        description="Base polling interval in seconds",
    )

    adaptive_refresh: bool = Field(
        default=True,
        description="Poll faster when utilization reaches warning or critical",
    )

    min_fetch_interval: float = Field(
        default=30.0,
        ge=0.0,
        description="Non-forced fetches younger than this many seconds reuse the cache",
    )

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_MONITOR_SCHEDULER__",
        case_sensitive=False,
    )
