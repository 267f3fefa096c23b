"""Notification, history and logging configuration settings."""

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationSettings(BaseSettings):
    """Alert thresholds and delivery switch."""

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_MONITOR_NOTIFICATIONS__",
        case_sensitive=False,
    )

    enabled: bool = Field(default=True, description="Emit desktop/log alerts")

    warning_threshold: int = Field(
        default=70,
        ge=50,
        le=99,
        description="Utilization percentage that raises a warning",
    )

    critical_threshold: int = Field(
        default=90,
        ge=50,
        le=99,
        description="Utilization percentage that raises a critical alert",
    )

    @model_validator(mode="after")
    def check_threshold_order(self) -> "NotificationSettings":
        """Warning must stay strictly below critical."""
        if self.warning_threshold >= self.critical_threshold:
            raise ValueError(
                f"warning_threshold ({self.warning_threshold}) must be less than "
                f"critical_threshold ({self.critical_threshold})"
            )
        return self


class HistorySettings(BaseSettings):
    """Bounded sample ledger settings."""

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_MONITOR_HISTORY__",
        case_sensitive=False,
    )

    max_entries: int = Field(
        default=1000,
        ge=10,
        le=100_000,
        description="Samples kept before the oldest are evicted",
    )

    persist: bool = Field(
        default=True,
        description="Keep the ledger in a JSON file between runs",
    )

    path: Path | None = Field(
        default=None,
        description="History file (defaults to the user data dir)",
    )


class LoggingSettings(BaseSettings):
    """structlog output settings."""

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_MONITOR_LOGGING__",
        case_sensitive=False,
    )

    level: str = Field(default="INFO", description="Root log level")
    json_logs: bool = Field(default=False, description="Render JSON lines")
    file: Path | None = Field(default=None, description="Optional JSON log file")
