"""Settings configuration for the quota monitor."""

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from claude_quota_monitor.exceptions import ConfigurationError

from .auth import AuthSettings
from .discovery import find_toml_config_file
from .notifications import HistorySettings, LoggingSettings, NotificationSettings
from .scheduler import SchedulerSettings


__all__ = [
    "Settings",
    "get_settings",
]


def _coerce_settings(value: Any, settings_class: type) -> Any:
    """Coerce value to settings class instance.

    Handles: None → default, dict → instance, passthrough existing instances.
    """
    if value is None:
        return settings_class()
    if isinstance(value, settings_class):
        return value
    if isinstance(value, dict):
        return settings_class(**value)
    if hasattr(value, "model_dump"):
        return settings_class(**value.model_dump())
    return value


class Settings(BaseSettings):
    """
    Configuration settings for the quota monitor.

    Settings are loaded from environment variables, .env files, and TOML configuration files.
    Environment variables take precedence over .env file values.
    TOML configuration files are loaded in the following order:
    1. .claude_quota_monitor.toml in current directory
    2. claude_quota_monitor.toml in current directory
    3. config.toml in user config directory/claude-quota-monitor/ (platform-specific)
    """

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_MONITOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    auth: AuthSettings = Field(
        default_factory=AuthSettings,
        description="Credential source and OAuth configuration",
    )

    scheduler: SchedulerSettings = Field(
        default_factory=SchedulerSettings,
        description="Polling scheduler configuration",
    )

    notifications: NotificationSettings = Field(
        default_factory=NotificationSettings,
        description="Alert thresholds and delivery",
    )

    history: HistorySettings = Field(
        default_factory=HistorySettings,
        description="Sample ledger configuration",
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Log output configuration",
    )

    @field_validator("auth", mode="before")
    @classmethod
    def validate_auth(cls, v: Any) -> Any:
        return _coerce_settings(v, AuthSettings)

    @field_validator("scheduler", mode="before")
    @classmethod
    def validate_scheduler(cls, v: Any) -> Any:
        return _coerce_settings(v, SchedulerSettings)

    @field_validator("notifications", mode="before")
    @classmethod
    def validate_notifications(cls, v: Any) -> Any:
        return _coerce_settings(v, NotificationSettings)

    @field_validator("history", mode="before")
    @classmethod
    def validate_history(cls, v: Any) -> Any:
        return _coerce_settings(v, HistorySettings)

    @field_validator("logging", mode="before")
    @classmethod
    def validate_logging(cls, v: Any) -> Any:
        return _coerce_settings(v, LoggingSettings)

    @classmethod
    def load_toml_config(cls, toml_path: Path) -> dict[str, Any]:
        """Load configuration from a TOML file.

        Args:
            toml_path: Path to the TOML configuration file

        Returns:
            dict: Configuration data from the TOML file

        Raises:
            ValueError: If the TOML file is invalid or cannot be read
        """
        try:
            with toml_path.open("rb") as f:
                return tomllib.load(f)
        except OSError as e:
            raise ValueError(f"Cannot read TOML config file {toml_path}: {e}") from e
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML syntax in {toml_path}: {e}") from e

    @classmethod
    def from_config(
        cls, config_path: Path | str | None = None, **kwargs: Any
    ) -> "Settings":
        """Create Settings instance from configuration file.

        Args:
            config_path: Path to configuration file. Can be:
                - None: Auto-discover config file or use CONFIG_FILE env var
                - Path or str: Use this specific config file
            **kwargs: Additional keyword arguments to override config values

        Returns:
            Settings: Configured Settings instance

        Raises:
            ConfigurationError: If the file cannot be parsed or values are invalid
        """
        if config_path is None:
            config_path_env = os.environ.get("CONFIG_FILE")
            if config_path_env:
                config_path = Path(config_path_env)

        if isinstance(config_path, str):
            config_path = Path(config_path)

        if config_path is None:
            config_path = find_toml_config_file()

        try:
            config_data: dict[str, Any] = {}
            if config_path and config_path.exists():
                if config_path.suffix.lower() != ".toml":
                    raise ValueError(
                        f"Unsupported config file format: {config_path.suffix}. "
                        "Only TOML (.toml) files are supported."
                    )
                config_data = cls.load_toml_config(config_path)

            merged_config = {**config_data, **kwargs}
            return cls(**merged_config)
        except (ValueError, ValidationError) as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings.from_config()
