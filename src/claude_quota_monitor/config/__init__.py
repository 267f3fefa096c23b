"""Configuration module for the quota monitor."""

from .auth import AuthMode, AuthSettings, SecretBackend
from .notifications import HistorySettings, LoggingSettings, NotificationSettings
from .preferences import Preferences, PreferencesStore
from .scheduler import SchedulerSettings
from .settings import Settings, get_settings


__all__ = [
    "AuthMode",
    "AuthSettings",
    "HistorySettings",
    "LoggingSettings",
    "NotificationSettings",
    "Preferences",
    "PreferencesStore",
    "SchedulerSettings",
    "SecretBackend",
    "Settings",
    "get_settings",
]
