"""Quota alerts."""

from claude_quota_monitor.notifications.coordinator import (
    NotificationCoordinator,
    QuotaWindowName,
)
from claude_quota_monitor.notifications.notifier import LoggingNotifier, Notifier, Urgency


__all__ = [
    "LoggingNotifier",
    "NotificationCoordinator",
    "Notifier",
    "QuotaWindowName",
    "Urgency",
]
