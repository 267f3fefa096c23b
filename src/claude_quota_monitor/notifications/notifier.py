"""Notification output backends."""

from enum import StrEnum
from typing import Protocol

from structlog import get_logger


logger = get_logger(__name__)


class Urgency(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    CRITICAL = "critical"


class Notifier(Protocol):
    """Anything that can surface a notification to the user."""

    def show(self, title: str, body: str, urgency: Urgency) -> None: ...


class LoggingNotifier:
    """Emits notifications as structured log events."""

    def show(self, title: str, body: str, urgency: Urgency) -> None:
        log = logger.warning if urgency == Urgency.CRITICAL else logger.info
        log("notification", title=title, body=body, urgency=str(urgency))
