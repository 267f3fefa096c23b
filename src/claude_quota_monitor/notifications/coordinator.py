"""Threshold transition detection and alert rate limiting."""

from dataclasses import dataclass
from enum import StrEnum

from structlog import get_logger

from claude_quota_monitor.core.timeutils import MINUTE_MS, Clock, now_ms
from claude_quota_monitor.notifications.notifier import LoggingNotifier, Notifier, Urgency
from claude_quota_monitor.quota.models import QuotaLevel


logger = get_logger(__name__)

RESET_BASELINE_MIN = 50.0
RESET_DROP_MIN = 30.0
RESET_COOLDOWN_MS = 5 * MINUTE_MS
TOKEN_FAILURE_COOLDOWN_MS = 30 * MINUTE_MS


class QuotaWindowName(StrEnum):
    FIVE_HOUR = "five_hour"
    SEVEN_DAY = "seven_day"


_WINDOW_LABELS = {
    QuotaWindowName.FIVE_HOUR: ("Session", "5-hour"),
    QuotaWindowName.SEVEN_DAY: ("Weekly", "7-day"),
}


@dataclass
class WindowNotificationState:
    last_level: QuotaLevel = QuotaLevel.NORMAL
    last_utilization: float | None = None
    last_reset_notification: int | None = None


class NotificationCoordinator:
    """Decides when quota changes are worth an alert.

    Alerts fire only on level transitions. Output is suppressed while paused
    or disabled, but state keeps tracking so no stale alert fires later.
    """

    def __init__(
        self,
        notifier: Notifier | None = None,
        warning_threshold: float = 70,
        critical_threshold: float = 90,
        enabled: bool = True,
        clock: Clock = now_ms,
    ) -> None:
        self.notifier = notifier or LoggingNotifier()
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold
        self._enabled = enabled
        self._paused = False
        self._clock = clock
        self._windows = {name: WindowNotificationState() for name in QuotaWindowName}
        self._last_token_failure_notification: int | None = None

    def get_level(self, utilization: float) -> QuotaLevel:
        if utilization >= self.critical_threshold:
            return QuotaLevel.CRITICAL
        if utilization >= self.warning_threshold:
            return QuotaLevel.WARNING
        return QuotaLevel.NORMAL

    def set_thresholds(self, warning: float, critical: float) -> None:
        self.warning_threshold = warning
        self.critical_threshold = critical
        logger.info("notification_thresholds_updated", warning=warning, critical=critical)

    def get_thresholds(self) -> tuple[float, float]:
        return self.warning_threshold, self.critical_threshold

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        logger.info("notifications_toggled", enabled=enabled)

    def is_enabled(self) -> bool:
        return self._enabled

    def set_paused(self, paused: bool) -> None:
        self._paused = paused

    def is_paused(self) -> bool:
        return self._paused

    def get_window_state(self, window: QuotaWindowName) -> WindowNotificationState:
        return self._windows[window]

    def _show(self, title: str, body: str, urgency: Urgency) -> bool:
        if not self._enabled or self._paused:
            logger.debug(
                "notification_suppressed",
                title=title,
                enabled=self._enabled,
                paused=self._paused,
            )
            return False
        try:
            self.notifier.show(title, body, urgency)
        except Exception as e:
            logger.error("notification_show_failed", title=title, error=str(e), exc_info=e)
            return False
        logger.info("notification_shown", title=title)
        return True

    def check_and_notify(self, five_hour: float, seven_day: float) -> None:
        """Evaluate a fresh sample of both windows."""
        self._check_window(QuotaWindowName.FIVE_HOUR, five_hour)
        self._check_window(QuotaWindowName.SEVEN_DAY, seven_day)

    def _check_window(self, window: QuotaWindowName, utilization: float) -> None:
        state = self._windows[window]
        previous = state.last_utilization
        state.last_utilization = utilization

        # Heuristic: a large drop from a high baseline means the window reset.
        if (
            previous is not None
            and previous >= RESET_BASELINE_MIN
            and previous - utilization > RESET_DROP_MIN
        ):
            self.notify_quota_reset(window)

        level = self.get_level(utilization)
        if level == state.last_level:
            return

        previous_level = state.last_level
        state.last_level = level
        name, span = _WINDOW_LABELS[window]
        percent = round(utilization)

        if level == QuotaLevel.CRITICAL:
            self._show(
                f"{name} Quota Critical",
                f"Your {span} quota is at {percent}%! You may be rate limited soon.",
                Urgency.CRITICAL,
            )
        elif level == QuotaLevel.WARNING and previous_level == QuotaLevel.NORMAL:
            self._show(
                f"{name} Quota Warning",
                f"Your {span} quota is at {percent}%. Consider slowing down.",
                Urgency.NORMAL,
            )
        elif level == QuotaLevel.NORMAL:
            self._show(
                f"{name} Quota Recovered",
                f"Your {span} quota is back down to {percent}%.",
                Urgency.LOW,
            )
        else:
            logger.debug(
                "quota_level_deescalated",
                window=str(window),
                previous=str(previous_level),
                level=str(level),
            )

    def notify_quota_reset(self, window: QuotaWindowName) -> bool:
        """Announce a window reset, at most once per 5 minutes per window."""
        state = self._windows[window]
        now = self._clock()
        if (
            state.last_reset_notification is not None
            and now - state.last_reset_notification < RESET_COOLDOWN_MS
        ):
            return False

        state.last_reset_notification = now
        state.last_level = QuotaLevel.NORMAL
        name, span = _WINDOW_LABELS[window]
        logger.info("quota_reset_detected", window=str(window))
        return self._show(
            f"{name} Quota Reset",
            f"Your {span} quota has been reset. Full capacity is available again!",
            Urgency.LOW,
        )

    def notify_token_refresh_failed(self) -> bool:
        """Alert about a failed token refresh, at most once per 30 minutes."""
        now = self._clock()
        if (
            self._last_token_failure_notification is not None
            and now - self._last_token_failure_notification < TOKEN_FAILURE_COOLDOWN_MS
        ):
            logger.debug("token_refresh_failure_notification_rate_limited")
            return False

        self._last_token_failure_notification = now
        return self._show(
            "Authentication Error",
            "Failed to refresh your OAuth token. Please sign in again.",
            Urgency.CRITICAL,
        )
