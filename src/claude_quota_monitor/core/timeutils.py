"""Millisecond clock helpers.

Every component takes an injectable ``clock`` returning Unix milliseconds so
tests can move time without patching.
"""

from collections.abc import Callable
from datetime import UTC, datetime


Clock = Callable[[], int]

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(datetime.now(UTC).timestamp() * 1000)


def ms_to_datetime(value: int) -> datetime:
    """Convert Unix milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def datetime_to_ms(value: datetime) -> int:
    """Convert a datetime to Unix milliseconds, assuming UTC when naive."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def format_time_until(target: datetime, now: int | None = None) -> str:
    """Human readable countdown: ``Now``, ``42m``, ``2h 30m`` or ``2d 5h``."""
    current = now if now is not None else now_ms()
    diff_ms = datetime_to_ms(target) - current

    if diff_ms <= 0:
        return "Now"

    minutes = diff_ms // MINUTE_MS
    hours = diff_ms // HOUR_MS
    days = diff_ms // DAY_MS

    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    return f"{minutes}m"


def calculate_reset_progress(
    resets_at: datetime, period_hours: float, now: int | None = None
) -> int:
    """Percentage (0-100) of the rolling period already elapsed."""
    current = now if now is not None else now_ms()
    period_ms = period_hours * HOUR_MS
    start = datetime_to_ms(resets_at) - period_ms
    progress = (current - start) / period_ms * 100
    return round(max(0.0, min(100.0, progress)))


def format_hours_short(hours: float) -> str:
    """Compact duration such as ``25m``, ``3h`` or ``1h 15m``."""
    if hours < 1:
        return f"{round(hours * 60)}m"
    whole = int(hours)
    minutes = round((hours - whole) * 60)
    if minutes == 0:
        return f"{whole}h"
    return f"{whole}h {minutes}m"
