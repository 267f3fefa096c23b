"""Quota snapshot models and usage response parsing."""

from datetime import datetime
from enum import StrEnum

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, field_validator

from claude_quota_monitor.core.timeutils import (
    calculate_reset_progress,
    format_time_until,
    ms_to_datetime,
    now_ms,
)
from claude_quota_monitor.exceptions import QuotaErrorType


FIVE_HOUR_PERIOD_HOURS = 5
SEVEN_DAY_PERIOD_HOURS = 7 * 24
MAX_UTILIZATION = 100.0


class QuotaLevel(StrEnum):
    """Severity band of a utilization value."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class QuotaError(BaseModel):
    """Classified failure attached to a snapshot."""

    model_config = ConfigDict(frozen=True)

    type: QuotaErrorType
    message: str
    retryable: bool


class UsageWindow(BaseModel):
    """One window of the usage endpoint response.

    ``resets_at`` is null for a window with no usage yet. Utilization above
    100 is clamped.
    """

    model_config = ConfigDict(extra="ignore")

    utilization: float = Field(ge=0)
    resets_at: datetime | None = None

    @field_validator("utilization")
    @classmethod
    def clamp_utilization(cls, v: float) -> float:
        return min(v, MAX_UTILIZATION)

    @field_validator("resets_at", mode="before")
    @classmethod
    def parse_resets_at(cls, v: object) -> object:
        if isinstance(v, str):
            return date_parser.isoparse(v)
        return v


class UsageResponse(BaseModel):
    """Body of ``GET /api/oauth/usage``."""

    model_config = ConfigDict(extra="ignore")

    five_hour: UsageWindow
    seven_day: UsageWindow


class QuotaWindow(BaseModel):
    """Utilization and reset timing of one rolling window."""

    model_config = ConfigDict(frozen=True)

    utilization: float
    resets_at: datetime | None
    resets_in: str
    reset_progress: int

    @classmethod
    def from_usage(
        cls, window: UsageWindow, period_hours: float, now: int | None = None
    ) -> "QuotaWindow":
        current = now if now is not None else now_ms()
        if window.resets_at is None:
            # No active period; shown like one that has just elapsed
            return cls(
                utilization=window.utilization,
                resets_at=None,
                resets_in="Now",
                reset_progress=100,
            )
        return cls(
            utilization=window.utilization,
            resets_at=window.resets_at,
            resets_in=format_time_until(window.resets_at, now=current),
            reset_progress=calculate_reset_progress(
                window.resets_at, period_hours, now=current
            ),
        )


class QuotaSnapshot(BaseModel):
    """Most recent view of both windows."""

    model_config = ConfigDict(frozen=True)

    five_hour: QuotaWindow
    seven_day: QuotaWindow
    last_updated: datetime
    error: QuotaError | None = None

    @classmethod
    def from_usage(cls, usage: UsageResponse, now: int | None = None) -> "QuotaSnapshot":
        current = now if now is not None else now_ms()
        return cls(
            five_hour=QuotaWindow.from_usage(
                usage.five_hour, FIVE_HOUR_PERIOD_HOURS, now=current
            ),
            seven_day=QuotaWindow.from_usage(
                usage.seven_day, SEVEN_DAY_PERIOD_HOURS, now=current
            ),
            last_updated=ms_to_datetime(current),
        )

    @property
    def max_utilization(self) -> float:
        return max(self.five_hour.utilization, self.seven_day.utilization)

    def with_error(self, error: QuotaError | None) -> "QuotaSnapshot":
        """Copy of this snapshot carrying ``error``."""
        return self.model_copy(update={"error": error})
