"""Bounded time series of quota samples with statistics and trend estimation."""

import csv
import io
import os
from datetime import datetime
from enum import StrEnum
from pathlib import Path

import orjson
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError
from structlog import get_logger

from claude_quota_monitor.core.timeutils import (
    HOUR_MS,
    MINUTE_MS,
    Clock,
    ms_to_datetime,
    now_ms,
)


logger = get_logger(__name__)

DEFAULT_MAX_ENTRIES = 1000
MIN_ENTRY_SPACING_MS = 30 * 1000
TREND_STABLE_BAND = 2.0
MAX_ESTIMATE_HOURS = 24.0
DEFAULT_CHART_POINTS = 50


class HistoryEntry(BaseModel):
    """One quota sample. ``timestamp`` is Unix milliseconds."""

    model_config = ConfigDict(frozen=True)

    timestamp: int
    five_hour: float
    seven_day: float


_entries_adapter = TypeAdapter(list[HistoryEntry])


class TrendDirection(StrEnum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class WindowTrend(BaseModel):
    """Direction and rate of change in percentage points per hour."""

    model_config = ConfigDict(frozen=True)

    direction: TrendDirection
    delta: float


class TrendData(BaseModel):
    model_config = ConfigDict(frozen=True)

    five_hour: WindowTrend
    seven_day: WindowTrend


class TimeToThreshold(BaseModel):
    """Estimated hours until each window reaches a threshold, None if not soon."""

    model_config = ConfigDict(frozen=True)

    five_hour: float | None = None
    seven_day: float | None = None

    @property
    def soonest(self) -> float | None:
        estimates = [v for v in (self.five_hour, self.seven_day) if v is not None]
        return min(estimates) if estimates else None


class HistoryStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    avg_five_hour: float
    avg_seven_day: float
    max_five_hour: float
    max_seven_day: float
    min_five_hour: float
    min_seven_day: float
    entry_count: int


class ChartData(BaseModel):
    labels: list[str]
    five_hour: list[float]
    seven_day: list[float]


def _direction(delta: float) -> TrendDirection:
    if delta > TREND_STABLE_BAND:
        return TrendDirection.UP
    if delta < -TREND_STABLE_BAND:
        return TrendDirection.DOWN
    return TrendDirection.STABLE


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


class HistoryLedger:
    """Append-only, deduplicated, bounded quota history.

    Samples closer than 30 seconds to the previous one are dropped and the
    oldest samples are evicted once ``max_entries`` is exceeded. When ``path``
    is set the ledger is loaded from and saved to that JSON file.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        path: Path | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.max_entries = max_entries
        self.path = path
        self._clock = clock
        self._entries: list[HistoryEntry] = self._load()

    def _load(self) -> list[HistoryEntry]:
        if self.path is None or not self.path.exists():
            return []
        try:
            entries = _entries_adapter.validate_json(self.path.read_bytes())
        except (OSError, ValidationError) as e:
            logger.warning(
                "history_file_unreadable_starting_empty",
                path=str(self.path),
                error=str(e),
            )
            return []
        entries.sort(key=lambda e: e.timestamp)
        return entries[-self.max_entries :]

    def _save(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_bytes(
                orjson.dumps([e.model_dump() for e in self._entries])
            )
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("history_save_failed", path=str(self.path), error=str(e))

    def add_entry(self, five_hour: float, seven_day: float) -> bool:
        """Record a sample.

        Returns:
            False when the sample was dropped as a near duplicate
        """
        now = self._clock()
        if self._entries and now - self._entries[-1].timestamp < MIN_ENTRY_SPACING_MS:
            return False

        self._entries.append(
            HistoryEntry(
                timestamp=now,
                five_hour=round(five_hour, 2),
                seven_day=round(seven_day, 2),
            )
        )
        if len(self._entries) > self.max_entries:
            del self._entries[: len(self._entries) - self.max_entries]

        self._save()
        logger.debug("history_entry_added", five_hour=five_hour, seven_day=seven_day)
        return True

    def get_entries(self, since: int | None = None) -> list[HistoryEntry]:
        """Entries at or after ``since`` (Unix ms), oldest first."""
        if since is None:
            return list(self._entries)
        return [e for e in self._entries if e.timestamp >= since]

    def get_entries_for_period(self, hours: float) -> list[HistoryEntry]:
        return self.get_entries(self._clock() - int(hours * HOUR_MS))

    def get_latest_entry(self) -> HistoryEntry | None:
        return self._entries[-1] if self._entries else None

    def clear_history(self) -> None:
        self._entries.clear()
        self._save()
        logger.info("history_cleared")

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self, hours: float) -> HistoryStats | None:
        entries = self.get_entries_for_period(hours)
        if not entries:
            return None

        five_hour = [e.five_hour for e in entries]
        seven_day = [e.seven_day for e in entries]
        return HistoryStats(
            avg_five_hour=round(_mean(five_hour), 1),
            avg_seven_day=round(_mean(seven_day), 1),
            max_five_hour=max(five_hour),
            max_seven_day=max(seven_day),
            min_five_hour=min(five_hour),
            min_seven_day=min(seven_day),
            entry_count=len(entries),
        )

    def get_trend(self, lookback_minutes: float = 30) -> TrendData | None:
        """Direction and rate of change over the lookback window.

        The window is split chronologically into two halves. The rate is the
        difference of the half averages divided by half the lookback span,
        in percentage points per hour.
        """
        entries = self.get_entries(self._clock() - int(lookback_minutes * MINUTE_MS))
        if len(entries) < 2:
            return None

        mid = len(entries) // 2
        first, second = entries[:mid], entries[mid:]

        span_hours = lookback_minutes / 60 / 2
        if span_hours <= 0:
            return None

        five_hour_delta = (
            _mean([e.five_hour for e in second]) - _mean([e.five_hour for e in first])
        ) / span_hours
        seven_day_delta = (
            _mean([e.seven_day for e in second]) - _mean([e.seven_day for e in first])
        ) / span_hours

        return TrendData(
            five_hour=WindowTrend(
                direction=_direction(five_hour_delta), delta=five_hour_delta
            ),
            seven_day=WindowTrend(
                direction=_direction(seven_day_delta), delta=seven_day_delta
            ),
        )

    def estimate_time_to_threshold(self, threshold: float) -> TimeToThreshold | None:
        """Hours until each window reaches ``threshold`` at the 30 minute trend.

        Windows that are falling, already past the threshold, or more than a
        day away get None.
        """
        latest = self.get_latest_entry()
        trend = self.get_trend(30)
        if latest is None or trend is None:
            return None

        def estimate(current: float, delta: float) -> float | None:
            if delta <= 0 or current >= threshold:
                return None
            hours = (threshold - current) / delta
            return hours if hours <= MAX_ESTIMATE_HOURS else None

        return TimeToThreshold(
            five_hour=estimate(latest.five_hour, trend.five_hour.delta),
            seven_day=estimate(latest.seven_day, trend.seven_day.delta),
        )

    def get_chart_data(
        self, hours: float, max_points: int = DEFAULT_CHART_POINTS
    ) -> ChartData:
        """Down-sampled series for plotting, labelled with local ``HH:MM``."""
        entries = self.get_entries_for_period(hours)
        step = max(1, len(entries) // max_points)
        sampled = entries[::step]
        return ChartData(
            labels=[
                datetime.fromtimestamp(e.timestamp / 1000).strftime("%H:%M")
                for e in sampled
            ],
            five_hour=[e.five_hour for e in sampled],
            seven_day=[e.seven_day for e in sampled],
        )

    def export_csv(self, hours: float | None = None) -> str:
        """CSV with header ``timestamp,five_hour,seven_day`` and UTC ISO timestamps."""
        entries = (
            self.get_entries() if hours is None else self.get_entries_for_period(hours)
        )
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["timestamp", "five_hour", "seven_day"])
        for e in entries:
            writer.writerow(
                [ms_to_datetime(e.timestamp).isoformat(), e.five_hour, e.seven_day]
            )
        return buffer.getvalue()
