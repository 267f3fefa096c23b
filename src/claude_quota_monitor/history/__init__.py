"""Quota sample history."""

from claude_quota_monitor.history.ledger import (
    ChartData,
    HistoryEntry,
    HistoryLedger,
    HistoryStats,
    TimeToThreshold,
    TrendData,
    TrendDirection,
    WindowTrend,
)


__all__ = [
    "ChartData",
    "HistoryEntry",
    "HistoryLedger",
    "HistoryStats",
    "TimeToThreshold",
    "TrendData",
    "TrendDirection",
    "WindowTrend",
]
