"""Quota fetching and snapshot models."""

from claude_quota_monitor.quota.models import (
    QuotaError,
    QuotaLevel,
    QuotaSnapshot,
    QuotaWindow,
    UsageResponse,
)


__all__ = [
    "QuotaError",
    "QuotaLevel",
    "QuotaSnapshot",
    "QuotaWindow",
    "UsageResponse",
]
