"""Adaptive polling scheduler."""

from claude_quota_monitor.scheduler.adaptive import AdaptiveScheduler, PauseStatus


__all__ = ["AdaptiveScheduler", "PauseStatus"]
