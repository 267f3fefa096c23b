"""Core helpers: logging, clock and platform paths."""

from claude_quota_monitor.core.logging import redact_token, setup_logging
from claude_quota_monitor.core.system import get_app_config_dir, get_app_data_dir
from claude_quota_monitor.core.timeutils import Clock, now_ms


__all__ = [
    "Clock",
    "get_app_config_dir",
    "get_app_data_dir",
    "now_ms",
    "redact_token",
    "setup_logging",
]
