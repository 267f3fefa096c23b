from pathlib import Path

from claude_quota_monitor.core.system import get_app_config_dir


CONFIG_FILE_NAME = ".claude_quota_monitor.toml"


def find_toml_config_file() -> Path | None:
    """Find the TOML configuration file for claude_quota_monitor.

    Searches in the following order:
    1. .claude_quota_monitor.toml in current directory
    2. claude_quota_monitor.toml in current directory
    3. config.toml in user config directory/claude-quota-monitor/ (platform-specific)
    """
    candidates = [
        Path(CONFIG_FILE_NAME).resolve(),
        Path(CONFIG_FILE_NAME.lstrip(".")).resolve(),
        get_app_config_dir() / "config.toml",
    ]

    for candidate in candidates:
        if candidate.exists() and candidate.is_file():
            return candidate

    return None
