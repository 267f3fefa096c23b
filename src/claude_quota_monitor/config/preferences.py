"""User preferences persisted between runs.

Settings describe how the process is wired; preferences are the values a
user flips at runtime (interval, thresholds, switches). They are kept in a
small JSON document behind a typed store with explicit defaults, and every
mutator validates before it writes.
"""

from pathlib import Path
from typing import Any

import orjson
from pydantic import BaseModel, Field, ValidationError
from structlog import get_logger

from claude_quota_monitor.config.auth import AuthMode
from claude_quota_monitor.exceptions import ConfigValidationError


logger = get_logger(__name__)

VALID_REFRESH_INTERVALS: tuple[int, ...] = (30, 60, 120, 300, 600)
MIN_THRESHOLD = 50
MAX_THRESHOLD = 99


class Preferences(BaseModel):
    """Typed preference document with explicit defaults."""

    refresh_interval: int = Field(default=60)
    notifications_enabled: bool = Field(default=True)
    warning_threshold: int = Field(default=70)
    critical_threshold: int = Field(default=90)
    adaptive_refresh: bool = Field(default=True)
    auth_mode: AuthMode = Field(default=AuthMode.APP)


def _validate_threshold(name: str, value: Any) -> int:
    if (
        not isinstance(value, int)
        or isinstance(value, bool)
        or not MIN_THRESHOLD <= value <= MAX_THRESHOLD
    ):
        raise ConfigValidationError(
            f"{name} must be an integer between {MIN_THRESHOLD} and {MAX_THRESHOLD}",
            details={name: value},
        )
    return value


class PreferencesStore:
    """JSON-backed preference store.

    With ``path=None`` preferences live only in memory.
    """

    def __init__(
        self,
        path: Path | None = None,
        defaults: Preferences | None = None,
    ) -> None:
        self.path = path
        self._batch = False
        self._prefs = defaults.model_copy() if defaults else Preferences()
        if path is not None:
            self._load()

    @property
    def current(self) -> Preferences:
        """Snapshot of the current preferences."""
        return self._prefs.model_copy()

    def _load(self) -> None:
        assert self.path is not None
        if not self.path.exists():
            return
        try:
            data = orjson.loads(self.path.read_bytes())
            self._prefs = Preferences.model_validate(
                {**self._prefs.model_dump(), **data}
            )
        except (OSError, orjson.JSONDecodeError, ValidationError) as e:
            logger.warning(
                "preferences_load_failed", path=str(self.path), error=str(e)
            )

    def _save(self) -> None:
        if self.path is None or self._batch:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_bytes(
                orjson.dumps(self._prefs.model_dump(mode="json"), option=orjson.OPT_INDENT_2)
            )
        except OSError as e:
            logger.error("preferences_save_failed", path=str(self.path), error=str(e))

    def set_refresh_interval(self, seconds: Any) -> None:
        """Set the base polling interval (one of the accepted values)."""
        if isinstance(seconds, bool) or seconds not in VALID_REFRESH_INTERVALS:
            raise ConfigValidationError(
                f"refresh interval must be one of {VALID_REFRESH_INTERVALS}",
                details={"refresh_interval": seconds},
            )
        self._prefs.refresh_interval = int(seconds)
        self._save()

    def set_thresholds(self, warning: Any, critical: Any) -> None:
        """Set both thresholds, enforcing warning < critical."""
        warning = _validate_threshold("warning_threshold", warning)
        critical = _validate_threshold("critical_threshold", critical)
        if warning >= critical:
            raise ConfigValidationError(
                f"Warning threshold ({warning}) must be less than critical ({critical})",
                details={"warning_threshold": warning, "critical_threshold": critical},
            )
        self._prefs.warning_threshold = warning
        self._prefs.critical_threshold = critical
        self._save()

    def set_warning_threshold(self, value: Any) -> None:
        self.set_thresholds(value, self._prefs.critical_threshold)

    def set_critical_threshold(self, value: Any) -> None:
        self.set_thresholds(self._prefs.warning_threshold, value)

    def set_adaptive_refresh(self, enabled: Any) -> None:
        if not isinstance(enabled, bool):
            raise ConfigValidationError(
                "adaptive_refresh must be a boolean", details={"adaptive_refresh": enabled}
            )
        self._prefs.adaptive_refresh = enabled
        self._save()

    def set_notifications_enabled(self, enabled: Any) -> None:
        if not isinstance(enabled, bool):
            raise ConfigValidationError(
                "notifications_enabled must be a boolean",
                details={"notifications_enabled": enabled},
            )
        self._prefs.notifications_enabled = enabled
        self._save()

    def set_auth_mode(self, mode: AuthMode | str) -> None:
        try:
            self._prefs.auth_mode = AuthMode(mode)
        except ValueError as e:
            raise ConfigValidationError(
                f"Unknown auth mode: {mode}", details={"auth_mode": mode}
            ) from e
        self._save()

    def update(self, **changes: Any) -> Preferences:
        """Apply several changes at once.

        Either every change is accepted and written in one save, or none is
        applied.

        Raises:
            ConfigValidationError: For unknown keys or any rejected value.
        """
        if not changes:
            return self.current
        unknown = sorted(set(changes) - set(Preferences.model_fields))
        if unknown:
            raise ConfigValidationError(
                f"Unknown preference: {', '.join(unknown)}",
                details={"keys": unknown},
            )

        previous = self._prefs.model_copy()
        self._batch = True
        try:
            if "refresh_interval" in changes:
                self.set_refresh_interval(changes["refresh_interval"])
            if "warning_threshold" in changes or "critical_threshold" in changes:
                self.set_thresholds(
                    changes.get("warning_threshold", previous.warning_threshold),
                    changes.get("critical_threshold", previous.critical_threshold),
                )
            if "adaptive_refresh" in changes:
                self.set_adaptive_refresh(changes["adaptive_refresh"])
            if "notifications_enabled" in changes:
                self.set_notifications_enabled(changes["notifications_enabled"])
            if "auth_mode" in changes:
                self.set_auth_mode(changes["auth_mode"])
        except ConfigValidationError:
            self._prefs = previous
            raise
        finally:
            self._batch = False

        self._save()
        return self.current
