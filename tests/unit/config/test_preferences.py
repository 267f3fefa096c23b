"""Tests for the persisted preference store."""

from pathlib import Path
from typing import Any

import orjson
import pytest

from claude_quota_monitor.config import AuthMode, Preferences, PreferencesStore
from claude_quota_monitor.exceptions import ConfigValidationError


@pytest.fixture
def path(tmp_path: Path) -> Path:
    return tmp_path / "prefs" / "preferences.json"


@pytest.mark.unit
class TestPreferencesStore:
    def test_defaults(self) -> None:
        prefs = PreferencesStore().current

        assert prefs == Preferences()
        assert prefs.refresh_interval == 60
        assert prefs.notifications_enabled is True
        assert prefs.auth_mode == AuthMode.APP

    def test_custom_defaults(self) -> None:
        store = PreferencesStore(defaults=Preferences(refresh_interval=300))

        assert store.current.refresh_interval == 300

    def test_current_is_a_copy(self) -> None:
        store = PreferencesStore()
        snapshot = store.current
        snapshot.refresh_interval = 600

        assert store.current.refresh_interval == 60

    @pytest.mark.parametrize("seconds", [30, 60, 120, 300, 600])
    def test_accepted_intervals(self, seconds: int) -> None:
        store = PreferencesStore()
        store.set_refresh_interval(seconds)

        assert store.current.refresh_interval == seconds

    @pytest.mark.parametrize("seconds", [0, 45, 3600, "60", True, None])
    def test_rejected_intervals(self, seconds: Any) -> None:
        store = PreferencesStore()

        with pytest.raises(ConfigValidationError):
            store.set_refresh_interval(seconds)
        assert store.current.refresh_interval == 60

    def test_thresholds(self) -> None:
        store = PreferencesStore()
        store.set_thresholds(60, 85)

        assert store.current.warning_threshold == 60
        assert store.current.critical_threshold == 85

    @pytest.mark.parametrize(
        ("warning", "critical"),
        [(90, 80), (80, 80), (49, 90), (70, 100), (70.5, 90), ("70", 90)],
    )
    def test_rejected_thresholds(self, warning: Any, critical: Any) -> None:
        store = PreferencesStore()

        with pytest.raises(ConfigValidationError):
            store.set_thresholds(warning, critical)
        assert store.current.warning_threshold == 70
        assert store.current.critical_threshold == 90

    def test_single_threshold_setters_keep_order(self) -> None:
        store = PreferencesStore()

        with pytest.raises(ConfigValidationError, match="less than critical"):
            store.set_warning_threshold(95)

        store.set_critical_threshold(95)
        store.set_warning_threshold(94)
        assert store.current.warning_threshold == 94

    def test_boolean_switches(self) -> None:
        store = PreferencesStore()
        store.set_adaptive_refresh(False)
        store.set_notifications_enabled(False)

        assert store.current.adaptive_refresh is False
        assert store.current.notifications_enabled is False

        with pytest.raises(ConfigValidationError):
            store.set_adaptive_refresh("no")
        with pytest.raises(ConfigValidationError):
            store.set_notifications_enabled(1)

    def test_auth_mode(self) -> None:
        store = PreferencesStore()
        store.set_auth_mode("cli")

        assert store.current.auth_mode == AuthMode.CLI
        with pytest.raises(ConfigValidationError):
            store.set_auth_mode("browser")


@pytest.mark.unit
class TestPersistence:
    def test_round_trip(self, path: Path) -> None:
        store = PreferencesStore(path)
        store.set_refresh_interval(120)
        store.set_thresholds(60, 80)

        reloaded = PreferencesStore(path)

        assert reloaded.current.refresh_interval == 120
        assert reloaded.current.warning_threshold == 60
        assert orjson.loads(path.read_bytes())["critical_threshold"] == 80

    def test_partial_file_merges_with_defaults(self, path: Path) -> None:
        path.parent.mkdir(parents=True)
        path.write_bytes(orjson.dumps({"refresh_interval": 300}))

        store = PreferencesStore(path, defaults=Preferences(warning_threshold=65))

        assert store.current.refresh_interval == 300
        assert store.current.warning_threshold == 65

    def test_corrupt_file_keeps_defaults(self, path: Path) -> None:
        path.parent.mkdir(parents=True)
        path.write_text("{oops")

        store = PreferencesStore(path)

        assert store.current == Preferences()

    def test_rejected_change_not_written(self, path: Path) -> None:
        store = PreferencesStore(path)

        with pytest.raises(ConfigValidationError):
            store.set_refresh_interval(45)

        assert not path.exists()


@pytest.mark.unit
class TestUpdate:
    def test_applies_all_changes_in_one_write(self, path: Path) -> None:
        store = PreferencesStore(path)

        prefs = store.update(
            refresh_interval=300, critical_threshold=95, adaptive_refresh=False
        )

        assert prefs.refresh_interval == 300
        assert prefs.warning_threshold == 70
        assert prefs.critical_threshold == 95
        saved = orjson.loads(path.read_bytes())
        assert saved["refresh_interval"] == 300
        assert saved["adaptive_refresh"] is False

    def test_rejected_value_rolls_back(self, path: Path) -> None:
        store = PreferencesStore(path)

        with pytest.raises(ConfigValidationError):
            store.update(refresh_interval=120, warning_threshold=95)

        assert store.current == Preferences()
        assert not path.exists()

    def test_unknown_key(self) -> None:
        store = PreferencesStore()

        with pytest.raises(ConfigValidationError, match="Unknown preference: theme"):
            store.update(theme="dark")

    def test_no_changes_does_not_write(self, path: Path) -> None:
        store = PreferencesStore(path)

        assert store.update() == Preferences()
        assert not path.exists()
