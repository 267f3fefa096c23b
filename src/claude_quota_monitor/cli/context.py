"""State shared by CLI commands."""

from dataclasses import dataclass

import typer

from claude_quota_monitor.config.preferences import PreferencesStore
from claude_quota_monitor.config.settings import Settings
from claude_quota_monitor.core.system import get_app_data_dir
from claude_quota_monitor.monitor import QuotaMonitor, preferences_from_settings
from claude_quota_monitor.notifications.notifier import Notifier


PREFERENCES_FILE = "preferences.json"


@dataclass
class CliState:
    settings: Settings

    def preferences(self) -> PreferencesStore:
        return PreferencesStore(
            path=get_app_data_dir() / PREFERENCES_FILE,
            defaults=preferences_from_settings(self.settings),
        )

    def build_monitor(self, notifier: Notifier | None = None) -> QuotaMonitor:
        return QuotaMonitor.from_settings(
            self.settings, preferences=self.preferences(), notifier=notifier
        )


def get_state(ctx: typer.Context) -> CliState:
    state = ctx.find_object(CliState)
    if state is None:
        state = CliState(settings=Settings.from_config())
        ctx.obj = state
    return state
