"""Quota monitor: the wired-up component graph and its public API."""

from collections.abc import Callable
from pathlib import Path
from types import TracebackType
from typing import Any

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from structlog import get_logger

from claude_quota_monitor.auth.manager import AuthManager
from claude_quota_monitor.auth.models import AuthState, LoginResult, UserInfo
from claude_quota_monitor.auth.oauth.client import OAuthClient, OAuthClientConfig
from claude_quota_monitor.auth.refresh import TokenRefreshEngine
from claude_quota_monitor.auth.secret_store import (
    EncryptedFileSecretStore,
    KeyringSecretStore,
    MemorySecretStore,
    SecretStore,
)
from claude_quota_monitor.auth.storage import (
    AppCredentialStore,
    CredentialStore,
    ExternalCredentialStore,
)
from claude_quota_monitor.config.auth import AuthMode, AuthSettings, SecretBackend
from claude_quota_monitor.config.preferences import Preferences, PreferencesStore
from claude_quota_monitor.config.settings import Settings
from claude_quota_monitor.core.system import get_app_data_dir
from claude_quota_monitor.core.timeutils import Clock, now_ms
from claude_quota_monitor.exceptions import ConfigValidationError
from claude_quota_monitor.history.ledger import (
    ChartData,
    HistoryEntry,
    HistoryLedger,
    HistoryStats,
    TimeToThreshold,
    TrendData,
)
from claude_quota_monitor.notifications.coordinator import NotificationCoordinator
from claude_quota_monitor.notifications.notifier import Notifier
from claude_quota_monitor.quota.fetcher import QuotaFetcher
from claude_quota_monitor.quota.models import QuotaError, QuotaLevel, QuotaSnapshot
from claude_quota_monitor.scheduler.adaptive import AdaptiveScheduler, PauseStatus


logger = get_logger(__name__)

MIN_STATS_HOURS = 1
MAX_STATS_HOURS = 168


def build_secret_store(auth: AuthSettings, service_name: str) -> SecretStore:
    """Secret store for the configured backend."""
    if auth.secret_backend == SecretBackend.MEMORY:
        return MemorySecretStore()
    if auth.secret_backend == SecretBackend.FILE:
        path = auth.secrets_path or get_app_data_dir() / "secrets.json"
        return EncryptedFileSecretStore(path)
    return KeyringSecretStore(service_name)


def build_credential_store(
    auth: AuthSettings, mode: AuthMode, secret_store: SecretStore | None = None
) -> CredentialStore:
    """Credential store for ``mode``. The two sources never fall back into each other."""
    if mode == AuthMode.CLI:
        return ExternalCredentialStore(
            secret_store or build_secret_store(auth, auth.cli_keyring_service),
            auth.cli_keyring_account,
        )
    return AppCredentialStore(
        secret_store or build_secret_store(auth, auth.app_keyring_service)
    )


def build_oauth_config(auth: AuthSettings, mode: AuthMode) -> OAuthClientConfig:
    if mode == AuthMode.CLI:
        client_id, token_url = auth.cli_client_id, auth.cli_token_url
    else:
        client_id, token_url = auth.app_client_id, auth.app_token_url
    return OAuthClientConfig(
        client_id=client_id,
        token_url=token_url,
        authorize_url=auth.authorize_url,
        redirect_uri=auth.redirect_uri,
        scopes=list(auth.scopes),
        user_agent=auth.user_agent,
        timeout=auth.request_timeout,
    )


class QuotaMonitor:
    """Presentation-facing facade over the monitoring components.

    Every component is constructed once, by :meth:`from_settings` or by the
    caller, and handed in explicitly.
    """

    def __init__(
        self,
        *,
        preferences: PreferencesStore,
        auth: AuthManager,
        engine: TokenRefreshEngine,
        fetcher: QuotaFetcher,
        history: HistoryLedger,
        notifications: NotificationCoordinator,
        scheduler: AdaptiveScheduler,
    ) -> None:
        self.preferences = preferences
        self.auth = auth
        self.engine = engine
        self.fetcher = fetcher
        self.history = history
        self.notifications = notifications
        self.scheduler = scheduler

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        preferences: PreferencesStore | None = None,
        notifier: Notifier | None = None,
        http_client: httpx.AsyncClient | None = None,
        secret_store: SecretStore | None = None,
        browser_opener: Callable[[str], Any] | None = None,
        scheduler: AsyncIOScheduler | None = None,
        clock: Clock = now_ms,
    ) -> "QuotaMonitor":
        """Build the component graph.

        Args:
            settings: Process configuration
            preferences: Runtime preference store, in-memory from settings if omitted
            notifier: Notification backend, logs if omitted
            http_client: Shared httpx client for token and usage requests
            secret_store: Overrides the secret store built from settings
            browser_opener: Opens the authorization URL, ``webbrowser.open`` if omitted
            scheduler: APScheduler instance for the polling loop
            clock: Millisecond clock shared by every component

        Returns:
            A monitor that still needs :meth:`start`
        """
        if preferences is None:
            preferences = PreferencesStore(defaults=preferences_from_settings(settings))
        prefs = preferences.current
        mode = prefs.auth_mode

        store = build_credential_store(settings.auth, mode, secret_store)
        oauth_client = OAuthClient(build_oauth_config(settings.auth, mode), http_client)

        history_path: Path | None = None
        if settings.history.persist:
            history_path = settings.history.path or get_app_data_dir() / "history.json"
        history = HistoryLedger(
            max_entries=settings.history.max_entries, path=history_path, clock=clock
        )

        notifications = NotificationCoordinator(
            notifier=notifier,
            warning_threshold=prefs.warning_threshold,
            critical_threshold=prefs.critical_threshold,
            enabled=prefs.notifications_enabled,
            clock=clock,
        )

        engine = TokenRefreshEngine(
            store,
            oauth_client,
            on_refresh_failed=notifications.notify_token_refresh_failed,
            expiry_buffer_seconds=settings.auth.expiry_buffer_seconds,
            clock=clock,
        )
        auth = AuthManager(mode, store, engine, oauth_client, browser_opener, clock=clock)

        fetcher = QuotaFetcher(
            engine,
            history,
            notifications,
            http_client=http_client,
            clock=clock,
            usage_url=settings.auth.usage_url,
            beta_version=settings.auth.beta_version,
            user_agent=settings.auth.user_agent,
            timeout=settings.auth.request_timeout,
            min_fetch_interval=settings.scheduler.min_fetch_interval,
        )

        async def refresh() -> QuotaSnapshot | None:
            return await fetcher.fetch_quota(force_refresh=True)

        adaptive = AdaptiveScheduler(
            refresh,
            base_interval_seconds=prefs.refresh_interval,
            adaptive_enabled=prefs.adaptive_refresh,
            scheduler=scheduler,
            clock=clock,
            on_pause_change=notifications.set_paused,
        )
        fetcher.level_listener = adaptive.update_quota_level

        logger.debug(
            "quota_monitor_built",
            auth_mode=str(mode),
            credentials=store.get_location(),
            history=str(history_path) if history_path else None,
        )
        return cls(
            preferences=preferences,
            auth=auth,
            engine=engine,
            fetcher=fetcher,
            history=history,
            notifications=notifications,
            scheduler=adaptive,
        )

    # Lifecycle

    async def start(self) -> None:
        """Resolve the auth state and start polling with an immediate fetch."""
        state = await self.engine.initialize()
        logger.info("quota_monitor_starting", auth_state=str(state))
        await self.scheduler.start()

    async def stop(self) -> None:
        self.scheduler.shutdown()
        await self.fetcher.aclose()
        logger.info("quota_monitor_stopped")

    async def __aenter__(self) -> "QuotaMonitor":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    # Quota

    async def fetch_quota(self, force_refresh: bool = False) -> QuotaSnapshot | None:
        return await self.fetcher.fetch_quota(force_refresh)

    def get_cached_quota(self) -> QuotaSnapshot | None:
        return self.fetcher.get_cached_quota()

    def get_last_error(self) -> QuotaError | None:
        return self.fetcher.get_last_error()

    def get_quota_level(self) -> QuotaLevel:
        return self.fetcher.get_quota_level()

    def subscribe(self, on_refresh: Callable[[], None]) -> Callable[[], None]:
        """Call ``on_refresh`` after each scheduled refresh and on pause."""
        return self.scheduler.subscribe(on_refresh)

    # Scheduling

    def set_refresh_interval(self, seconds: int) -> None:
        """Change the base interval.

        Raises:
            ConfigValidationError: ``seconds`` is not an accepted interval
        """
        self.preferences.set_refresh_interval(seconds)
        self.scheduler.set_refresh_interval(seconds)

    def get_refresh_interval(self) -> float:
        return self.scheduler.get_refresh_interval()

    def set_adaptive_enabled(self, enabled: bool) -> None:
        self.preferences.set_adaptive_refresh(enabled)
        self.scheduler.set_adaptive_enabled(enabled)

    def pause(self, minutes: float | None = None) -> None:
        """Pause polling and notifications, indefinitely or for ``minutes``."""
        self.scheduler.pause(minutes)

    async def resume(self) -> None:
        await self.scheduler.resume()

    def get_pause_status(self) -> PauseStatus:
        return self.scheduler.get_pause_status()

    # Notifications

    def set_thresholds(self, warning: int, critical: int) -> None:
        """Change both alert thresholds.

        Raises:
            ConfigValidationError: Out of range or ``warning >= critical``
        """
        self.preferences.set_thresholds(warning, critical)
        self.notifications.set_thresholds(warning, critical)

    def set_notifications_enabled(self, enabled: bool) -> None:
        self.preferences.set_notifications_enabled(enabled)
        self.notifications.set_enabled(enabled)

    # History

    def get_trend(self, minutes: float = 30) -> TrendData | None:
        return self.history.get_trend(minutes)

    def estimate_time_to_threshold(self, threshold: float) -> TimeToThreshold | None:
        return self.history.estimate_time_to_threshold(threshold)

    def get_time_to_critical(self) -> TimeToThreshold | None:
        return self.history.estimate_time_to_threshold(
            self.notifications.critical_threshold
        )

    def get_history_stats(self, hours: int) -> HistoryStats | None:
        """Aggregates over the last ``hours`` (1 to 168)."""
        if (
            isinstance(hours, bool)
            or not isinstance(hours, int)
            or not MIN_STATS_HOURS <= hours <= MAX_STATS_HOURS
        ):
            raise ConfigValidationError(
                f"hours must be an integer between {MIN_STATS_HOURS} and {MAX_STATS_HOURS}",
                details={"hours": hours},
            )
        return self.history.get_stats(hours)

    def get_history(self, hours: float | None = None) -> list[HistoryEntry]:
        if hours is None:
            return self.history.get_entries()
        return self.history.get_entries_for_period(hours)

    def get_chart_data(self, hours: float) -> ChartData:
        return self.history.get_chart_data(hours)

    def clear_history(self) -> None:
        self.history.clear_history()

    def export_history_csv(self, hours: float | None = None) -> str:
        return self.history.export_csv(hours)

    # Authentication

    @property
    def auth_state(self) -> AuthState:
        return self.engine.state

    def start_login(self) -> str:
        return self.auth.start_login()

    async def submit_authorization_code(self, code: str) -> LoginResult:
        result = await self.auth.submit_authorization_code(code)
        if result.success and not self.scheduler.is_paused():
            await self.fetch_quota(force_refresh=True)
        return result

    async def logout(self) -> None:
        await self.auth.logout()

    async def has_credentials(self) -> bool:
        return await self.auth.has_credentials()

    async def get_user_info(self) -> UserInfo | None:
        return await self.auth.get_user_info()


def preferences_from_settings(settings: Settings) -> Preferences:
    """Preference defaults derived from the process configuration."""
    return Preferences(
        refresh_interval=settings.scheduler.refresh_interval,
        notifications_enabled=settings.notifications.enabled,
        warning_threshold=settings.notifications.warning_threshold,
        critical_threshold=settings.notifications.critical_threshold,
        adaptive_refresh=settings.scheduler.adaptive_refresh,
        auth_mode=settings.auth.mode,
    )
