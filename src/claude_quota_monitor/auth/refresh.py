"""Token refresh with single-flight semantics and auth state tracking."""

import asyncio
from collections.abc import Callable

from structlog import get_logger

from claude_quota_monitor.auth.models import AuthState, Credentials
from claude_quota_monitor.auth.oauth.client import OAuthClient
from claude_quota_monitor.auth.oauth.constants import DEFAULT_TOKEN_EXPIRY_SECONDS
from claude_quota_monitor.auth.storage.base import CredentialStore
from claude_quota_monitor.core.timeutils import Clock, now_ms
from claude_quota_monitor.exceptions import OAuthError


logger = get_logger(__name__)

AuthStateListener = Callable[[AuthState], None]


class TokenRefreshEngine:
    """Keeps the configured credentials usable.

    At most one refresh exchange is in flight at any time. Concurrent callers
    await the same task and share its result.
    """

    def __init__(
        self,
        store: CredentialStore,
        oauth_client: OAuthClient,
        on_refresh_failed: Callable[[], None] | None = None,
        expiry_buffer_seconds: int = 300,
        clock: Clock = now_ms,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Credential source selected by the auth mode
            oauth_client: Token endpoint client matching that source
            on_refresh_failed: Called after every failed refresh exchange
            expiry_buffer_seconds: Refresh this long before the token expires
            clock: Millisecond clock
        """
        self.store = store
        self.oauth_client = oauth_client
        self.on_refresh_failed = on_refresh_failed
        self.expiry_buffer_seconds = expiry_buffer_seconds
        self._clock = clock
        self._refresh_task: asyncio.Task[Credentials | None] | None = None
        self._state = AuthState.UNAUTHENTICATED
        self._listeners: list[AuthStateListener] = []

    @property
    def state(self) -> AuthState:
        return self._state

    def subscribe(self, callback: AuthStateListener) -> Callable[[], None]:
        """Register an auth state listener.

        Returns:
            Function removing the listener again
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def set_state(self, state: AuthState) -> None:
        """Transition the auth state, notifying listeners on change."""
        if state == self._state:
            return
        previous = self._state
        self._state = state
        logger.debug("auth_state_changed", previous=previous, state=state)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error("auth_state_listener_failed", error=str(e), exc_info=e)

    async def initialize(self) -> AuthState:
        """Derive the initial auth state from the store."""
        credentials = await self.store.load()
        if credentials is None:
            self.set_state(AuthState.UNAUTHENTICATED)
        elif credentials.is_expired(now=self._clock()):
            self.set_state(AuthState.EXPIRED)
        else:
            self.set_state(AuthState.AUTHENTICATED)
        return self._state

    async def get_valid_credentials(self) -> Credentials | None:
        """Return credentials, refreshing first when close to expiry.

        A failed refresh yields the stale credentials; the caller's request
        then decides whether they still work.
        """
        credentials = await self.store.load()
        if credentials is None:
            self.set_state(AuthState.UNAUTHENTICATED)
            return None

        if not credentials.is_expired(self.expiry_buffer_seconds, now=self._clock()):
            if self._state != AuthState.REFRESHING:
                self.set_state(AuthState.AUTHENTICATED)
            return credentials

        logger.info(
            "access_token_near_expiry",
            expires_in_seconds=credentials.expires_in_seconds(now=self._clock()),
        )
        refreshed = await self.refresh_token(credentials)
        if refreshed is not None:
            return refreshed

        logger.warning("using_stale_credentials_after_refresh_failure")
        return credentials

    async def refresh_token(
        self, credentials: Credentials | None = None
    ) -> Credentials | None:
        """Refresh the access token.

        Args:
            credentials: Credentials to refresh, loaded from the store if omitted

        Returns:
            The new credentials, or None when refresh is impossible or failed
        """
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.create_task(self._do_refresh(credentials))
            self._refresh_task = task
        else:
            logger.debug("token_refresh_joining_in_flight")
        return await asyncio.shield(task)

    async def _do_refresh(self, credentials: Credentials | None) -> Credentials | None:
        try:
            current = credentials or await self.store.load()
            if current is None:
                self.set_state(AuthState.UNAUTHENTICATED)
                return None
            if not current.refresh_token:
                logger.warning(
                    "token_refresh_skipped_no_refresh_token",
                    location=self.store.get_location(),
                )
                if current.is_expired(now=self._clock()):
                    self.set_state(AuthState.EXPIRED)
                return None

            self.set_state(AuthState.REFRESHING)
            logger.info("token_refresh_started", location=self.store.get_location())

            try:
                token = await self.oauth_client.refresh(current.refresh_token)
            except OAuthError as e:
                logger.error("token_refresh_failed", error=str(e))
                self._handle_failure()
                return None

            now = self._clock()
            expires_in = token.expires_in or DEFAULT_TOKEN_EXPIRY_SECONDS
            expires_at = now + expires_in * 1000
            if current.expires_at is not None:
                expires_at = max(expires_at, current.expires_at)

            update: dict[str, object] = {
                "access_token": token.access_token,
                "refresh_token": token.refresh_token,
                "expires_at": expires_at,
            }
            if token.scope:
                update["scopes"] = token.scope.split()
            refreshed = current.model_copy(update=update)

            if not await self.store.save(refreshed):
                logger.error(
                    "token_refresh_persist_failed", location=self.store.get_location()
                )
                self._handle_failure()
                return None

            self.set_state(AuthState.AUTHENTICATED)
            logger.info(
                "token_refresh_completed",
                expires_in_seconds=refreshed.expires_in_seconds(now=now),
            )
            return refreshed
        finally:
            self._refresh_task = None

    def _handle_failure(self) -> None:
        self.set_state(AuthState.EXPIRED)
        if self.on_refresh_failed is None:
            return
        try:
            self.on_refresh_failed()
        except Exception as e:
            logger.error("refresh_failed_callback_error", error=str(e), exc_info=e)
