"""Login, logout and account information for the configured credential source."""

import secrets
import webbrowser
from collections.abc import Callable

from structlog import get_logger

from claude_quota_monitor.auth.models import AuthState, Credentials, LoginResult, UserInfo
from claude_quota_monitor.auth.oauth.client import OAuthClient
from claude_quota_monitor.auth.oauth.constants import DEFAULT_TOKEN_EXPIRY_SECONDS
from claude_quota_monitor.auth.refresh import TokenRefreshEngine
from claude_quota_monitor.auth.storage.base import CredentialStore
from claude_quota_monitor.config.auth import AuthMode
from claude_quota_monitor.core.logging import redact_token
from claude_quota_monitor.core.timeutils import Clock, now_ms
from claude_quota_monitor.exceptions import OAuthLoginError, TokenExchangeError


logger = get_logger(__name__)

MIN_CODE_LENGTH = 5


class AuthManager:
    """Interactive login lifecycle on top of the refresh engine."""

    def __init__(
        self,
        mode: AuthMode,
        store: CredentialStore,
        engine: TokenRefreshEngine,
        oauth_client: OAuthClient,
        browser_opener: Callable[[str], object] | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.mode = mode
        self.store = store
        self.engine = engine
        self.oauth_client = oauth_client
        self._open_browser = browser_opener or webbrowser.open
        self._clock = clock
        self._code_verifier: str | None = None
        self._state_param: str | None = None

    @property
    def state(self) -> AuthState:
        return self.engine.state

    def is_login_in_progress(self) -> bool:
        return self._code_verifier is not None

    def _clear_pending_login(self) -> None:
        self._code_verifier = None
        self._state_param = None

    def start_login(self) -> str:
        """Begin the authorization-code flow.

        Returns:
            The authorization URL that was opened

        Raises:
            OAuthLoginError: The configured source does not support login
        """
        if self.mode != AuthMode.APP:
            raise OAuthLoginError(
                "Login is only available for the 'app' credential source; "
                "sign in with Claude Code instead"
            )

        code_verifier, code_challenge = self.oauth_client.generate_pkce_pair()
        self._code_verifier = code_verifier
        self._state_param = secrets.token_hex(32)
        url = self.oauth_client.build_authorization_url(self._state_param, code_challenge)

        try:
            self._open_browser(url)
        except Exception as e:
            # The URL is returned either way so it can be opened by hand.
            logger.warning("browser_open_failed", error=str(e))

        logger.info("oauth_login_started")
        return url

    async def submit_authorization_code(self, raw_code: str) -> LoginResult:
        """Complete the flow with the code pasted from the callback page.

        The callback page shows ``code#state``; both parts are forwarded.
        """
        if self._code_verifier is None:
            return LoginResult(
                success=False, error="No login in progress. Please start login first."
            )

        trimmed = raw_code.strip()
        if len(trimmed) < MIN_CODE_LENGTH:
            return LoginResult(
                success=False,
                error="Invalid authorization code. Please paste the full code.",
            )

        code, _, state = trimmed.partition("#")
        code_verifier = self._code_verifier
        self._clear_pending_login()

        try:
            token = await self.oauth_client.exchange_code(
                code, code_verifier, state=state or None
            )
        except TokenExchangeError as e:
            if e.status_code is None or e.status_code < 400:
                return LoginResult(success=False, error="Received incomplete token data.")
            return LoginResult(
                success=False,
                error=f"Authentication failed ({e.status_code}). Please try again.",
            )
        except OAuthLoginError:
            return LoginResult(
                success=False,
                error="Network error. Please check your connection and try again.",
            )

        expires_in = token.expires_in or DEFAULT_TOKEN_EXPIRY_SECONDS
        assert token.access_token is not None
        credentials = Credentials(
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            expires_at=self._clock() + expires_in * 1000,
            scopes=(
                token.scope.split()
                if token.scope
                else list(self.oauth_client.config.scopes)
            ),
        )

        if not await self.store.save(credentials):
            return LoginResult(
                success=False, error="Could not store credentials securely."
            )

        self.engine.set_state(AuthState.AUTHENTICATED)
        logger.info("oauth_login_succeeded", token=redact_token(credentials.access_token))
        return LoginResult(success=True)

    async def logout(self) -> None:
        """Forget credentials.

        Externally managed credentials are left in place; only cached state
        is reset.
        """
        self._clear_pending_login()
        if self.store.read_only:
            logger.info("logout_external_source_untouched", location=self.store.get_location())
        else:
            await self.store.delete()
            logger.info("logged_out", location=self.store.get_location())
        self.engine.set_state(AuthState.UNAUTHENTICATED)

    async def has_credentials(self) -> bool:
        return await self.store.exists()

    async def get_user_info(self) -> UserInfo | None:
        """Account details of the stored credentials, if any."""
        credentials = await self.store.load()
        if credentials is None:
            return None
        return UserInfo(
            email=credentials.email,
            name=credentials.display_name,
            subscription_type=credentials.subscription_type,
            auth_source=str(self.mode),
        )
