"""OAuth client for the authorization-code (PKCE) and refresh grants."""

import base64
import hashlib
import secrets
import urllib.parse
from dataclasses import dataclass, field

import httpx
from pydantic import ValidationError
from structlog import get_logger

from claude_quota_monitor.auth.models import OAuthTokenResponse
from claude_quota_monitor.exceptions import (
    OAuthLoginError,
    OAuthTokenRefreshError,
    TokenExchangeError,
)

from .constants import (
    APP_CLIENT_ID,
    APP_TOKEN_URL,
    CLI_CLIENT_ID,
    CLI_TOKEN_URL,
    OAUTH_AUTHORIZE_URL,
    OAUTH_REDIRECT_URI,
    OAUTH_SCOPES,
    OAUTH_USER_AGENT,
)


logger = get_logger(__name__)


@dataclass
class OAuthClientConfig:
    """Endpoints and identity of one OAuth client profile."""

    client_id: str = APP_CLIENT_ID
    token_url: str = APP_TOKEN_URL
    authorize_url: str = OAUTH_AUTHORIZE_URL
    redirect_uri: str = OAUTH_REDIRECT_URI
    scopes: list[str] = field(default_factory=lambda: list(OAUTH_SCOPES))
    user_agent: str = OAUTH_USER_AGENT
    timeout: float = 30.0

    @classmethod
    def app(cls) -> "OAuthClientConfig":
        """Profile of this application's own OAuth client."""
        return cls()

    @classmethod
    def cli(cls) -> "OAuthClientConfig":
        """Profile of the Claude Code CLI client."""
        return cls(client_id=CLI_CLIENT_ID, token_url=CLI_TOKEN_URL)


def _truncate(text: str, limit: int = 500) -> str:
    return text if len(text) <= limit else text[:limit]


class OAuthClient:
    """Token endpoint client.

    Supports connection pooling by reusing an ``httpx.AsyncClient`` across
    requests when one is supplied.
    """

    def __init__(
        self,
        config: OAuthClientConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize OAuth client.

        Args:
            config: Client profile, defaults to the application client
            http_client: Optional shared httpx client for connection pooling
        """
        self.config = config or OAuthClientConfig()
        self._shared_client = http_client

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
            "User-Agent": self.config.user_agent,
        }

    def generate_pkce_pair(self) -> tuple[str, str]:
        """Generate PKCE code verifier and challenge pair using SHA256.

        Returns:
            Tuple of (code_verifier, code_challenge)
        """
        code_verifier = secrets.token_urlsafe(32)
        code_challenge = (
            base64.urlsafe_b64encode(hashlib.sha256(code_verifier.encode()).digest())
            .decode()
            .rstrip("=")
        )
        return code_verifier, code_challenge

    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        """Build authorization URL for OAuth flow.

        Args:
            state: State parameter for CSRF protection
            code_challenge: PKCE code challenge (SHA256 hash)

        Returns:
            Authorization URL
        """
        params = {
            "code": "true",  # shows the code on the callback page for manual paste
            "client_id": self.config.client_id,
            "response_type": "code",
            "redirect_uri": self.config.redirect_uri,
            "scope": " ".join(self.config.scopes),
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "state": state,
        }
        return f"{self.config.authorize_url}?{urllib.parse.urlencode(params)}"

    async def _post_token(self, data: dict[str, str], operation: str) -> OAuthTokenResponse:
        if self._shared_client is not None:
            response = await self._shared_client.post(
                self.config.token_url,
                headers=self._headers(),
                data=data,
                timeout=self.config.timeout,
            )
        else:
            async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                response = await client.post(
                    self.config.token_url, headers=self._headers(), data=data
                )

        if not response.is_success:
            error_text = _truncate(response.text)
            logger.error(
                f"oauth_{operation}_failed",
                status_code=response.status_code,
                response_preview=error_text,
            )
            raise TokenExchangeError(
                f"{operation} failed ({response.status_code})",
                status_code=response.status_code,
                response_text=error_text,
            )

        try:
            token = OAuthTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TokenExchangeError(
                f"{operation} returned an unreadable body",
                status_code=response.status_code,
                response_text=_truncate(response.text),
            ) from e

        if not token.access_token or not token.refresh_token:
            logger.error(f"oauth_{operation}_incomplete_response")
            raise TokenExchangeError(
                f"{operation} returned incomplete token data",
                status_code=response.status_code,
            )
        return token

    async def exchange_code(
        self, code: str, code_verifier: str, state: str | None = None
    ) -> OAuthTokenResponse:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code shown on the callback page
            code_verifier: PKCE verifier used for the authorization request
            state: State echoed by the authorization server, if any

        Returns:
            Token response carrying both access and refresh token

        Raises:
            TokenExchangeError: Non-2xx status or incomplete response
            OAuthLoginError: Transport failure or timeout
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "code_verifier": code_verifier,
        }
        if state:
            data["state"] = state

        try:
            return await self._post_token(data, "token_exchange")
        except httpx.HTTPError as e:
            logger.error("oauth_token_exchange_transport_error", error=str(e))
            raise OAuthLoginError(f"Token exchange failed: {e}") from e

    async def refresh(self, refresh_token: str) -> OAuthTokenResponse:
        """Exchange a refresh token for a new token pair.

        Args:
            refresh_token: Current refresh token

        Returns:
            Token response carrying both access and refresh token

        Raises:
            TokenExchangeError: Non-2xx status or incomplete response
            OAuthTokenRefreshError: Transport failure or timeout
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.config.client_id,
        }
        try:
            return await self._post_token(data, "token_refresh")
        except httpx.HTTPError as e:
            logger.error("oauth_token_refresh_transport_error", error=str(e))
            raise OAuthTokenRefreshError(f"Token refresh failed: {e}") from e
