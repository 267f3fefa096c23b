"""Authentication and credential source configuration."""

from enum import StrEnum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from claude_quota_monitor.auth.oauth.constants import (
    APP_CLIENT_ID,
    APP_TOKEN_URL,
    CLI_CLIENT_ID,
    CLI_KEYCHAIN_SERVICE,
    CLI_TOKEN_URL,
    OAUTH_AUTHORIZE_URL,
    OAUTH_BETA_VERSION,
    OAUTH_REDIRECT_URI,
    OAUTH_SCOPES,
    OAUTH_USER_AGENT,
    USAGE_URL,
)


class AuthMode(StrEnum):
    """Which credential source the monitor queries."""

    APP = "app"
    CLI = "cli"


class SecretBackend(StrEnum):
    """Backend used for the platform secret store."""

    KEYRING = "keyring"
    FILE = "file"
    MEMORY = "memory"


class AuthSettings(BaseSettings):
    """Credential source, OAuth endpoints and secret storage settings."""

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_MONITOR_AUTH__",
        case_sensitive=False,
        extra="ignore",
    )

    mode: AuthMode = Field(
        default=AuthMode.APP,
        description="Credential source: 'app' (own OAuth login) or 'cli' (Claude Code keychain entry)",
    )

    secret_backend: SecretBackend = Field(
        default=SecretBackend.KEYRING,
        description="Where app-issued tokens are kept encrypted at rest",
    )

    secrets_path: Path | None = Field(
        default=None,
        description="Encrypted secrets file for the 'file' backend (defaults to the user data dir)",
    )

    app_keyring_service: str = Field(
        default="claude-quota-monitor",
        description="Keyring service name for app-issued tokens",
    )

    cli_keyring_service: str = Field(
        default=CLI_KEYCHAIN_SERVICE,
        description="Keyring service name under which Claude Code stores its credentials",
    )

    cli_keyring_account: str = Field(
        default=CLI_KEYCHAIN_SERVICE,
        description="Keyring account name of the Claude Code credentials entry",
    )

    authorize_url: str = Field(default=OAUTH_AUTHORIZE_URL)
    redirect_uri: str = Field(default=OAUTH_REDIRECT_URI)
    scopes: list[str] = Field(default_factory=lambda: list(OAUTH_SCOPES))

    app_client_id: str = Field(default=APP_CLIENT_ID)
    app_token_url: str = Field(default=APP_TOKEN_URL)
    cli_client_id: str = Field(default=CLI_CLIENT_ID)
    cli_token_url: str = Field(default=CLI_TOKEN_URL)

    usage_url: str = Field(default=USAGE_URL)
    beta_version: str = Field(default=OAUTH_BETA_VERSION)
    user_agent: str = Field(default=OAUTH_USER_AGENT)

    request_timeout: float = Field(
        default=30.0,
        gt=0,
        le=120.0,
        description="Timeout in seconds for token and usage requests",
    )

    expiry_buffer_seconds: int = Field(
        default=300,
        ge=0,
        description="Refresh the access token this many seconds before it expires",
    )

    @property
    def client_id(self) -> str:
        """Client id matching the configured credential source."""
        return self.app_client_id if self.mode == AuthMode.APP else self.cli_client_id

    @property
    def token_url(self) -> str:
        """Token endpoint matching the configured credential source."""
        return self.app_token_url if self.mode == AuthMode.APP else self.cli_token_url
