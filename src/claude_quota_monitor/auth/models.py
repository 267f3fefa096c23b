"""Credential and token models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from claude_quota_monitor.core.timeutils import ms_to_datetime, now_ms


class AuthState(StrEnum):
    """Lifecycle state of the configured credential source."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    REFRESHING = "refreshing"


class Credentials(BaseModel):
    """OAuth token pair plus optional issuer metadata.

    ``expires_at`` is Unix milliseconds. Externally managed credentials may
    omit it, in which case the token is treated as never expiring.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(min_length=1)
    refresh_token: str | None = None
    expires_at: int | None = None
    scopes: list[str] = Field(default_factory=list)
    account_id: str | None = None
    subscription_type: str | None = None
    email: str | None = None
    display_name: str | None = None

    @field_validator("access_token")
    @classmethod
    def strip_access_token(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("access_token must not be empty")
        return v

    @property
    def expires_at_datetime(self) -> datetime | None:
        """Convert expires_at to datetime."""
        if self.expires_at is None:
            return None
        return ms_to_datetime(self.expires_at)

    def expires_in_seconds(self, now: int | None = None) -> int | None:
        """Seconds until token expires (negative if expired)."""
        if self.expires_at is None:
            return None
        current = now if now is not None else now_ms()
        return (self.expires_at - current) // 1000

    def is_expired(self, buffer_seconds: int = 0, now: int | None = None) -> bool:
        """Check whether the token is expired or within ``buffer_seconds`` of it."""
        if self.expires_at is None:
            return False
        current = now if now is not None else now_ms()
        return current > self.expires_at - buffer_seconds * 1000


class OAuthTokenResponse(BaseModel):
    """Token endpoint response for both grant types."""

    model_config = ConfigDict(extra="ignore")

    access_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str | None = None
    scope: str | None = None


class UserInfo(BaseModel):
    """Account details exposed to the presentation layer."""

    email: str | None = None
    name: str | None = None
    subscription_type: str | None = None
    auth_source: str


class LoginResult(BaseModel):
    """Outcome of submitting an authorization code."""

    success: bool
    error: str | None = None
