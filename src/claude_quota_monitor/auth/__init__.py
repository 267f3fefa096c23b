"""Authentication: credential sources, OAuth exchange and token refresh."""

from claude_quota_monitor.auth.models import (
    AuthState,
    Credentials,
    LoginResult,
    OAuthTokenResponse,
    UserInfo,
)


__all__ = [
    "AuthState",
    "Credentials",
    "LoginResult",
    "OAuthTokenResponse",
    "UserInfo",
]
