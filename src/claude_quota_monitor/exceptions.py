"""Consolidated exception hierarchy for the quota monitor.

All exceptions use proper exception chaining with the `from` keyword.
Error types use StrEnum for type safety and autocompletion.
"""

from enum import StrEnum
from typing import Any


class QuotaErrorType(StrEnum):
    """Classification of a failed quota fetch."""

    NETWORK = "network"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    UNKNOWN = "unknown"


# ============================================================================
# Base Exceptions
# ============================================================================


class QuotaMonitorError(Exception):
    """Base exception for all quota monitor errors.

    Supports structured error details for logging.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# Configuration & Validation Errors
# ============================================================================


class ConfigurationError(QuotaMonitorError):
    """Raised when configuration loading or validation fails."""

    pass


class ConfigValidationError(QuotaMonitorError):
    """A setting value was rejected by a mutator."""

    pass


# ============================================================================
# Credentials & OAuth Errors
# ============================================================================


class CredentialsError(QuotaMonitorError):
    """Base credentials error."""

    pass


class CredentialsStorageError(CredentialsError):
    """Error occurred during credentials storage operations."""

    pass


class OAuthError(QuotaMonitorError):
    """Base OAuth error."""

    pass


class OAuthLoginError(OAuthError):
    """OAuth login failed."""

    pass


class OAuthTokenRefreshError(OAuthError):
    """OAuth token refresh failed."""

    pass


class TokenExchangeError(OAuthError):
    """Token endpoint rejected the exchange or returned unusable data."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


# ============================================================================
# Quota Fetch Errors
# ============================================================================


class QuotaFetchError(QuotaMonitorError):
    """A classified failure of a single usage request.

    Raised inside the retry loop; retryable instances are retried with
    backoff, the last one is converted into a QuotaError value.
    """

    def __init__(
        self,
        message: str,
        *,
        error_type: QuotaErrorType,
        retryable: bool,
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            message, details={"status_code": status_code} if status_code else None
        )
        self.error_type = error_type
        self.retryable = retryable
        self.status_code = status_code


__all__ = [
    # Enums
    "QuotaErrorType",
    # Base
    "QuotaMonitorError",
    # Configuration
    "ConfigurationError",
    "ConfigValidationError",
    # Credentials & OAuth
    "CredentialsError",
    "CredentialsStorageError",
    "OAuthError",
    "OAuthLoginError",
    "OAuthTokenRefreshError",
    "TokenExchangeError",
    # Quota
    "QuotaFetchError",
]
