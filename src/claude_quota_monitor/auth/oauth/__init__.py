"""OAuth endpoints and token exchange."""

from .client import OAuthClient, OAuthClientConfig


__all__ = ["OAuthClient", "OAuthClientConfig"]
