"""Tests for the OAuth token endpoint client."""

import base64
import hashlib
import urllib.parse
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from claude_quota_monitor.auth.oauth import OAuthClient, OAuthClientConfig
from claude_quota_monitor.auth.oauth.constants import (
    APP_CLIENT_ID,
    APP_TOKEN_URL,
    CLI_CLIENT_ID,
    CLI_TOKEN_URL,
    OAUTH_REDIRECT_URI,
)
from claude_quota_monitor.exceptions import (
    OAuthLoginError,
    OAuthTokenRefreshError,
    TokenExchangeError,
)


def make_client(
    handler: Callable[[httpx.Request], httpx.Response],
    config: OAuthClientConfig | None = None,
) -> OAuthClient:
    return OAuthClient(
        config=config, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )


def form(request: httpx.Request) -> dict[str, str]:
    return dict(urllib.parse.parse_qsl(request.content.decode()))


@pytest.mark.unit
class TestOAuthClientConfig:
    def test_app_profile(self) -> None:
        config = OAuthClientConfig.app()
        assert config.client_id == APP_CLIENT_ID
        assert config.token_url == APP_TOKEN_URL

    def test_cli_profile(self) -> None:
        config = OAuthClientConfig.cli()
        assert config.client_id == CLI_CLIENT_ID
        assert config.token_url == CLI_TOKEN_URL


@pytest.mark.unit
class TestAuthorizationRequest:
    def test_pkce_challenge_matches_verifier(self) -> None:
        verifier, challenge = OAuthClient().generate_pkce_pair()

        expected = (
            base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
            .decode()
            .rstrip("=")
        )
        assert challenge == expected
        assert len(verifier) >= 43

    def test_pkce_pairs_are_unique(self) -> None:
        client = OAuthClient()
        assert client.generate_pkce_pair()[0] != client.generate_pkce_pair()[0]

    def test_authorization_url(self) -> None:
        url = OAuthClient().build_authorization_url("state-123", "challenge-abc")

        parsed = urllib.parse.urlparse(url)
        params = dict(urllib.parse.parse_qsl(parsed.query))
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == (
            "https://claude.ai/oauth/authorize"
        )
        assert params["code"] == "true"
        assert params["client_id"] == APP_CLIENT_ID
        assert params["response_type"] == "code"
        assert params["redirect_uri"] == OAUTH_REDIRECT_URI
        assert params["scope"] == "user:inference user:profile"
        assert params["code_challenge"] == "challenge-abc"
        assert params["code_challenge_method"] == "S256"
        assert params["state"] == "state-123"


@pytest.mark.unit
@pytest.mark.asyncio
class TestTokenRequests:
    async def test_exchange_code_posts_form(
        self, token_body: Callable[..., dict[str, Any]]
    ) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=token_body())

        token = await make_client(handler).exchange_code("the-code", "verifier", "st")

        assert token.access_token == "sk-ant-oat01-new-access"
        assert token.refresh_token == "sk-ant-ort01-new-refresh"
        assert token.expires_in == 3600

        request = seen[0]
        assert str(request.url) == APP_TOKEN_URL
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        assert form(request) == {
            "grant_type": "authorization_code",
            "code": "the-code",
            "client_id": APP_CLIENT_ID,
            "redirect_uri": OAUTH_REDIRECT_URI,
            "code_verifier": "verifier",
            "state": "st",
        }

    async def test_refresh_posts_form(
        self, token_body: Callable[..., dict[str, Any]]
    ) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=token_body())

        client = make_client(handler, OAuthClientConfig.cli())
        await client.refresh("sk-ant-ort01-old")

        assert str(seen[0].url) == CLI_TOKEN_URL
        assert form(seen[0]) == {
            "grant_type": "refresh_token",
            "refresh_token": "sk-ant-ort01-old",
            "client_id": CLI_CLIENT_ID,
        }

    async def test_error_status(self) -> None:
        client = make_client(lambda _: httpx.Response(400, text="invalid_grant"))

        with pytest.raises(TokenExchangeError) as exc_info:
            await client.refresh("sk-ant-ort01-old")

        assert exc_info.value.status_code == 400
        assert exc_info.value.response_text == "invalid_grant"

    async def test_incomplete_response(
        self, token_body: Callable[..., dict[str, Any]]
    ) -> None:
        client = make_client(
            lambda _: httpx.Response(200, json=token_body(refresh_token=None))
        )

        with pytest.raises(TokenExchangeError) as exc_info:
            await client.exchange_code("code", "verifier")

        assert exc_info.value.status_code == 200

    async def test_unreadable_body(self) -> None:
        client = make_client(lambda _: httpx.Response(200, text="<html>"))

        with pytest.raises(TokenExchangeError):
            await client.refresh("sk-ant-ort01-old")

    async def test_transport_error_during_exchange(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("offline", request=request)

        with pytest.raises(OAuthLoginError):
            await make_client(handler).exchange_code("code", "verifier")

    async def test_transport_error_during_refresh(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(OAuthTokenRefreshError):
            await make_client(handler).refresh("sk-ant-ort01-old")
