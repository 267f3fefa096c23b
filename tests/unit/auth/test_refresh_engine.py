"""Tests for the token refresh engine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import FakeClock

from claude_quota_monitor.auth.models import AuthState, Credentials, OAuthTokenResponse
from claude_quota_monitor.auth.oauth import OAuthClient
from claude_quota_monitor.auth.refresh import TokenRefreshEngine
from claude_quota_monitor.auth.secret_store import MemorySecretStore
from claude_quota_monitor.auth.storage import AppCredentialStore
from claude_quota_monitor.core.timeutils import HOUR_MS, MINUTE_MS
from claude_quota_monitor.exceptions import OAuthTokenRefreshError, TokenExchangeError


def token_response(expires_in: int = 3600) -> OAuthTokenResponse:
    return OAuthTokenResponse(
        access_token="sk-ant-oat01-refreshed",
        refresh_token="sk-ant-ort01-refreshed",
        expires_in=expires_in,
    )


@pytest.fixture
def oauth_client() -> MagicMock:
    client = MagicMock(spec=OAuthClient)
    client.refresh = AsyncMock(return_value=token_response())
    return client


@pytest.fixture
def store(secret_store: MemorySecretStore) -> AppCredentialStore:
    return AppCredentialStore(secret_store)


@pytest.fixture
def on_failed() -> MagicMock:
    return MagicMock()


@pytest.fixture
def engine(
    store: AppCredentialStore,
    oauth_client: MagicMock,
    on_failed: MagicMock,
    clock: FakeClock,
) -> TokenRefreshEngine:
    return TokenRefreshEngine(
        store, oauth_client, on_refresh_failed=on_failed, clock=clock
    )


def near_expiry(clock: FakeClock, credentials: Credentials) -> Credentials:
    return credentials.model_copy(update={"expires_at": clock.now + MINUTE_MS})


@pytest.mark.unit
@pytest.mark.asyncio
class TestInitialize:
    async def test_no_credentials(self, engine: TokenRefreshEngine) -> None:
        assert await engine.initialize() == AuthState.UNAUTHENTICATED

    async def test_valid_credentials(
        self,
        engine: TokenRefreshEngine,
        store: AppCredentialStore,
        credentials: Credentials,
    ) -> None:
        await store.save(credentials)
        assert await engine.initialize() == AuthState.AUTHENTICATED

    async def test_expired_credentials(
        self,
        engine: TokenRefreshEngine,
        store: AppCredentialStore,
        expired_credentials: Credentials,
    ) -> None:
        await store.save(expired_credentials)
        assert await engine.initialize() == AuthState.EXPIRED


@pytest.mark.unit
@pytest.mark.asyncio
class TestGetValidCredentials:
    async def test_fresh_credentials_returned_without_refresh(
        self,
        engine: TokenRefreshEngine,
        store: AppCredentialStore,
        credentials: Credentials,
        oauth_client: MagicMock,
    ) -> None:
        await store.save(credentials)

        assert await engine.get_valid_credentials() == credentials
        oauth_client.refresh.assert_not_called()
        assert engine.state == AuthState.AUTHENTICATED

    async def test_none_when_store_empty(self, engine: TokenRefreshEngine) -> None:
        assert await engine.get_valid_credentials() is None
        assert engine.state == AuthState.UNAUTHENTICATED

    async def test_refreshes_inside_expiry_buffer(
        self,
        engine: TokenRefreshEngine,
        store: AppCredentialStore,
        credentials: Credentials,
        oauth_client: MagicMock,
        clock: FakeClock,
    ) -> None:
        await store.save(near_expiry(clock, credentials))

        result = await engine.get_valid_credentials()

        assert result is not None
        assert result.access_token == "sk-ant-oat01-refreshed"
        oauth_client.refresh.assert_awaited_once_with("sk-ant-ort01-refresh-token")
        assert await store.load() == result

    async def test_stale_credentials_after_failed_refresh(
        self,
        engine: TokenRefreshEngine,
        store: AppCredentialStore,
        credentials: Credentials,
        oauth_client: MagicMock,
        clock: FakeClock,
    ) -> None:
        stale = near_expiry(clock, credentials)
        await store.save(stale)
        oauth_client.refresh.side_effect = OAuthTokenRefreshError("offline")

        assert await engine.get_valid_credentials() == stale
        assert engine.state == AuthState.EXPIRED


@pytest.mark.unit
@pytest.mark.asyncio
class TestRefreshToken:
    async def test_successful_refresh_keeps_metadata(
        self,
        engine: TokenRefreshEngine,
        store: AppCredentialStore,
        credentials: Credentials,
        clock: FakeClock,
    ) -> None:
        current = near_expiry(clock, credentials)
        await store.save(current)

        refreshed = await engine.refresh_token()

        assert refreshed is not None
        assert refreshed.refresh_token == "sk-ant-ort01-refreshed"
        assert refreshed.expires_at == clock.now + HOUR_MS
        assert refreshed.email == "user@example.com"
        assert refreshed.subscription_type == "max"
        assert engine.state == AuthState.AUTHENTICATED

    async def test_expiry_never_moves_backwards(
        self,
        engine: TokenRefreshEngine,
        store: AppCredentialStore,
        credentials: Credentials,
        oauth_client: MagicMock,
        clock: FakeClock,
    ) -> None:
        long_lived = credentials.model_copy(
            update={"expires_at": clock.now + 10 * HOUR_MS}
        )
        await store.save(long_lived)
        oauth_client.refresh.return_value = token_response(expires_in=60)

        refreshed = await engine.refresh_token()

        assert refreshed is not None
        assert refreshed.expires_at == long_lived.expires_at

    async def test_concurrent_callers_share_one_exchange(
        self,
        engine: TokenRefreshEngine,
        store: AppCredentialStore,
        credentials: Credentials,
        oauth_client: MagicMock,
    ) -> None:
        await store.save(credentials)
        release = asyncio.Event()

        async def slow_refresh(refresh_token: str) -> OAuthTokenResponse:
            await release.wait()
            return token_response()

        oauth_client.refresh.side_effect = slow_refresh

        tasks = [asyncio.create_task(engine.refresh_token()) for _ in range(5)]
        while not oauth_client.refresh.called:
            await asyncio.sleep(0.01)
        assert engine.state == AuthState.REFRESHING
        release.set()
        results = await asyncio.gather(*tasks)

        assert oauth_client.refresh.await_count == 1
        assert all(r is not None for r in results)
        assert len({r.access_token for r in results if r}) == 1

    async def test_new_refresh_after_previous_completed(
        self,
        engine: TokenRefreshEngine,
        store: AppCredentialStore,
        credentials: Credentials,
        oauth_client: MagicMock,
    ) -> None:
        await store.save(credentials)

        await engine.refresh_token()
        await engine.refresh_token()

        assert oauth_client.refresh.await_count == 2

    async def test_failure_sets_expired_and_notifies(
        self,
        engine: TokenRefreshEngine,
        store: AppCredentialStore,
        credentials: Credentials,
        oauth_client: MagicMock,
        on_failed: MagicMock,
    ) -> None:
        await store.save(credentials)
        oauth_client.refresh.side_effect = TokenExchangeError(
            "token_refresh failed (400)", status_code=400
        )

        assert await engine.refresh_token() is None
        assert engine.state == AuthState.EXPIRED
        on_failed.assert_called_once_with()
        assert await store.load() == credentials

    async def test_failing_callback_is_contained(
        self,
        engine: TokenRefreshEngine,
        store: AppCredentialStore,
        credentials: Credentials,
        oauth_client: MagicMock,
        on_failed: MagicMock,
    ) -> None:
        await store.save(credentials)
        oauth_client.refresh.side_effect = OAuthTokenRefreshError("offline")
        on_failed.side_effect = RuntimeError("boom")

        assert await engine.refresh_token() is None

    async def test_without_refresh_token(
        self,
        engine: TokenRefreshEngine,
        store: AppCredentialStore,
        oauth_client: MagicMock,
        on_failed: MagicMock,
        clock: FakeClock,
    ) -> None:
        await store.save(
            Credentials(access_token="sk-ant-oat01-only", expires_at=clock.now - 1)
        )

        assert await engine.refresh_token() is None
        oauth_client.refresh.assert_not_called()
        on_failed.assert_not_called()
        assert engine.state == AuthState.EXPIRED

    async def test_without_credentials(
        self, engine: TokenRefreshEngine, oauth_client: MagicMock
    ) -> None:
        assert await engine.refresh_token() is None
        oauth_client.refresh.assert_not_called()
        assert engine.state == AuthState.UNAUTHENTICATED

    async def test_save_failure_counts_as_refresh_failure(
        self,
        oauth_client: MagicMock,
        on_failed: MagicMock,
        credentials: Credentials,
        clock: FakeClock,
    ) -> None:
        store = MagicMock(spec=AppCredentialStore)
        store.load = AsyncMock(return_value=credentials)
        store.save = AsyncMock(return_value=False)
        store.get_location.return_value = "memory#credentials"
        engine = TokenRefreshEngine(
            store, oauth_client, on_refresh_failed=on_failed, clock=clock
        )

        assert await engine.refresh_token() is None
        on_failed.assert_called_once_with()
        assert engine.state == AuthState.EXPIRED


@pytest.mark.unit
@pytest.mark.asyncio
class TestStateListeners:
    async def test_listeners_see_transitions(
        self,
        engine: TokenRefreshEngine,
        store: AppCredentialStore,
        credentials: Credentials,
    ) -> None:
        await store.save(credentials)
        seen: list[AuthState] = []
        engine.subscribe(seen.append)

        await engine.refresh_token()

        assert seen == [AuthState.REFRESHING, AuthState.AUTHENTICATED]

    async def test_unsubscribe(self, engine: TokenRefreshEngine) -> None:
        seen: list[AuthState] = []
        unsubscribe = engine.subscribe(seen.append)
        unsubscribe()

        engine.set_state(AuthState.AUTHENTICATED)

        assert seen == []

    async def test_unchanged_state_is_not_broadcast(
        self, engine: TokenRefreshEngine
    ) -> None:
        seen: list[AuthState] = []
        engine.subscribe(seen.append)

        engine.set_state(AuthState.UNAUTHENTICATED)

        assert seen == []

    async def test_failing_listener_does_not_block_others(
        self, engine: TokenRefreshEngine
    ) -> None:
        seen: list[AuthState] = []

        def broken(state: AuthState) -> None:
            raise RuntimeError("boom")

        engine.subscribe(broken)
        engine.subscribe(seen.append)

        engine.set_state(AuthState.AUTHENTICATED)

        assert seen == [AuthState.AUTHENTICATED]
