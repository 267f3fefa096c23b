"""Shared fixtures for the quota monitor test suite."""

from collections.abc import Callable
from typing import Any

import pytest

from claude_quota_monitor.auth.models import Credentials
from claude_quota_monitor.auth.secret_store import MemorySecretStore
from claude_quota_monitor.core.timeutils import HOUR_MS, now_ms


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int | None = None) -> None:
        self.now = start if start is not None else now_ms()

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms

    def advance_seconds(self, seconds: float) -> None:
        self.now += int(seconds * 1000)

    def advance_minutes(self, minutes: float) -> None:
        self.now += int(minutes * 60 * 1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def secret_store() -> MemorySecretStore:
    return MemorySecretStore()


@pytest.fixture
def credentials(clock: FakeClock) -> Credentials:
    """Credentials valid for another hour."""
    return Credentials(
        access_token="sk-ant-oat01-access-token",
        refresh_token="sk-ant-ort01-refresh-token",
        expires_at=clock.now + HOUR_MS,
        scopes=["user:inference", "user:profile"],
        subscription_type="max",
        email="user@example.com",
        display_name="Test User",
    )


@pytest.fixture
def expired_credentials(clock: FakeClock) -> Credentials:
    return Credentials(
        access_token="sk-ant-oat01-expired-token",
        refresh_token="sk-ant-ort01-refresh-token",
        expires_at=clock.now - 1000,
    )


def _usage_body(
    five_hour: float = 25.0,
    seven_day: float = 40.0,
    five_hour_reset: str = "2030-01-01T05:00:00+00:00",
    seven_day_reset: str = "2030-01-07T00:00:00+00:00",
) -> dict[str, Any]:
    """Usage endpoint payload."""
    return {
        "five_hour": {"utilization": five_hour, "resets_at": five_hour_reset},
        "seven_day": {"utilization": seven_day, "resets_at": seven_day_reset},
    }


def _token_body(
    access_token: str = "sk-ant-oat01-new-access",
    refresh_token: str | None = "sk-ant-ort01-new-refresh",
    expires_in: int = 3600,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "access_token": access_token,
        "expires_in": expires_in,
        "token_type": "Bearer",
    }
    if refresh_token is not None:
        body["refresh_token"] = refresh_token
    return body


@pytest.fixture
def usage_body() -> Callable[..., dict[str, Any]]:
    """Factory for usage endpoint payloads."""
    return _usage_body


@pytest.fixture
def token_body() -> Callable[..., dict[str, Any]]:
    """Factory for token endpoint payloads."""
    return _token_body
