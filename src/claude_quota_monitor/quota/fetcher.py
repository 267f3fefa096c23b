"""Usage endpoint client with caching, retry and error classification."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError
from structlog import get_logger
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from claude_quota_monitor.auth.models import Credentials
from claude_quota_monitor.auth.oauth.constants import (
    OAUTH_BETA_VERSION,
    OAUTH_USER_AGENT,
    USAGE_URL,
)
from claude_quota_monitor.core.logging import redact_token
from claude_quota_monitor.core.timeutils import (
    Clock,
    calculate_reset_progress,
    format_time_until,
    now_ms,
)
from claude_quota_monitor.exceptions import QuotaErrorType, QuotaFetchError
from claude_quota_monitor.quota.models import (
    QuotaError,
    QuotaLevel,
    QuotaSnapshot,
    UsageResponse,
)


if TYPE_CHECKING:
    from claude_quota_monitor.auth.refresh import TokenRefreshEngine
    from claude_quota_monitor.history.ledger import HistoryLedger
    from claude_quota_monitor.notifications.coordinator import NotificationCoordinator


logger = get_logger(__name__)

MAX_ATTEMPTS = 4
MAX_RETRY_DELAY_SECONDS = 8

MESSAGES = {
    QuotaErrorType.NETWORK: "Unable to connect. Check your internet connection.",
    QuotaErrorType.AUTH: "Authentication failed. Please sign in again.",
    QuotaErrorType.RATE_LIMIT: "Rate limited. Will retry automatically.",
    QuotaErrorType.SERVER: "Server error. Will retry automatically.",
    QuotaErrorType.UNKNOWN: "An unexpected error occurred.",
}
NO_CREDENTIALS_MESSAGE = "No credentials available"

LevelListener = Callable[[QuotaLevel], None]


def _fetch_error(
    error_type: QuotaErrorType, retryable: bool, status_code: int | None = None
) -> QuotaFetchError:
    return QuotaFetchError(
        MESSAGES[error_type],
        error_type=error_type,
        retryable=retryable,
        status_code=status_code,
    )


def _should_retry(exception: BaseException) -> bool:
    return isinstance(exception, QuotaFetchError) and exception.retryable


def _log_retry(retry_state: Any) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait_seconds = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        "usage_request_retry",
        attempt=retry_state.attempt_number,
        wait_seconds=wait_seconds,
        error_type=getattr(exc, "error_type", None),
        status_code=getattr(exc, "status_code", None),
    )


class QuotaFetcher:
    """Fetches both quota windows and keeps the latest snapshot.

    Fetch failures never raise; they are recorded as ``last_error`` and the
    cached snapshot is returned with the error attached.
    """

    def __init__(
        self,
        engine: "TokenRefreshEngine",
        history: "HistoryLedger",
        notifications: "NotificationCoordinator",
        http_client: httpx.AsyncClient | None = None,
        level_listener: LevelListener | None = None,
        clock: Clock = now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        usage_url: str = USAGE_URL,
        beta_version: str = OAUTH_BETA_VERSION,
        user_agent: str = OAUTH_USER_AGENT,
        timeout: float = 30.0,
        min_fetch_interval: float = 30.0,
    ) -> None:
        """Initialize the fetcher.

        Args:
            engine: Supplies valid credentials and refreshes on 401
            history: Receives one sample per successful fetch
            notifications: Evaluates each successful fetch for alerts
            http_client: Optional shared httpx client
            level_listener: Told the quota level after each successful fetch
            clock: Millisecond clock
            sleep: Coroutine used for retry backoff
            usage_url: Usage endpoint
            beta_version: Value of the ``anthropic-beta`` header
            user_agent: Value of the ``User-Agent`` header
            timeout: Per-request timeout in seconds
            min_fetch_interval: Seconds a snapshot is served from cache
        """
        self.engine = engine
        self.history = history
        self.notifications = notifications
        self.level_listener = level_listener
        self.usage_url = usage_url
        self.beta_version = beta_version
        self.user_agent = user_agent
        self.timeout = timeout
        self.min_fetch_interval = min_fetch_interval
        self._clock = clock
        self._sleep = sleep
        self._http_client = http_client
        self._owns_client = http_client is None

        self._cached: QuotaSnapshot | None = None
        self._last_fetch_time: int | None = None
        self._last_successful_fetch: int | None = None
        self._last_error: QuotaError | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def aclose(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch_quota(self, force_refresh: bool = False) -> QuotaSnapshot | None:
        """Fetch the current quota, or serve the cache when it is fresh.

        Args:
            force_refresh: Bypass the cache freshness window

        Returns:
            The new snapshot, the cached snapshot with an error attached, or
            None when nothing has been fetched yet
        """
        now = self._clock()
        if (
            not force_refresh
            and self._cached is not None
            and self._last_fetch_time is not None
            and now - self._last_fetch_time < self.min_fetch_interval * 1000
        ):
            logger.debug("quota_served_from_cache")
            return self._cached

        credentials = await self.engine.get_valid_credentials()
        if credentials is None:
            logger.error("quota_fetch_no_credentials")
            return self._record_failure(
                QuotaError(
                    type=QuotaErrorType.AUTH,
                    message=NO_CREDENTIALS_MESSAGE,
                    retryable=False,
                )
            )

        try:
            usage = await self._fetch_with_retry(credentials)
        except QuotaFetchError as e:
            logger.error(
                "quota_fetch_failed",
                error_type=e.error_type,
                status_code=e.status_code,
                retryable=e.retryable,
            )
            return self._record_failure(
                QuotaError(type=e.error_type, message=e.message, retryable=e.retryable)
            )

        now = self._clock()
        snapshot = QuotaSnapshot.from_usage(usage, now=now)
        self._cached = snapshot
        self._last_fetch_time = now
        self._last_successful_fetch = now
        self._last_error = None

        self.history.add_entry(usage.five_hour.utilization, usage.seven_day.utilization)
        self.notifications.check_and_notify(
            usage.five_hour.utilization, usage.seven_day.utilization
        )
        if self.level_listener is not None:
            self.level_listener(self.get_quota_level())

        logger.info(
            "quota_fetched",
            five_hour=round(usage.five_hour.utilization),
            seven_day=round(usage.seven_day.utilization),
        )
        return snapshot

    def _record_failure(self, error: QuotaError) -> QuotaSnapshot | None:
        self._last_error = error
        if self._cached is None:
            return None
        self._cached = self._cached.with_error(error)
        return self._cached

    async def _fetch_with_retry(self, credentials: Credentials) -> UsageResponse:
        current = credentials
        token_refreshed = False
        usage: UsageResponse | None = None

        async for attempt in AsyncRetrying(
            wait=wait_exponential(multiplier=1, min=1, max=MAX_RETRY_DELAY_SECONDS),
            stop=stop_after_attempt(MAX_ATTEMPTS),
            retry=retry_if_exception(_should_retry),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        ):
            with attempt:
                response = await self._request(current)

                if response.status_code == 401:
                    if token_refreshed:
                        logger.error("usage_request_unauthorized_after_refresh")
                        raise _fetch_error(QuotaErrorType.AUTH, False, 401)
                    token_refreshed = True
                    logger.warning(
                        "usage_request_unauthorized_refreshing",
                        token=redact_token(current.access_token),
                    )
                    refreshed = await self.engine.refresh_token(current)
                    if refreshed is None:
                        raise _fetch_error(QuotaErrorType.AUTH, False, 401)
                    current = refreshed
                    response = await self._request(current)
                    if response.status_code == 401:
                        logger.error("usage_request_unauthorized_after_refresh")
                        raise _fetch_error(QuotaErrorType.AUTH, False, 401)

                usage = self._parse_response(response)

                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "usage_request_succeeded_after_retry",
                        attempt=attempt.retry_state.attempt_number,
                    )

        assert usage is not None
        return usage

    async def _request(self, credentials: Credentials) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {credentials.access_token}",
            "anthropic-beta": self.beta_version,
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }
        try:
            return await self._get_client().get(
                self.usage_url, headers=headers, timeout=self.timeout
            )
        except httpx.TransportError as e:
            logger.warning(
                "usage_request_transport_error",
                error=str(e),
                error_class=type(e).__name__,
            )
            raise _fetch_error(QuotaErrorType.NETWORK, True) from e

    def _parse_response(self, response: httpx.Response) -> UsageResponse:
        status = response.status_code

        if response.is_success:
            try:
                return UsageResponse.model_validate(response.json())
            except (ValueError, ValidationError) as e:
                logger.warning("usage_response_malformed", error=str(e))
                raise _fetch_error(QuotaErrorType.UNKNOWN, True, status) from e

        logger.warning(
            "usage_request_http_error",
            status_code=status,
            response_preview=response.text[:200],
        )
        if status == 429:
            raise _fetch_error(QuotaErrorType.RATE_LIMIT, True, status)
        if status >= 500:
            raise _fetch_error(QuotaErrorType.SERVER, True, status)
        if status in (401, 403):
            raise _fetch_error(QuotaErrorType.AUTH, False, status)
        raise _fetch_error(QuotaErrorType.UNKNOWN, False, status)

    def get_cached_quota(self) -> QuotaSnapshot | None:
        return self._cached

    def get_last_error(self) -> QuotaError | None:
        return self._last_error

    def get_last_successful_fetch(self) -> int | None:
        """Unix milliseconds of the last successful fetch."""
        return self._last_successful_fetch

    def get_quota_level(self) -> QuotaLevel:
        """Level of the higher of the two windows."""
        if self._cached is None:
            return QuotaLevel.NORMAL
        return self.notifications.get_level(self._cached.max_utilization)

    def format_time_until(self, resets_at: datetime) -> str:
        return format_time_until(resets_at, now=self._clock())

    def calculate_reset_progress(self, resets_at: datetime, period_hours: float) -> int:
        return calculate_reset_progress(resets_at, period_hours, now=self._clock())
