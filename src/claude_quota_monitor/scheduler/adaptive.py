"""Polling loop whose interval follows the quota level.

Both timers live in one APScheduler ``AsyncIOScheduler``: the recurring
``quota_refresh`` interval job and the one-shot ``auto_resume`` date job.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import BaseModel
from structlog import get_logger

from claude_quota_monitor.core.timeutils import MINUTE_MS, Clock, ms_to_datetime, now_ms
from claude_quota_monitor.quota.models import QuotaLevel


logger = get_logger(__name__)

REFRESH_JOB_ID = "quota_refresh"
AUTO_RESUME_JOB_ID = "auto_resume"

CRITICAL_MIN_INTERVAL_MS = 15_000
WARNING_MIN_INTERVAL_MS = 30_000

RefreshListener = Callable[[], None]


class PauseStatus(BaseModel):
    """``resume_at`` is Unix ms; both fields are None for an indefinite pause."""

    paused: bool
    resume_at: int | None = None
    remaining_ms: int | None = None


class AdaptiveScheduler:
    """Runs ``refresh`` periodically, faster as the quota gets tighter.

    Interval by level, for a base interval B in milliseconds:

    - normal: B
    - warning: max(30 s, B // 2)
    - critical: max(15 s, B // 4)
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[object]],
        base_interval_seconds: int = 60,
        adaptive_enabled: bool = True,
        scheduler: AsyncIOScheduler | None = None,
        clock: Clock = now_ms,
        on_pause_change: Callable[[bool], None] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            refresh: Coroutine function performing one fetch cycle
            base_interval_seconds: User-configured interval
            adaptive_enabled: Shorten the interval at warning/critical levels
            scheduler: APScheduler instance to use, created on demand if omitted
            clock: Millisecond clock
            on_pause_change: Told the new paused flag on pause and resume
        """
        self._refresh = refresh
        self._base_interval = base_interval_seconds
        self._adaptive_enabled = adaptive_enabled
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._clock = clock
        self._on_pause_change = on_pause_change

        self._level = QuotaLevel.NORMAL
        self._interval_ms = self._compute_interval_ms()
        self._running = False
        self._paused = False
        self._resume_at: int | None = None
        self._listeners: list[RefreshListener] = []

    # ------------------------------------------------------------------
    # Interval computation
    # ------------------------------------------------------------------

    def _compute_interval_ms(self) -> int:
        base_ms = self._base_interval * 1000
        if not self._adaptive_enabled:
            return base_ms
        if self._level == QuotaLevel.CRITICAL:
            return max(CRITICAL_MIN_INTERVAL_MS, base_ms // 4)
        if self._level == QuotaLevel.WARNING:
            return max(WARNING_MIN_INTERVAL_MS, base_ms // 2)
        return base_ms

    def _apply_interval(self) -> None:
        interval_ms = self._compute_interval_ms()
        if interval_ms == self._interval_ms:
            return
        logger.info(
            "refresh_interval_changed",
            previous_seconds=self._interval_ms / 1000,
            interval_seconds=interval_ms / 1000,
            level=str(self._level),
            adaptive=self._adaptive_enabled,
        )
        self._interval_ms = interval_ms
        if self._running:
            self._schedule_interval_job()

    def update_quota_level(self, level: QuotaLevel) -> None:
        """Adapt the interval to a new quota level; no immediate fetch."""
        if level == self._level:
            return
        logger.debug("scheduler_level_changed", previous=str(self._level), level=str(level))
        self._level = level
        self._apply_interval()

    def set_refresh_interval(self, seconds: int) -> None:
        self._base_interval = seconds
        self._apply_interval()

    def set_adaptive_enabled(self, enabled: bool) -> None:
        self._adaptive_enabled = enabled
        logger.info("adaptive_refresh_toggled", enabled=enabled)
        self._apply_interval()

    def get_refresh_interval(self) -> float:
        """Effective interval in seconds."""
        return self._interval_ms / 1000

    def get_base_refresh_interval(self) -> int:
        return self._base_interval

    def is_adaptive_enabled(self) -> bool:
        return self._adaptive_enabled

    @property
    def current_level(self) -> QuotaLevel:
        return self._level

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # APScheduler plumbing
    # ------------------------------------------------------------------

    def _get_scheduler(self) -> AsyncIOScheduler:
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler()
        if not self._scheduler.running:
            self._scheduler.start()
        return self._scheduler

    def _schedule_interval_job(self) -> None:
        self._get_scheduler().add_job(
            self.refresh,
            "interval",
            seconds=self._interval_ms / 1000,
            id=REFRESH_JOB_ID,
            name="Quota Refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def _remove_job(self, job_id: str) -> None:
        if self._scheduler is None:
            return
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            pass

    def get_next_refresh_time(self) -> datetime | None:
        """When the next scheduled fetch fires, None while stopped or paused."""
        if not self._running or self._scheduler is None:
            return None
        job = self._scheduler.get_job(REFRESH_JOB_ID)
        if job is not None and job.next_run_time is not None:
            return job.next_run_time
        return ms_to_datetime(self._clock() + self._interval_ms)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Fetch immediately, then keep fetching every interval."""
        if self._running or self._paused:
            return
        self._running = True
        self._schedule_interval_job()
        logger.info("scheduler_started", interval_seconds=self._interval_ms / 1000)
        await self.refresh()

    def stop(self) -> None:
        """Cancel the next tick. An in-flight refresh still completes."""
        if not self._running:
            return
        self._remove_job(REFRESH_JOB_ID)
        self._running = False
        logger.debug("scheduler_stopped")

    def shutdown(self) -> None:
        """Stop everything and release the APScheduler instance if owned."""
        self.stop()
        self._remove_job(AUTO_RESUME_JOB_ID)
        if self._owns_scheduler and self._scheduler is not None:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None
        logger.info("scheduler_shutdown")

    def pause(self, minutes: float | None = None) -> None:
        """Suspend polling, optionally resuming automatically after ``minutes``."""
        self._paused = True
        self.stop()
        self._remove_job(AUTO_RESUME_JOB_ID)

        if minutes is not None and minutes > 0:
            self._resume_at = self._clock() + int(minutes * MINUTE_MS)
            self._get_scheduler().add_job(
                self._auto_resume,
                "date",
                run_date=ms_to_datetime(self._resume_at),
                id=AUTO_RESUME_JOB_ID,
                name="Auto Resume",
                replace_existing=True,
            )
            logger.info("monitoring_paused", minutes=minutes)
        else:
            self._resume_at = None
            logger.info("monitoring_paused_indefinitely")

        self._pause_changed(True)
        self._notify_listeners()

    async def _auto_resume(self) -> None:
        logger.info("monitoring_auto_resume")
        await self.resume()

    async def resume(self) -> None:
        """Clear the pause and restart with an immediate fetch."""
        self._remove_job(AUTO_RESUME_JOB_ID)
        self._paused = False
        self._resume_at = None
        logger.info("monitoring_resumed")
        self._pause_changed(False)
        await self.start()

    def _pause_changed(self, paused: bool) -> None:
        if self._on_pause_change is None:
            return
        try:
            self._on_pause_change(paused)
        except Exception as e:
            logger.error("pause_listener_failed", error=str(e), exc_info=e)

    def is_paused(self) -> bool:
        return self._paused

    def get_pause_status(self) -> PauseStatus:
        if not self._paused:
            return PauseStatus(paused=False)
        remaining = (
            max(0, self._resume_at - self._clock()) if self._resume_at is not None else None
        )
        return PauseStatus(paused=True, resume_at=self._resume_at, remaining_ms=remaining)

    # ------------------------------------------------------------------
    # Refresh and listeners
    # ------------------------------------------------------------------

    def subscribe(self, callback: RefreshListener) -> Callable[[], None]:
        """Register a listener called after every completed refresh and on pause.

        Returns:
            Function removing the listener again
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify_listeners(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error("refresh_listener_failed", error=str(e), exc_info=e)

    async def refresh(self) -> None:
        """Run one fetch cycle; failures are logged, never raised."""
        try:
            await self._refresh()
        except Exception as e:
            logger.error("scheduled_refresh_failed", error=str(e), exc_info=e)
            return
        self._notify_listeners()
