import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from zentrack.core import ValidationError
from zentrack.tracking import Tracker

log = logging.getLogger("zentrack.scheduler")

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 60

_SCHEDULER: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Process-wide scheduler shared by every tracker."""
    global _SCHEDULER
    if _SCHEDULER is None:
        _SCHEDULER = AsyncIOScheduler(timezone="UTC")
    return _SCHEDULER


def shutdown_scheduler() -> None:
    global _SCHEDULER
    if _SCHEDULER is not None and _SCHEDULER.running:
        _SCHEDULER.shutdown(wait=False)
        log.info("APScheduler stopped")
    _SCHEDULER = None


def check_interval(minutes: int) -> int:
    if not MIN_INTERVAL_MINUTES <= int(minutes) <= MAX_INTERVAL_MINUTES:
        raise ValidationError(
            f"Refresh interval must be between {MIN_INTERVAL_MINUTES} and "
            f"{MAX_INTERVAL_MINUTES} minutes, got {minutes}"
        )
    return int(minutes)


class RefreshScheduler:
    """Periodic ``Tracker.refresh_all`` driven by one APScheduler interval job.

    Reconfiguring removes the pending job; a cycle that already started is
    left to finish and still merges its results.
    """

    def __init__(
        self,
        tracker: Tracker,
        *,
        job_id: str = "refresh",
        interval_minutes: int = 5,
        enabled: bool = True,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.tracker = tracker
        self.job_id = job_id
        self.interval_minutes = check_interval(interval_minutes)
        self.enabled = enabled
        self.scheduler = scheduler if scheduler is not None else get_scheduler()
        self.cycles = 0

    async def run_cycle(self) -> int:
        self.cycles += 1
        log.info("Auto-refreshing %s (cycle %d)", self.job_id, self.cycles)
        return await self.tracker.refresh_all()

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            log.info("APScheduler started")
        self._apply()

    async def start_with_initial_refresh(self) -> int:
        """Start the timer and run one cycle right away (after the initial load)."""
        self.start()
        return await self.run_cycle()

    def configure(
        self, *, enabled: Optional[bool] = None, interval_minutes: Optional[int] = None
    ) -> None:
        if interval_minutes is not None:
            self.interval_minutes = check_interval(interval_minutes)
        if enabled is not None:
            self.enabled = enabled
        self._apply()

    def stop(self) -> None:
        self._remove_job()

    @property
    def job(self):
        return self.scheduler.get_job(self.job_id)

    def _apply(self) -> None:
        self._remove_job()
        if not self.enabled:
            log.info("Auto-refresh disabled for %s", self.job_id)
            return
        log.info(
            "Setting up auto-refresh for %s every %d minutes", self.job_id, self.interval_minutes
        )
        self.scheduler.add_job(
            self.run_cycle,
            "interval",
            minutes=self.interval_minutes,
            id=self.job_id,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=30,
            replace_existing=True,
        )

    def _remove_job(self) -> None:
        if self.scheduler.get_job(self.job_id) is not None:
            self.scheduler.remove_job(self.job_id)
