"""
Scheduler External Integrations
===============================

APScheduler-driven tick loop for the delayed job scheduler.
"""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from servicedesk.scheduler.application.services import DelayedJobScheduler
from servicedesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class TickLoop:
    """
    Wrapper for APScheduler that calls ``DelayedJobScheduler.tick`` on a
    fixed interval.

    Lifecycle is explicit: nothing runs until ``start()`` and ``stop()``
    shuts the loop down. ``max_instances=1`` keeps ticks from overlapping.
    """

    def __init__(self, job_scheduler: DelayedJobScheduler, interval_seconds: int = 30):
        self.job_scheduler = job_scheduler
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self) -> None:
        """Start ticking. Must be called from a running event loop."""
        if self._running:
            logger.warning("Tick loop already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._tick,
            "interval",
            seconds=self.interval_seconds,
            id="job_scheduler_tick",
            name="Delayed Job Scheduler Tick",
            misfire_grace_time=self.interval_seconds,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("Tick loop started", extra={"interval_seconds": self.interval_seconds})

    async def _tick(self) -> None:
        report = await self.job_scheduler.tick()
        if report.executed:
            logger.info(
                "Scheduler tick finished",
                extra={
                    "executed": report.executed,
                    "completed": report.completed,
                    "retried": report.retried,
                    "dead": report.dead,
                    "purged": report.purged,
                }
            )

    async def stop(self) -> None:
        """Stop the loop gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("Tick loop stopped")

    @property
    def is_running(self) -> bool:
        return self._running
