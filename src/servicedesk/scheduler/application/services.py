"""
Scheduler Application Services
==============================

The delayed job scheduler: an explicit object that owns its job store.

Callers enqueue ``(type, payload, scheduled_for)``; ``tick()`` runs every
due job through the handler registered for its type. Ticks are driven
by the background loop in production and called directly in tests.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Union
from uuid import uuid4

from servicedesk.config import JobType, Settings
from servicedesk.core import RetryableJobError, TerminalJobError
from servicedesk.scheduler.domain import (
    CRITICAL_JOB_TYPES,
    ExecutionResult,
    Job,
    JobOutcome,
    JobPayload,
    TickReport,
    build_payload,
)
from servicedesk.shared.infrastructure.clock import Clock, utc_now
from servicedesk.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

JobHandler = Callable[[Any], Awaitable[Any]]


class IJobQueue(ABC):
    """Interface the workflow services use to defer work."""

    @abstractmethod
    def enqueue(
        self,
        job_type: JobType,
        payload: Union[JobPayload, dict],
        scheduled_for: Optional[datetime] = None
    ) -> str:
        """Add a job and return its id."""


class DelayedJobScheduler(IJobQueue):
    """
    Time-ordered job queue with at-least-once-until-dead execution.

    Execution policy per attempt:
    - handler returns -> completed
    - RetryableJobError, timeout or unexpected error -> retried with
      exponential backoff until ``max_attempts``, then dead-lettered
    - TerminalJobError -> dead-lettered immediately

    ``max_attempts=1`` gives at-most-one-attempt semantics.
    """

    def __init__(
        self,
        clock: Clock = utc_now,
        retention: timedelta = timedelta(hours=1),
        max_attempts: int = 3,
        retry_base: timedelta = timedelta(seconds=60),
        handler_timeout_seconds: Optional[float] = 30.0,
        max_dead_letters: int = 1000,
        slow_tick_ms: Optional[float] = 10_000,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._clock = clock
        self._retention = retention
        self._max_attempts = max_attempts
        self._retry_base = retry_base
        self._handler_timeout = handler_timeout_seconds
        self._jobs: Dict[str, Job] = {}
        self._handlers: Dict[JobType, JobHandler] = {}
        self._dead_letters: Deque[Job] = deque(maxlen=max_dead_letters)
        self._tick_lock = asyncio.Lock()
        self._slow_tick_ms = slow_tick_ms

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = utc_now) -> "DelayedJobScheduler":
        return cls(
            clock=clock,
            retention=timedelta(minutes=settings.job_retention_minutes),
            max_attempts=settings.job_max_attempts,
            retry_base=timedelta(seconds=settings.job_retry_base_seconds),
            handler_timeout_seconds=settings.job_handler_timeout_seconds,
        )

    # ========== Registration & enqueue ==========

    def register_handler(self, job_type: JobType, handler: JobHandler) -> None:
        """Bind the coroutine function that executes jobs of ``job_type``."""
        self._handlers[JobType(job_type)] = handler

    def enqueue(
        self,
        job_type: JobType,
        payload: Union[JobPayload, dict],
        scheduled_for: Optional[datetime] = None
    ) -> str:
        """
        Add a job to the store.

        Args:
            job_type: Which handler runs the job
            payload: The job type's payload model, or a dict coerced into it
            scheduled_for: Earliest execution time; defaults to now

        Returns:
            The new job id
        """
        job_type = JobType(job_type)
        now = self._clock()
        job = Job(
            id=str(uuid4()),
            type=job_type,
            payload=build_payload(job_type, payload),
            scheduled_for=scheduled_for or now,
            created_at=now,
        )
        self._jobs[job.id] = job

        logger.debug(
            "Job enqueued",
            extra=job.log_fields(scheduled_for=job.scheduled_for.isoformat())
        )
        return job.id

    # ========== Tick ==========

    @property
    def is_ticking(self) -> bool:
        return self._tick_lock.locked()

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        """
        Execute every due job once, then purge expired completed jobs.

        A tick that starts while another is still running returns a
        skipped report instead of executing anything.
        """
        now = now or self._clock()

        if self._tick_lock.locked():
            logger.warning("Scheduler tick skipped, previous tick still running")
            return TickReport(started_at=now, skipped=True)

        async with self._tick_lock:
            report = TickReport(started_at=now)
            due = [job for job in self._jobs.values() if job.is_due(now)]

            with log_latency(logger, "scheduler_tick", slow_ms=self._slow_tick_ms, due_jobs=len(due)):
                for job in due:
                    result = await self._execute(job)
                    self._apply(job, result, now, report)

            report.purged = self._purge(now)
            return report

    async def _execute(self, job: Job) -> ExecutionResult:
        handler = self._handlers.get(job.type)
        if handler is None:
            return ExecutionResult.dead(f"No handler registered for {job.type.value}")

        job.attempts += 1
        try:
            if self._handler_timeout:
                await asyncio.wait_for(handler(job.payload), timeout=self._handler_timeout)
            else:
                await handler(job.payload)
        except TerminalJobError as e:
            return ExecutionResult.dead(str(e))
        except RetryableJobError as e:
            return self._retry_or_dead(job, str(e))
        except asyncio.TimeoutError:
            return self._retry_or_dead(
                job, f"Handler exceeded {self._handler_timeout}s timeout"
            )
        except Exception as e:
            logger.exception(
                "Job handler raised",
                extra=job.log_fields()
            )
            return self._retry_or_dead(job, f"{type(e).__name__}: {e}")

        return ExecutionResult.completed()

    def _retry_or_dead(self, job: Job, error: str) -> ExecutionResult:
        if job.attempts >= self._max_attempts:
            return ExecutionResult.dead(f"{error} (gave up after {job.attempts} attempts)")
        backoff = self._retry_base * (2 ** (job.attempts - 1))
        return ExecutionResult.retry(backoff, error)

    def _apply(self, job: Job, result: ExecutionResult, now: datetime, report: TickReport) -> None:
        report.executed += 1
        report.job_ids.append(job.id)
        job.outcome = result.outcome
        job.last_error = result.error

        if result.outcome == JobOutcome.COMPLETED:
            job.completed = True
            job.finished_at = now
            report.completed += 1
            logger.info(
                "Job completed",
                extra=job.log_fields()
            )

        elif result.outcome == JobOutcome.RETRY:
            job.scheduled_for = now + result.backoff
            report.retried += 1
            logger.warning(
                "Job failed, retry scheduled",
                extra=job.log_fields(retry_at=job.scheduled_for.isoformat(), error=result.error)
            )

        else:
            job.completed = True
            job.finished_at = now
            self._dead_letters.append(job)
            report.dead += 1
            log = logger.error if job.type in CRITICAL_JOB_TYPES else logger.warning
            log(
                "Job dead-lettered",
                extra=job.log_fields(error=result.error)
            )

    def _purge(self, now: datetime) -> int:
        cutoff = now - self._retention
        expired = [
            job_id for job_id, job in self._jobs.items()
            if job.completed and job.scheduled_for < cutoff
        ]
        for job_id in expired:
            del self._jobs[job_id]
        return len(expired)

    # ========== Introspection ==========

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def jobs(self) -> List[Job]:
        return list(self._jobs.values())

    def pending_jobs(self, job_type: Optional[JobType] = None) -> List[Job]:
        return [
            job for job in self._jobs.values()
            if not job.completed and (job_type is None or job.type == job_type)
        ]

    @property
    def dead_letters(self) -> List[Job]:
        return list(self._dead_letters)

    def __len__(self) -> int:
        return len(self._jobs)
