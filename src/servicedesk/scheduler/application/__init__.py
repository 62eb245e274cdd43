"""
Scheduler Application Layer
===========================

Contains:
- IJobQueue: the enqueue-only view other modules depend on
- DelayedJobScheduler: the job store, tick and dispatch
"""

from servicedesk.scheduler.application.services import (
    IJobQueue,
    DelayedJobScheduler,
    JobHandler,
)

__all__ = [
    "IJobQueue",
    "DelayedJobScheduler",
    "JobHandler",
]
