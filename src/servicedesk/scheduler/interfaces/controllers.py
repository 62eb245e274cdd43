"""
Scheduler Controllers (API Routes)
==================================

Read-only introspection of the job store and the dead-letter list.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from servicedesk.config import JobType
from servicedesk.scheduler.application import DelayedJobScheduler

router = APIRouter(prefix="/jobs", tags=["Jobs"])


def get_job_scheduler(request: Request) -> DelayedJobScheduler:
    return request.app.state.core.scheduler


@router.get("", summary="List jobs")
async def list_jobs(
    pending: bool = Query(False, description="Only jobs not yet completed"),
    job_type: Optional[JobType] = Query(None, alias="type"),
    scheduler: DelayedJobScheduler = Depends(get_job_scheduler)
) -> List[dict]:
    if pending:
        jobs = scheduler.pending_jobs(job_type)
    else:
        jobs = [j for j in scheduler.jobs() if job_type is None or j.type == job_type]
    return [job.to_dict() for job in jobs]


@router.get("/dead-letters", summary="Dead-lettered jobs")
async def list_dead_letters(
    scheduler: DelayedJobScheduler = Depends(get_job_scheduler)
) -> List[dict]:
    return [job.to_dict() for job in scheduler.dead_letters]
