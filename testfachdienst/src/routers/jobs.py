"""Job status endpoints."""

from typing import List

from fastapi import APIRouter, Depends

from testfachdienst.src.dependencies import get_scheduler
from testfachdienst.src.jobs.scheduler import RecurringJobScheduler
from testfachdienst.src.models.messages import JobInfoResponse, RecurringJobResponse

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.get("/info", response_model=JobInfoResponse, summary="Job subsystem status")
async def job_info() -> JobInfoResponse:
    return JobInfoResponse(status="fantastic!")


@router.get("/recurring", response_model=List[RecurringJobResponse], summary="List recurring jobs")
async def recurring_jobs(
    scheduler: RecurringJobScheduler = Depends(get_scheduler),
) -> List[RecurringJobResponse]:
    return [
        RecurringJobResponse(
            id=job.job_id,
            interval_seconds=job.interval_seconds,
            last_run_at=job.last_run_at,
            last_status=job.last_status,
            runs=job.runs,
            failures=job.failures,
        )
        for job in scheduler.list_jobs()
    ]
