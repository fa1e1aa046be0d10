"""
Recurring job scheduler on the asyncio event loop.

Jobs are identified by id; registering an id again replaces the running
job. Coroutine functions are awaited on the loop, plain callables run in a
worker thread. A failing run is logged and counted, and the job is
scheduled again after its interval.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import structlog

from shared.metrics import JobMetrics
from shared.runtime import exit_on_out_of_memory

logger = structlog.get_logger(__name__)

JOB_SUCCEEDED = "succeeded"
JOB_FAILED = "failed"


@dataclass
class RecurringJob:
    """Registered recurring job and its run statistics."""
    job_id: str
    interval_seconds: float
    func: Callable[[], Any]
    runs: int = 0
    failures: int = 0
    last_run_at: Optional[datetime] = None
    last_status: Optional[str] = None
    last_error: Optional[str] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)


class RecurringJobScheduler:
    """Runs registered jobs at a fixed interval until shut down."""

    def __init__(
        self,
        metrics: Optional[JobMetrics] = None,
        initial_delay: float = 0.0,
        exit_on_oom: bool = False,
    ):
        self.metrics = metrics
        self.exit_on_oom = exit_on_oom
        self.initial_delay = initial_delay
        self._jobs: Dict[str, RecurringJob] = {}

    def create_recurrently(
        self,
        job_id: str,
        interval: Union[float, timedelta],
        func: Callable[[], Any],
    ) -> RecurringJob:
        """
        Register a job to run every ``interval``.

        Must be called from a running event loop.

        Args:
            job_id: Unique job identifier; an existing job with this id is replaced
            interval: Seconds, or a timedelta, between the end of one run and the next
            func: Coroutine function or plain callable without arguments

        Returns:
            The registered job

        Raises:
            ValueError: If the interval is not positive
        """
        interval_seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
        if interval_seconds <= 0:
            raise ValueError(f"Job interval must be positive, got {interval_seconds}")

        existing = self._jobs.pop(job_id, None)
        if existing is not None and existing.task is not None:
            existing.task.cancel()
            logger.info("recurring_job_replaced", job_id=job_id)

        job = RecurringJob(job_id=job_id, interval_seconds=interval_seconds, func=func)
        job.task = asyncio.get_running_loop().create_task(
            self._run_forever(job), name=f"recurring-job-{job_id}"
        )
        self._jobs[job_id] = job

        logger.info("recurring_job_registered", job_id=job_id, interval_seconds=interval_seconds)
        return job

    async def run_once(self, job: RecurringJob) -> bool:
        """Execute a job a single time; return True on success."""
        started = time.perf_counter()
        try:
            if inspect.iscoroutinefunction(job.func):
                await job.func()
            else:
                await asyncio.to_thread(job.func)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self.exit_on_oom:
                exit_on_out_of_memory(e)
            job.failures += 1
            job.last_status = JOB_FAILED
            job.last_error = str(e)
            logger.error("recurring_job_failed", job_id=job.job_id, error=str(e), exc_info=True)
        else:
            job.last_status = JOB_SUCCEEDED
            job.last_error = None

        duration = time.perf_counter() - started
        job.runs += 1
        job.last_run_at = datetime.now(timezone.utc)

        if self.metrics is not None:
            self.metrics.runs.labels(job_id=job.job_id, status=job.last_status).inc()
            self.metrics.duration.labels(job_id=job.job_id).observe(duration)

        logger.debug(
            "recurring_job_finished",
            job_id=job.job_id,
            status=job.last_status,
            duration=f"{duration:.3f}s",
        )
        return job.last_status == JOB_SUCCEEDED

    async def _run_forever(self, job: RecurringJob) -> None:
        if self.initial_delay > 0:
            await asyncio.sleep(self.initial_delay)
        while True:
            await self.run_once(job)
            await asyncio.sleep(job.interval_seconds)

    def get_job(self, job_id: str) -> Optional[RecurringJob]:
        return self._jobs.get(job_id)

    def list_jobs(self) -> List[RecurringJob]:
        return sorted(self._jobs.values(), key=lambda job: job.job_id)

    async def shutdown(self) -> None:
        """Cancel all jobs and wait for them to stop."""
        tasks = [job.task for job in self._jobs.values() if job.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._jobs.clear()
        logger.info("recurring_jobs_stopped", count=len(tasks))
