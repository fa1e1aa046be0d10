"""Background jobs."""

from testfachdienst.src.jobs.scheduler import RecurringJob, RecurringJobScheduler

__all__ = ["RecurringJob", "RecurringJobScheduler"]
