"""APScheduler-based interval scheduling of the sync job."""

from __future__ import annotations

import logging

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.schedulers.blocking import BlockingScheduler

from scripts.sso_sync.config import SyncConfig

logger = logging.getLogger("sso_sync.scheduler")

JOB_ID = "google_to_aws_sso"


def _sync_job(config: SyncConfig) -> None:
    """Run one sync. Failures reach the scheduler's job-error listener."""
    from scripts.sso_sync.runner import run_sync

    run_sync(config)


def _on_job_error(event: JobExecutionEvent) -> None:
    """Log a failed run. The next interval re-diffs from scratch."""
    logger.error(
        "Scheduled sync failed (job %s): %s",
        event.job_id,
        event.exception,
        extra={"operation": "sync"},
    )


def build_scheduler(config: SyncConfig) -> BlockingScheduler:
    scheduler = BlockingScheduler()
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    # max_instances=1: two runs against the same target must never overlap.
    scheduler.add_job(
        _sync_job,
        "interval",
        minutes=config.scheduler.interval_min,
        args=[config],
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=config.scheduler.misfire_grace_time,
    )
    return scheduler


def start_scheduler(config: SyncConfig) -> None:
    """Start the blocking scheduler with the sync interval job."""
    scheduler = build_scheduler(config)
    logger.info("Starting scheduler with jobs: %s",
                [j.id for j in scheduler.get_jobs()])
    scheduler.start()
