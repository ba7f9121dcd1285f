"""
Background Job Scheduler

APScheduler (AsyncIO) for periodic maintenance inside the API process.
Jobs are registered before start-up through ``register_job`` and kept in a
registry so they can also be run on demand from the debug endpoints.

Usage:
    register_job("my_job", my_job, IntervalTrigger(minutes=10))
    await start_scheduler()
    ...
    await stop_scheduler()
"""

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Coroutine[Any, Any, Any]]

JOB_DEFAULTS = {
    "coalesce": True,  # Combine missed runs into one
    "max_instances": 1,
    "misfire_grace_time": 60 * 5,
}


@dataclass
class RegisteredJob:
    func: JobFunc
    trigger: BaseTrigger


_scheduler: AsyncIOScheduler | None = None
_job_registry: dict[str, RegisteredJob] = {}


def _job_listener(event: JobExecutionEvent) -> None:
    if event.exception:
        logger.error(f"Job {event.job_id} failed: {event.exception}", exc_info=event.exception)
    else:
        logger.info(f"Job {event.job_id} executed at {datetime.now(UTC).isoformat()}")


def register_job(job_id: str, func: JobFunc, trigger: BaseTrigger) -> None:
    """
    Register a periodic job.

    Jobs registered before ``start_scheduler`` are scheduled when it runs;
    later registrations are scheduled immediately.
    """
    _job_registry[job_id] = RegisteredJob(func=func, trigger=trigger)
    if _scheduler is not None:
        _scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True)
        logger.info(f"Registered job: {job_id}")


async def start_scheduler() -> AsyncIOScheduler:
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler already running, returning existing instance")
        return _scheduler

    _scheduler = AsyncIOScheduler(timezone="UTC", job_defaults=JOB_DEFAULTS)
    _scheduler.add_listener(_job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    for job_id, job in _job_registry.items():
        _scheduler.add_job(job.func, trigger=job.trigger, id=job_id, replace_existing=True)
        logger.info(f"Registered job: {job_id}")

    _scheduler.start()
    logger.info(f"Background job scheduler started with {len(_job_registry)} jobs")
    return _scheduler


async def stop_scheduler() -> None:
    """Shut the scheduler down, waiting for running jobs."""
    global _scheduler

    if _scheduler is None or not _scheduler.running:
        return

    _scheduler.shutdown(wait=True)
    _scheduler = None
    logger.info("Background job scheduler stopped")


async def trigger_job_manually(job_id: str) -> dict[str, Any]:
    """
    Run a registered job now, outside its schedule.

    Raises:
        ValueError: If job_id is not registered
    """
    if job_id not in _job_registry:
        raise ValueError(f"Job {job_id} not found in registry. Available jobs: {list(_job_registry)}")

    executed_at = datetime.now(UTC)
    logger.info(f"Manually triggering job: {job_id}")
    try:
        result = await _job_registry[job_id].func()
    except Exception as e:
        logger.error(f"Manual execution of job {job_id} failed: {e}", exc_info=True)
        return {
            "job_id": job_id,
            "status": "error",
            "executed_at": executed_at.isoformat(),
            "error": str(e),
        }

    return {
        "job_id": job_id,
        "status": "success",
        "executed_at": executed_at.isoformat(),
        "result": result,
    }


def list_registered_jobs() -> list[dict[str, Any]]:
    jobs = []
    for job_id in _job_registry:
        scheduled = _scheduler.get_job(job_id) if _scheduler is not None else None
        next_run = scheduled.next_run_time if scheduled is not None else None
        jobs.append(
            {
                "job_id": job_id,
                "next_run_time": next_run.isoformat() if next_run else None,
            }
        )
    return jobs
