"""
Document Pipeline Background Jobs

Stale job report: a job record can be left PENDING when the API stops
between writing the record and enqueueing the task, and PROCESSING when a
worker dies mid-task. This job finds records stuck longer than
STALE_JOB_THRESHOLD_MINUTES and sends one operational alert listing them.
It only reads job records; recovery is left to an operator.

Schedule:
- Runs every STALE_CHECK_INTERVAL_MINUTES
- Can be triggered from /debug/jobs/{job_id}/trigger
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from app.core import redis as redis_module
from app.core.config import settings
from app.core.database import async_session_maker
from app.core.scheduler import register_job
from app.modules.documents.job_store import DocumentJobStore
from app.modules.documents.schemas import DocumentProcessJob, JobStatus
from app.modules.notifications.models import NotificationPriority, NotificationType
from app.modules.notifications.schemas import NotificationPayload
from app.modules.notifications.service import NotificationService

logger = logging.getLogger(__name__)

STALE_CHECK_INTERVAL_MINUTES = 10
STALE_STATUSES = {JobStatus.PENDING, JobStatus.PROCESSING}
MAX_LISTED_JOBS = 20

# Recipient of operational alerts; routed to the default telegram chat
OPS_RECIPIENT = "admissions-ops"

JOB_ID_REPORT_STALE_JOBS = "documents_report_stale_jobs"


async def find_stale_jobs(
    job_store: DocumentJobStore,
    threshold: timedelta,
    now: datetime | None = None,
) -> list[DocumentProcessJob]:
    """Jobs still pending or processing whose last update is older than ``threshold``."""
    cutoff = (now or datetime.now(UTC)) - threshold
    stale = []
    async for job in job_store.scan_jobs():
        if job.status in STALE_STATUSES and job.updated_at < cutoff:
            stale.append(job)
    stale.sort(key=lambda job: job.updated_at)
    return stale


async def report_stale_document_jobs() -> dict[str, Any]:
    redis = redis_module.redis_client
    if redis is None:
        logger.warning("Redis not available, skipping stale document job report")
        return {"status": "skipped", "reason": "redis_unavailable"}

    threshold = timedelta(minutes=settings.stale_job_threshold_minutes)
    stale = await find_stale_jobs(DocumentJobStore(redis), threshold)
    if not stale:
        logger.debug("No stale document jobs")
        return {"status": "ok", "stale": []}

    stale_ids = [job.id for job in stale]
    logger.warning(f"Found {len(stale)} stale document jobs: {', '.join(stale_ids[:MAX_LISTED_JOBS])}")

    lines = [
        f"{job.id} [{job.status.value}] since {job.updated_at.isoformat()}"
        for job in stale[:MAX_LISTED_JOBS]
    ]
    if len(stale) > MAX_LISTED_JOBS:
        lines.append(f"... and {len(stale) - MAX_LISTED_JOBS} more")

    payload = NotificationPayload(
        title=f"{len(stale)} document jobs stuck for over {settings.stale_job_threshold_minutes} minutes",
        message="\n".join(lines),
        type=NotificationType.SYSTEM,
        priority=NotificationPriority.HIGH,
        metadata={"error": "stale_document_jobs", "jobIds": stale_ids},
    )
    async with async_session_maker() as db:
        result = await NotificationService(db).send_notification(OPS_RECIPIENT, payload)

    return {"status": "reported", "stale": stale_ids, "alert_sent": result.success}


def register_document_jobs() -> None:
    """Register the document pipeline's scheduled jobs."""
    register_job(
        job_id=JOB_ID_REPORT_STALE_JOBS,
        func=report_stale_document_jobs,
        trigger=IntervalTrigger(minutes=STALE_CHECK_INTERVAL_MINUTES),
    )
    logger.info("Document pipeline background jobs registered")
