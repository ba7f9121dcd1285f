"""
Document Processing Tasks

Celery tasks for the transcript-processing and certificate-processing
queues, and the queue adapter the API uses to enqueue them. The Celery
task id is the job id, so re-enqueueing a job is idempotent at the worker
(finished jobs are skipped).
"""

import asyncio
import logging
import random

from app.core.celery_app import CERTIFICATE_QUEUE, TRANSCRIPT_QUEUE, celery_app
from app.modules.documents.models import DocumentType
from app.modules.documents.schemas import DocumentProcessJob
from app.modules.documents.worker import is_retryable_error, run_document_job

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_BACKOFF_SECONDS = 5
RETRY_BACKOFF_MAX_SECONDS = 120


def retry_countdown(retries: int) -> float:
    """Exponential backoff with jitter: ~5s, 10s, 20s, ..."""
    delay = min(RETRY_BACKOFF_SECONDS * (2**retries), RETRY_BACKOFF_MAX_SECONDS)
    return delay + random.uniform(0, delay / 2)


def _run(task, job_id: str, expected_type: DocumentType) -> dict:
    retries = task.request.retries
    final_attempt = retries >= task.max_retries
    try:
        job = asyncio.run(run_document_job(job_id, expected_type, final_attempt=final_attempt))
    except Exception as exc:
        if not final_attempt and is_retryable_error(exc):
            countdown = retry_countdown(retries)
            logger.warning(f"Retrying document job {job_id} in {countdown:.0f}s (attempt {retries + 1}/{task.max_retries})")
            raise task.retry(exc=exc, countdown=countdown) from exc
        raise

    return {"job_id": job_id, "status": job.status.value if job else None}


@celery_app.task(name="documents.process_transcript", bind=True, max_retries=MAX_RETRIES)
def process_transcript_task(self, job_id: str) -> dict:
    return _run(self, job_id, DocumentType.TRANSCRIPT)


@celery_app.task(name="documents.process_certificate", bind=True, max_retries=MAX_RETRIES)
def process_certificate_task(self, job_id: str) -> dict:
    return _run(self, job_id, DocumentType.CERTIFICATE)


class CeleryDocumentQueue:
    """Enqueues document jobs on their type's Celery queue."""

    async def enqueue(self, job: DocumentProcessJob) -> None:
        if job.type == DocumentType.TRANSCRIPT:
            task, queue = process_transcript_task, TRANSCRIPT_QUEUE
        else:
            task, queue = process_certificate_task, CERTIFICATE_QUEUE

        # apply_async talks to the broker synchronously
        await asyncio.to_thread(task.apply_async, args=[job.id], task_id=job.id, queue=queue)
        logger.debug(f"Enqueued {job.id} on {queue}")
