"""
Document Job Record Store

Durable record of each document processing job, kept in a Redis hash at
``document_job:<jobId>`` independently of the queue. Queue entries are
discarded once a task finishes; this record is what status queries and the
verification flow read.
"""

import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

from redis.asyncio import Redis

from app.modules.documents.errors import InvalidJobTransitionError
from app.modules.documents.schemas import DocumentProcessJob, JobStatus

logger = logging.getLogger(__name__)

JOB_KEY_PREFIX = "document_job:"

# Allowed job status transitions. Redelivery of a task may re-enter
# PROCESSING; verification may fail a COMPLETED job; FAILED is terminal.
VALID_JOB_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: {JobStatus.FAILED},
    JobStatus.FAILED: set(),
}


def job_key(job_id: str) -> str:
    return f"{JOB_KEY_PREFIX}{job_id}"


class DocumentJobStore:
    """Redis-backed CRUD for DocumentProcessJob records."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def create_job(self, job: DocumentProcessJob) -> DocumentProcessJob:
        await self.redis.hset(job_key(job.id), mapping=job.to_redis_hash())
        logger.info(f"Created document job {job.id} ({job.type.value})")
        return job

    async def get_job(self, job_id: str) -> DocumentProcessJob | None:
        data = await self.redis.hgetall(job_key(job_id))
        if not data:
            return None
        return DocumentProcessJob.from_redis_hash(data)

    async def update_job(
        self,
        job_id: str,
        updates: dict[str, Any],
    ) -> DocumentProcessJob | None:
        """
        Apply a partial update to a job.

        Keys of ``updates`` are DocumentProcessJob field names; a value of
        None removes the field. ``updated_at`` is always set to now,
        whatever the caller passes.

        Returns:
            The updated job, or None if no such job exists
        """
        current = await self.get_job(job_id)
        if current is None:
            logger.warning(f"Cannot update document job {job_id}: not found")
            return None

        merged = current.model_dump()
        merged.update(updates)
        merged["id"] = current.id
        merged["updated_at"] = datetime.now(UTC)
        job = DocumentProcessJob.model_validate(merged)

        key = job_key(job_id)
        stored = job.to_redis_hash()
        await self.redis.hset(key, mapping=stored)

        cleared = [
            field.alias or name
            for name, field in DocumentProcessJob.model_fields.items()
            if (field.alias or name) not in stored
        ]
        if cleared:
            await self.redis.hdel(key, *cleared)

        return job

    async def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        result: str | None = None,
        error: str | None = None,
    ) -> DocumentProcessJob | None:
        """
        Move a job to a new status.

        A completed job carries ``result`` and no error; a failed job
        carries ``error`` and no result. Any other status clears both.

        Raises:
            InvalidJobTransitionError: If the transition is not allowed
        """
        current = await self.get_job(job_id)
        if current is None:
            logger.warning(f"Cannot update status of document job {job_id}: not found")
            return None

        if status not in VALID_JOB_TRANSITIONS[current.status]:
            raise InvalidJobTransitionError(
                f"Cannot move job {job_id} from {current.status.value} to {status.value}"
            )

        updates: dict[str, Any] = {"status": status, "result": None, "error": None}
        if status == JobStatus.COMPLETED:
            updates["result"] = result
        elif status == JobStatus.FAILED:
            updates["error"] = error or "Unknown error"

        job = await self.update_job(job_id, updates)
        logger.info(f"Document job {job_id}: {current.status.value} -> {status.value}")
        return job

    async def delete_job(self, job_id: str) -> bool:
        deleted = await self.redis.delete(job_key(job_id))
        return bool(deleted)

    async def scan_jobs(self) -> AsyncIterator[DocumentProcessJob]:
        """Iterate over every stored job record."""
        async for key in self.redis.scan_iter(match=f"{JOB_KEY_PREFIX}*"):
            data = await self.redis.hgetall(key)
            if data:
                yield DocumentProcessJob.from_redis_hash(data)
