"""
Document Processing Worker

Consumer side of the document pipeline. For one job:

1. Mark the job record PROCESSING
2. Load the Document and read its file from disk
3. Send the file to the extraction API and normalize the response
4. Store ExtractedData and mark the ApplicationDocument COMPLETED in one
   transaction, then mark the job COMPLETED with its result
5. Notify the parent

Any exception is logged with the job and application document ids and
re-raised so the queue can retry it. The job is marked FAILED (and the
ApplicationDocument given a failure reason) on the final attempt, or at
once for errors a retry cannot fix.
"""

import json
import logging
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import ServiceRole, settings
from app.core.database import create_worker_session_maker
from app.core.email import document_type_label
from app.core.redis import create_redis_client
from app.modules.documents import repository
from app.modules.documents.errors import (
    ExtractionFailure,
    InvalidExtractionDataError,
    InvalidJobIdError,
    InvalidServiceRoleError,
    MissingSourceError,
)
from app.modules.documents.extraction import ExtractionClient
from app.modules.documents.job_store import DocumentJobStore
from app.modules.documents.models import ApplicationDocumentStatus, DocumentType
from app.modules.documents.schemas import DocumentProcessJob, JobStatus
from app.modules.documents.service import resolve_document_type
from app.modules.documents.storage import AssetStorage
from app.modules.documents.validation import validate_transcript_data
from app.modules.notifications.models import NotificationPriority, NotificationType
from app.modules.notifications.schemas import NotificationChannel, NotificationPayload
from app.modules.notifications.service import NotificationService

logger = logging.getLogger(__name__)

CONSUMER_ROLES = {ServiceRole.CONSUMER, ServiceRole.BOTH}
TERMINAL_STATUSES = {JobStatus.COMPLETED, JobStatus.FAILED}


def is_retryable_error(exc: BaseException) -> bool:
    """Transport problems and 5xx/429 answers from the extraction API are worth retrying."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500 or exc.response.status_code == 429
    return isinstance(exc, httpx.TransportError)


def failure_status(exc: BaseException) -> ApplicationDocumentStatus:
    if isinstance(exc, ExtractionFailure):
        return exc.status
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in (400, 415, 422):
        return ApplicationDocumentStatus.DOCUMENT_PROCESSING_FAILED_INVALID_FORMAT
    return ApplicationDocumentStatus.DOCUMENT_PROCESSING_FAILED


class DocumentProcessWorker:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        job_store: DocumentJobStore,
        extraction: ExtractionClient | None = None,
        storage: AssetStorage | None = None,
        role: ServiceRole | None = None,
    ):
        self.session_maker = session_maker
        self.job_store = job_store
        self.extraction = extraction or ExtractionClient()
        self.storage = storage or AssetStorage()
        self.role = role or settings.service_role

    async def process_job(
        self,
        job_id: str,
        expected_type: DocumentType,
        final_attempt: bool = True,
    ) -> DocumentProcessJob | None:
        """
        Run one job taken off the ``expected_type`` queue.

        Returns:
            The job after processing, or None if no record exists for it

        Raises:
            InvalidServiceRoleError: If this process is producer-only
            InvalidJobIdError: If the job id belongs to the other queue
            Exception: Whatever made the job fail, for the queue's retry policy
        """
        if self.role not in CONSUMER_ROLES:
            raise InvalidServiceRoleError("process_job", self.role.value)
        if resolve_document_type(job_id) != expected_type:
            raise InvalidJobIdError(job_id)

        job = await self.job_store.get_job(job_id)
        if job is None:
            logger.warning(f"Dropping document job {job_id}: no job record")
            return None
        if job.status in TERMINAL_STATUSES:
            logger.info(f"Skipping document job {job_id}: already {job.status.value}")
            return job

        await self.job_store.update_job_status(job.id, JobStatus.PROCESSING)
        logger.info(f"Processing {job.type.value} job {job.id} (application document {job.application_document_id})")

        try:
            if job.type == DocumentType.TRANSCRIPT:
                return await self._process_transcript(job)
            return await self._process_certificate(job)
        except Exception as e:
            retryable = is_retryable_error(e)
            logger.error(
                f"Document job {job.id} (application document {job.application_document_id}) failed"
                f"{' and will be retried' if retryable and not final_attempt else ''}: {e}",
                exc_info=True,
            )
            if final_attempt or not retryable:
                await self._fail(job, e)
            raise

    async def _read_file(self, path: str) -> bytes:
        try:
            return await self.storage.read(path)
        except FileNotFoundError as e:
            raise MissingSourceError(
                f"File {path} not found",
                status=ApplicationDocumentStatus.DOCUMENT_NOT_UPLOADED,
            ) from e

    async def _process_transcript(self, job: DocumentProcessJob) -> DocumentProcessJob:
        async with self.session_maker() as db:
            document = await repository.get_document(db, job.file_id)
            if document is None:
                raise MissingSourceError(f"Document {job.file_id} not found")
            application_document = await repository.get_application_document(db, job.application_document_id)
            if application_document is None:
                raise MissingSourceError(f"Application document {job.application_document_id} not found")

            content = await self._read_file(document.file_path)
            data = await self.extraction.extract_transcript(content, document.name)

            errors = validate_transcript_data(data)
            if errors:
                raise InvalidExtractionDataError("; ".join(errors))

            try:
                await repository.save_extracted_data(db, document.id, data)
                await repository.mark_application_document_completed(db, application_document)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        completed = await self.job_store.update_job_status(
            job.id, JobStatus.COMPLETED, result=json.dumps(data, ensure_ascii=False)
        )
        logger.info(f"Transcript job {job.id} completed with {len(data)} class records")
        await self._notify_completed(completed or job, transcript=data)
        return completed or job

    async def _process_certificate(self, job: DocumentProcessJob) -> DocumentProcessJob:
        async with self.session_maker() as db:
            document = await repository.get_document(db, job.file_id)
            if document is None:
                raise MissingSourceError(f"Document {job.file_id} not found")
            application_document = await repository.get_application_document(db, job.application_document_id)
            if application_document is None:
                raise MissingSourceError(f"Application document {job.application_document_id} not found")

            full_name = await repository.get_student_full_name(
                db, job.user_id, application_document.application_id
            )
            if not full_name:
                raise MissingSourceError(
                    f"No student registration for user {job.user_id} "
                    f"on application {application_document.application_id}",
                    status=ApplicationDocumentStatus.DOCUMENT_INFORMATION_MISSING,
                )

            content = await self._read_file(document.file_path)
            result = await self.extraction.extract_certificate(
                content, document.name, document.mime_type, full_name
            )
            data = result.model_dump()

            try:
                await repository.save_extracted_data(db, document.id, data)
                await repository.mark_application_document_completed(db, application_document)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        completed = await self.job_store.update_job_status(
            job.id, JobStatus.COMPLETED, result=json.dumps(data, ensure_ascii=False)
        )
        logger.info(f"Certificate job {job.id} completed (name match: {result.correct})")
        await self._notify_completed(completed or job)
        return completed or job

    async def _fail(self, job: DocumentProcessJob, exc: BaseException) -> None:
        message = str(exc) or exc.__class__.__name__
        status = failure_status(exc)

        try:
            async with self.session_maker() as db:
                application_document = await repository.get_application_document(
                    db, job.application_document_id
                )
                if application_document is not None:
                    await repository.mark_application_document_failed(db, application_document, status, message)
                    await db.commit()
        except Exception:
            logger.error(
                f"Could not record failure of job {job.id} on application document {job.application_document_id}",
                exc_info=True,
            )

        await self.job_store.update_job_status(job.id, JobStatus.FAILED, error=message)
        await self._notify_failed(job, message)

    # ============================================
    # Notifications
    # ============================================

    async def _send(self, recipient_id: int | str, payload: NotificationPayload) -> None:
        try:
            async with self.session_maker() as db:
                result = await NotificationService(db).send_notification(recipient_id, payload)
            if not result.success:
                logger.warning(f"Notification '{payload.title}' to {recipient_id} was not delivered: {result.error}")
        except Exception:
            logger.error(f"Failed to send notification '{payload.title}' to {recipient_id}", exc_info=True)

    async def _notify_completed(
        self,
        job: DocumentProcessJob,
        transcript: dict[str, Any] | None = None,
    ) -> None:
        label = document_type_label(job.type.value)
        metadata: dict[str, Any] = {
            "jobId": job.id,
            "documentType": job.type.value,
            "applicationDocumentId": job.application_document_id,
            "status": "completed",
        }
        if transcript:
            metadata["transcript"] = transcript

        await self._send(
            job.user_id,
            NotificationPayload(
                title=f"Xử lý {label} hoàn tất",
                message=f"Hồ sơ {label} ({job.file_name}) đã được xử lý thành công. Mã xử lý: {job.id}.",
                type=NotificationType.DOCUMENT,
                metadata=metadata,
                channels=[NotificationChannel.DATABASE, NotificationChannel.EMAIL],
            ),
        )

    async def _notify_failed(self, job: DocumentProcessJob, message: str) -> None:
        label = document_type_label(job.type.value)
        metadata = {
            "jobId": job.id,
            "documentType": job.type.value,
            "applicationDocumentId": job.application_document_id,
        }

        await self._send(
            job.user_id,
            NotificationPayload(
                title=f"Lỗi xử lý {label}",
                message=f"Không thể xử lý hồ sơ {label} ({job.file_name}). Mã xử lý: {job.id}.",
                type=NotificationType.DOCUMENT,
                priority=NotificationPriority.HIGH,
                metadata={**metadata, "status": "failed", "reason": message},
                channels=[NotificationChannel.DATABASE, NotificationChannel.EMAIL],
            ),
        )
        # Operational alert for the admissions team
        await self._send(
            job.user_id,
            NotificationPayload(
                title=f"Document job failed: {job.id}",
                message=f"{job.type.value} job for application document {job.application_document_id} failed",
                type=NotificationType.SYSTEM,
                priority=NotificationPriority.HIGH,
                metadata={**metadata, "error": message},
            ),
        )


async def run_document_job(
    job_id: str,
    expected_type: DocumentType,
    final_attempt: bool = True,
) -> DocumentProcessJob | None:
    """Entry point for Celery tasks: owns the per-task database engine and Redis client."""
    engine, session_maker = create_worker_session_maker()
    redis = create_redis_client()
    try:
        worker = DocumentProcessWorker(session_maker, DocumentJobStore(redis))
        return await worker.process_job(job_id, expected_type, final_attempt=final_attempt)
    finally:
        await redis.aclose()
        await engine.dispose()
