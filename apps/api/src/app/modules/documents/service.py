"""
Document Processing Service Layer

Producer side of the document pipeline:

1. Upload-and-process:
   - Validate the file against the document type before anything is stored
   - Store the file and create/update Document + ApplicationDocument rows
     in one transaction (transcripts are replaced in place, certificates
     always get new rows)
   - Create the job record and enqueue the job as the final step

2. Job status and extracted data lookups (routed by job id prefix)

3. Verification:
   - A reviewer accepts or rejects extracted data
   - The stored result is re-validated first; invalid data is recorded as a
     failure on the ApplicationDocument and returned, not raised

The relational store is the source of truth for documents; the job record
store is updated after the relational transaction commits.
"""

import json
import logging
import math
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import ServiceRole, settings
from app.modules.documents import repository
from app.modules.documents.errors import (
    ApplicationNotFoundError,
    DocumentNotFoundError,
    FileRequiredError,
    InvalidDocumentTypeError,
    InvalidFileError,
    InvalidFileTypeError,
    InvalidJobIdError,
    InvalidServiceRoleError,
    InvalidStoredResultError,
    JobNotFoundError,
    PermissionDeniedError,
    ProcessingIncompleteError,
    QueueUnavailableError,
)
from app.modules.documents.job_store import DocumentJobStore
from app.modules.documents.models import (
    ApplicationDocument,
    ApplicationDocumentStatus,
    Document,
    DocumentType,
)
from app.modules.documents.schemas import (
    ApplicationDocumentListResponse,
    ApplicationDocumentResponse,
    DocumentProcessJob,
    JobStatus,
    JobStatusResponse,
    UploadDocumentResponse,
    VerificationOutcome,
)
from app.modules.documents.storage import AssetStorage
from app.modules.documents.validation import (
    validate_certificate_result,
    validate_transcript_result,
)

logger = logging.getLogger(__name__)

# Job id prefix per document type
JOB_ID_PREFIXES: dict[DocumentType, str] = {
    DocumentType.TRANSCRIPT: "transcript-",
    DocumentType.CERTIFICATE: "certificate-",
}

TRANSCRIPT_MIME_TYPE = "application/pdf"
CERTIFICATE_MIME_PREFIX = "image/"

PRODUCER_ROLES = {ServiceRole.PRODUCER, ServiceRole.BOTH}


@dataclass
class UploadedFile:
    """A file received by the upload endpoint."""

    filename: str | None
    content_type: str | None
    content: bytes | None


class DocumentQueue(Protocol):
    async def enqueue(self, job: DocumentProcessJob) -> None: ...


def resolve_document_type(job_id: str) -> DocumentType:
    """
    Route a job id to its document type by prefix.

    Raises:
        InvalidJobIdError: If the id has neither the transcript nor the
            certificate prefix
    """
    for document_type, prefix in JOB_ID_PREFIXES.items():
        if job_id.startswith(prefix):
            return document_type
    raise InvalidJobIdError(job_id)


def build_job_id(document_type: DocumentType, document_id: int) -> str:
    return f"{JOB_ID_PREFIXES[document_type]}{int(time.time() * 1000)}-{document_id}"


def validate_upload(file: UploadedFile | None, document_type: str | DocumentType) -> DocumentType:
    """
    Check an upload against its declared document type.

    Raises:
        FileRequiredError, InvalidFileError, InvalidDocumentTypeError,
        InvalidFileTypeError
    """
    if file is None:
        raise FileRequiredError()
    if not file.content or not file.filename or not file.content_type:
        raise InvalidFileError()

    try:
        doc_type = DocumentType(document_type)
    except ValueError as e:
        raise InvalidDocumentTypeError(str(document_type)) from e

    if doc_type == DocumentType.TRANSCRIPT and file.content_type != TRANSCRIPT_MIME_TYPE:
        raise InvalidFileTypeError("Only PDF files are accepted for transcript processing")
    if doc_type == DocumentType.CERTIFICATE and not file.content_type.startswith(CERTIFICATE_MIME_PREFIX):
        raise InvalidFileTypeError("Only image files are accepted for certificate processing")

    return doc_type


class DocumentProcessService:
    """Producer-side operations of the document pipeline."""

    def __init__(
        self,
        db: AsyncSession,
        job_store: DocumentJobStore,
        queue: DocumentQueue,
        storage: AssetStorage | None = None,
        role: ServiceRole | None = None,
    ):
        self.db = db
        self.job_store = job_store
        self.queue = queue
        self.storage = storage or AssetStorage()
        self.role = role or settings.service_role

    def _require_producer(self, operation: str) -> None:
        if self.role not in PRODUCER_ROLES:
            raise InvalidServiceRoleError(operation, self.role.value)

    # ============================================
    # Upload
    # ============================================

    async def upload_and_process_document(
        self,
        file: UploadedFile | None,
        document_type: str | DocumentType,
        application_id: int,
        user_id: int,
        metadata: dict[str, Any] | None = None,
        is_admin: bool = False,
    ) -> UploadDocumentResponse:
        """
        Store an uploaded document and queue it for extraction.

        Returns:
            The job id and its initial status

        Raises:
            DocumentProcessError subclasses for invalid files, unknown
            applications, foreign applications and queue failures
        """
        self._require_producer("upload_and_process_document")
        doc_type = validate_upload(file, document_type)

        application = await repository.get_application(self.db, application_id)
        if application is None:
            raise ApplicationNotFoundError(application_id)
        if not is_admin and application.student.user_id != user_id:
            logger.warning(f"User {user_id} tried to upload to application {application_id}")
            raise PermissionDeniedError("You do not have access to this application")

        stored = await self.storage.save(
            content=file.content,
            file_name=file.filename,
            mime_type=file.content_type,
            user_id=user_id,
            metadata=metadata,
        )
        file_fields = {
            "name": stored.file_name,
            "mime_type": stored.mime_type,
            "url": stored.url,
            "file_path": stored.file_path,
            "file_size": stored.file_size,
            "uploaded_by": user_id,
        }

        replaced_path: str | None = None
        try:
            application_document = None
            if doc_type == DocumentType.TRANSCRIPT:
                application_document = await repository.get_transcript_application_document(
                    self.db, application_id
                )

            if application_document is not None:
                replaced_path = application_document.document.file_path
                document = await repository.replace_document_file(
                    self.db, application_document.document, **file_fields
                )
                await repository.reset_application_document(self.db, application_document)
                removed = await repository.delete_extracted_data_for_document(self.db, document.id)
                logger.info(
                    f"Replacing transcript of application {application_id} "
                    f"(application document {application_document.id}, {removed} extracted rows removed)"
                )
            else:
                document = await repository.create_document(self.db, **file_fields)
                application_document = await repository.create_application_document(
                    self.db,
                    application_id=application_id,
                    document_id=document.id,
                    document_type=doc_type,
                )

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            await self.storage.delete(stored.file_path)
            logger.error(
                f"Failed to record {doc_type.value} upload for application {application_id}",
                exc_info=True,
            )
            raise

        if replaced_path and replaced_path != stored.file_path:
            try:
                await self.storage.delete(replaced_path)
            except OSError as e:
                logger.warning(f"Could not remove replaced file {replaced_path}: {e}")

        if doc_type == DocumentType.TRANSCRIPT:
            job = await self.process_transcript(document, application_document, user_id)
        else:
            job = await self.process_certificate(document, application_document, user_id)

        return UploadDocumentResponse(id=job.id, job_id=job.id, status=job.status)

    # ============================================
    # Producers
    # ============================================

    async def process_transcript(
        self,
        document: Document,
        application_document: ApplicationDocument,
        user_id: int,
    ) -> DocumentProcessJob:
        self._require_producer("process_transcript")
        return await self._submit(DocumentType.TRANSCRIPT, document, application_document, user_id)

    async def process_certificate(
        self,
        document: Document,
        application_document: ApplicationDocument,
        user_id: int,
    ) -> DocumentProcessJob:
        self._require_producer("process_certificate")
        return await self._submit(DocumentType.CERTIFICATE, document, application_document, user_id)

    async def _submit(
        self,
        document_type: DocumentType,
        document: Document,
        application_document: ApplicationDocument,
        user_id: int,
    ) -> DocumentProcessJob:
        now = datetime.now(UTC)
        job = DocumentProcessJob(
            id=build_job_id(document_type, document.id),
            user_id=user_id,
            file_id=document.id,
            file_name=document.name,
            file_url=document.url,
            path=document.file_path,
            application_document_id=application_document.id,
            type=document_type,
            status=JobStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        await self.job_store.create_job(job)

        try:
            await self.queue.enqueue(job)
        except Exception as e:
            logger.error(
                f"Failed to enqueue job {job.id} for application document {application_document.id}",
                exc_info=True,
            )
            await self.job_store.update_job_status(job.id, JobStatus.FAILED, error=f"Queue unavailable: {e}")
            await repository.mark_application_document_failed(
                self.db,
                application_document,
                ApplicationDocumentStatus.DOCUMENT_UPLOAD_FAILED,
                "queue unavailable",
            )
            await self.db.commit()
            raise QueueUnavailableError(job.id) from e

        logger.info(f"Queued {document_type.value} job {job.id} for application document {application_document.id}")
        return job

    # ============================================
    # Lookups
    # ============================================

    async def _get_owned_job(self, job_id: str, user_id: int, is_admin: bool) -> DocumentProcessJob:
        document_type = resolve_document_type(job_id)
        job = await self.job_store.get_job(job_id)
        if job is None or job.type != document_type:
            raise JobNotFoundError(job_id)
        if not is_admin and job.user_id != user_id:
            logger.warning(f"User {user_id} tried to access job {job_id}")
            raise PermissionDeniedError("You do not have access to this document")
        return job

    async def get_job_status(
        self,
        job_id: str,
        user_id: int | None = None,
        is_admin: bool = False,
    ) -> JobStatusResponse:
        """Status of a job; ownership is checked when ``user_id`` is given."""
        self._require_producer("get_job_status")
        if user_id is not None:
            job = await self._get_owned_job(job_id, user_id, is_admin)
        else:
            document_type = resolve_document_type(job_id)
            job = await self.job_store.get_job(job_id)
            if job is None or job.type != document_type:
                raise JobNotFoundError(job_id)

        return JobStatusResponse(
            job_id=job.id,
            type=job.type,
            status=job.status,
            result=job.result,
            error=job.error,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )

    async def get_extracted_data(self, job_id: str, user_id: int, is_admin: bool = False) -> Any:
        """Parsed extraction result of a completed job."""
        self._require_producer("get_extracted_data")
        job = await self._get_owned_job(job_id, user_id, is_admin)
        if job.status != JobStatus.COMPLETED:
            raise ProcessingIncompleteError(job_id, job.status.value)

        try:
            return json.loads(job.result or "")
        except ValueError as e:
            logger.exception(f"Stored result of job {job_id} is not valid JSON")
            raise InvalidStoredResultError(job_id) from e

    async def get_application_documents(
        self,
        application_id: int,
        user_id: int,
        page: int = 1,
        page_size: int = 20,
        is_admin: bool = False,
    ) -> ApplicationDocumentListResponse:
        application = await repository.get_application(self.db, application_id)
        if application is None:
            raise ApplicationNotFoundError(application_id)
        if not is_admin and application.student.user_id != user_id:
            raise PermissionDeniedError("You do not have access to this application")

        items, total = await repository.list_application_documents(
            self.db,
            application_id,
            offset=(page - 1) * page_size,
            limit=page_size,
        )
        return ApplicationDocumentListResponse(
            data=[ApplicationDocumentResponse.model_validate(item) for item in items],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if total else 0,
        )

    # ============================================
    # Verification
    # ============================================

    async def verify_extracted_data(
        self,
        job_id: str,
        document_type: str | DocumentType,
        is_verified: bool,
        user_id: int,
        verification_notes: str | None = None,
        is_admin: bool = False,
    ) -> VerificationOutcome:
        """
        Accept or reject the extracted data of a completed job.

        The stored result is re-validated first. If it is invalid, the
        ApplicationDocument is marked as failed with the offending fields,
        the job is marked failed, and the outcome is returned.
        """
        self._require_producer("verify_extracted_data")
        try:
            doc_type = DocumentType(document_type)
        except ValueError as e:
            raise InvalidDocumentTypeError(str(document_type)) from e
        if resolve_document_type(job_id) != doc_type:
            raise InvalidJobIdError(job_id)

        job = await self._get_owned_job(job_id, user_id, is_admin)
        if job.status != JobStatus.COMPLETED:
            raise ProcessingIncompleteError(job_id, job.status.value)

        application_document = await repository.get_application_document(
            self.db, job.application_document_id
        )
        if application_document is None:
            raise DocumentNotFoundError(f"Application document {job.application_document_id} not found")

        if doc_type == DocumentType.TRANSCRIPT:
            errors = validate_transcript_result(job.result)
        else:
            errors = validate_certificate_result(job.result)
        if errors:
            return await self._reject_invalid_data(job, application_document, errors)

        extracted = await repository.get_extracted_data_by_document(self.db, job.file_id)
        if extracted is None:
            raise DocumentNotFoundError(f"Extracted data for document {job.file_id} not found")

        verified_at = datetime.now(UTC)
        try:
            await repository.set_extracted_data_verification(
                self.db, extracted, is_verified=is_verified, notes=verification_notes
            )
            if is_verified:
                await repository.mark_application_document_completed(
                    self.db, application_document, is_eligible=True, verified_at=verified_at
                )
            else:
                await repository.mark_application_document_failed(
                    self.db,
                    application_document,
                    ApplicationDocumentStatus.DOCUMENT_QUALITY_CHECK_FAILED,
                    verification_notes,
                    verified_at=verified_at,
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.error(
                f"Failed to record verification of job {job_id} "
                f"(application document {application_document.id})",
                exc_info=True,
            )
            raise

        logger.info(f"Job {job_id} verified by user {user_id}: is_verified={is_verified}")
        return VerificationOutcome(
            job=job,
            application_document_id=application_document.id,
            status=application_document.status,
            is_eligible=application_document.is_eligible,
            rejection_reason=application_document.rejection_reason,
        )

    async def _reject_invalid_data(
        self,
        job: DocumentProcessJob,
        application_document: ApplicationDocument,
        errors: list[str],
    ) -> VerificationOutcome:
        detail = "; ".join(errors)
        logger.warning(
            f"Extracted data of job {job.id} failed validation "
            f"(application document {application_document.id}): {detail}"
        )
        try:
            await repository.mark_application_document_failed(
                self.db,
                application_document,
                ApplicationDocumentStatus.DOCUMENT_PROCESSING_FAILED_INVALID_DATA,
                detail,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        failed = await self.job_store.update_job_status(job.id, JobStatus.FAILED, error=detail)
        return VerificationOutcome(
            job=failed or job,
            application_document_id=application_document.id,
            status=application_document.status,
            is_eligible=application_document.is_eligible,
            rejection_reason=application_document.rejection_reason,
            validation_errors=errors,
        )
