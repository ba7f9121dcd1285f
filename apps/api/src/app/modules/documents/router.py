"""
Document Processing Router

Endpoints:
- POST /process/document-upload - Upload documents and queue them for extraction
- GET /process/application/{application_id}/documents - List an application's documents
- GET /process/document-upload/{document_id}/extracted-data - Extracted data of a completed job
- PATCH /process/document-upload/extracted-data/{extracted_data_id} - Verify extracted data
- GET /process/jobs/{job_id} - Job status

``document_id`` and ``extracted_data_id`` are job ids; the document type is
read from the id prefix.
"""

import json
import logging
from typing import Any, NoReturn

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import CurrentUser, get_current_user
from app.core.database import get_db
from app.core.redis import get_redis
from app.modules.documents.errors import DocumentProcessError
from app.modules.documents.job_store import DocumentJobStore
from app.modules.documents.schemas import (
    ApplicationDocumentListResponse,
    JobStatusResponse,
    UploadDocumentResponse,
    VerificationOutcome,
    VerifyExtractedDataRequest,
)
from app.modules.documents.service import (
    DocumentProcessService,
    UploadedFile,
    resolve_document_type,
    validate_upload,
)
from app.modules.documents.tasks import CeleryDocumentQueue

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_FILES = 10
MAX_FILE_SIZE = 50 * 1024 * 1024
ALLOWED_MIME_TYPES = {"application/pdf", "image/jpeg", "image/png", "image/webp"}


async def get_document_service(
    db: AsyncSession = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
) -> DocumentProcessService:
    if redis is None:
        logger.error("Job record store unavailable: Redis not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "JOB_STORE_UNAVAILABLE",
                "message": "Document processing is temporarily unavailable.",
            },
        )
    return DocumentProcessService(db, DocumentJobStore(redis), CeleryDocumentQueue())


def _raise_http(e: DocumentProcessError) -> NoReturn:
    if e.status_code >= 500:
        logger.error(f"Document processing error {e.error_code}: {e.message}")
    else:
        logger.warning(f"Document request rejected ({e.error_code}): {e.message}")
    raise HTTPException(
        status_code=e.status_code,
        detail={"error": e.error_code, "message": e.message},
    ) from e


def _bad_request(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": error, "message": message},
    )


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


def _parse_metadata(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        metadata = json.loads(raw)
    except ValueError as e:
        raise _bad_request("INVALID_METADATA", "metadata must be a JSON object") from e
    if not isinstance(metadata, dict):
        raise _bad_request("INVALID_METADATA", "metadata must be a JSON object")
    return metadata


async def _read_uploads(files: list[UploadFile], document_type: str) -> list[UploadedFile]:
    """Check count, size and type of every file before anything is stored."""
    if not files:
        raise _bad_request("FILE_REQUIRED", "At least one file is required")
    if len(files) > MAX_FILES:
        raise _bad_request("TOO_MANY_FILES", f"At most {MAX_FILES} files can be uploaded at once")

    uploads = []
    for file in files:
        if file.content_type not in ALLOWED_MIME_TYPES:
            raise _bad_request(
                "INVALID_FILE_TYPE",
                f"Unsupported file type {file.content_type}. Allowed: PDF, JPEG, PNG, WEBP",
            )
        content = await file.read()
        if len(content) > MAX_FILE_SIZE:
            raise _bad_request(
                "FILE_TOO_LARGE",
                f"{file.filename} exceeds the {MAX_FILE_SIZE // (1024 * 1024)} MB limit",
            )
        upload = UploadedFile(filename=file.filename, content_type=file.content_type, content=content)
        try:
            validate_upload(upload, document_type)
        except DocumentProcessError as e:
            _raise_http(e)
        uploads.append(upload)
    return uploads


@router.post(
    "/document-upload",
    response_model=list[UploadDocumentResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Upload documents for processing",
    responses={
        400: {"description": "Missing, empty, oversized or mismatched file, or unknown document type"},
        403: {"description": "Application belongs to another user"},
        404: {"description": "Application not found"},
        503: {"description": "Queue or job record store unavailable"},
    },
)
async def upload_documents(
    files: list[UploadFile] = File(...),
    document_type: str = Form(..., alias="type"),
    application_id: int = Form(..., alias="applicationId"),
    metadata: str | None = Form(None),
    user: CurrentUser = Depends(get_current_user),
    service: DocumentProcessService = Depends(get_document_service),
) -> list[UploadDocumentResponse]:
    """
    Store each file, create or update its application document, and queue
    an extraction job. Transcripts replace the application's existing
    transcript; certificates are always added.
    """
    parsed_metadata = _parse_metadata(metadata)
    uploads = await _read_uploads(files, document_type)

    responses = []
    try:
        for upload in uploads:
            responses.append(
                await service.upload_and_process_document(
                    upload,
                    document_type,
                    application_id,
                    user.id,
                    metadata=parsed_metadata,
                    is_admin=user.is_admin,
                )
            )
    except DocumentProcessError as e:
        _raise_http(e)
    except Exception as e:
        logger.exception(f"Upload to application {application_id} failed for user {user.id}")
        raise _internal_error() from e

    logger.info(f"User {user.id} uploaded {len(responses)} {document_type} file(s) to application {application_id}")
    return responses


@router.get(
    "/application/{application_id}/documents",
    response_model=ApplicationDocumentListResponse,
    summary="List an application's documents",
)
async def list_application_documents(
    application_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    user: CurrentUser = Depends(get_current_user),
    service: DocumentProcessService = Depends(get_document_service),
) -> ApplicationDocumentListResponse:
    try:
        return await service.get_application_documents(
            application_id, user.id, page=page, page_size=page_size, is_admin=user.is_admin
        )
    except DocumentProcessError as e:
        _raise_http(e)
    except Exception as e:
        logger.exception(f"Failed to list documents of application {application_id}")
        raise _internal_error() from e


@router.get(
    "/document-upload/{document_id}/extracted-data",
    summary="Get extracted data of a completed job",
    responses={
        403: {"description": "Job belongs to another user"},
        404: {"description": "Job not found"},
        409: {"description": "Job not completed yet"},
    },
)
async def get_extracted_data(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: DocumentProcessService = Depends(get_document_service),
) -> Any:
    try:
        return await service.get_extracted_data(document_id, user.id, is_admin=user.is_admin)
    except DocumentProcessError as e:
        _raise_http(e)
    except Exception as e:
        logger.exception(f"Failed to read extracted data of job {document_id}")
        raise _internal_error() from e


@router.patch(
    "/document-upload/extracted-data/{extracted_data_id}",
    response_model=VerificationOutcome,
    summary="Verify extracted data",
    description="""
Accept or reject the extracted data of a completed job.

The stored result is validated again first. When it is invalid the
application document is marked as failed and the response carries the
failed job and `validationErrors`, with status 200.
""",
)
async def verify_extracted_data(
    extracted_data_id: str,
    data: VerifyExtractedDataRequest,
    user: CurrentUser = Depends(get_current_user),
    service: DocumentProcessService = Depends(get_document_service),
) -> VerificationOutcome:
    try:
        document_type = resolve_document_type(extracted_data_id)
        return await service.verify_extracted_data(
            extracted_data_id,
            document_type,
            data.is_verified,
            user.id,
            verification_notes=data.verification_notes,
            is_admin=user.is_admin,
        )
    except DocumentProcessError as e:
        _raise_http(e)
    except Exception as e:
        logger.exception(f"Verification of job {extracted_data_id} failed")
        raise _internal_error() from e


@router.get(
    "/jobs/{job_id}",
    response_model=JobStatusResponse,
    summary="Get job status",
)
async def get_job_status(
    job_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: DocumentProcessService = Depends(get_document_service),
) -> JobStatusResponse:
    try:
        job = await service.get_job_status(job_id, user.id, is_admin=user.is_admin)
    except DocumentProcessError as e:
        _raise_http(e)
    except Exception as e:
        logger.exception(f"Failed to read status of job {job_id}")
        raise _internal_error() from e

    return job
