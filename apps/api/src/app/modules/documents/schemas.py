"""
Document Processing Schemas

Pydantic schemas for the job record, the normalized extraction results and
the HTTP request/response bodies.
"""

import json
import math
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from app.modules.documents.models import ApplicationDocumentStatus, DocumentType

# ============================================
# Job record
# ============================================


class JobStatus(str, Enum):
    """Lifecycle status of a document processing job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def encode_redis_value(value: Any) -> str:
    """Render a JSON-mode field value as a Redis hash string."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return json.dumps(value)
    if isinstance(value, int | float):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


class DocumentProcessJob(BaseModel):
    """
    A document processing job as stored in the job record store.

    The Redis hash uses the camelCase field names; every value is a string
    there and is parsed back through this model on read.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_id: int = Field(..., alias="userId")
    file_id: int = Field(..., alias="fileId")
    file_name: str = Field(..., alias="fileName")
    file_url: str = Field(..., alias="fileUrl")
    path: str
    application_document_id: int = Field(..., alias="applicationDocumentId")
    type: DocumentType
    status: JobStatus = JobStatus.PENDING
    result: str | None = None
    error: str | None = None
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    @field_validator("result", "error", mode="before")
    @classmethod
    def _empty_as_none(cls, value: Any) -> Any:
        return value or None

    def to_redis_hash(self) -> dict[str, str]:
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        return {key: encode_redis_value(value) for key, value in data.items()}

    @classmethod
    def from_redis_hash(cls, data: dict[str, str]) -> "DocumentProcessJob":
        return cls.model_validate(data)


# ============================================
# Extraction results
# ============================================


class SubjectScore(BaseModel):
    """One subject line of a transcript."""

    mon: str
    muc: Literal["T", "H"]
    diem: int | float | None

    @field_validator("diem", mode="before")
    @classmethod
    def _numeric_or_null(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ValueError("score must be a number or null")
        if isinstance(value, float) and math.isnan(value):
            raise ValueError("score must not be NaN")
        return value


class TranscriptData(BaseModel):
    """Normalized record of one class year on a transcript."""

    model_config = ConfigDict(populate_by_name=True)

    ten: str
    mon_hoc: list[SubjectScore] = Field(..., alias="monHoc")
    pham_chat: dict[str, Any] | None = Field(None, alias="phamChat")
    nang_luc: dict[str, Any] | None = Field(None, alias="nangLuc")


# Class name (e.g. "Lớp 5") -> record
TranscriptResult = TypeAdapter(dict[str, TranscriptData])


class CertificateProcessResult(BaseModel):
    """Result returned by the certificate endpoint of the extraction API."""

    name: str | None = None
    extracted_name: str | None = None
    level: str | None = None
    correct: bool = False


# ============================================
# Requests
# ============================================


class VerifyExtractedDataRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_verified: bool = Field(..., alias="isVerified")
    verification_notes: str | None = Field(None, alias="verificationNotes", max_length=2000)


# ============================================
# Responses
# ============================================


class UploadDocumentResponse(BaseModel):
    """Returned for every file accepted by the upload endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    job_id: str = Field(..., alias="jobId")
    status: JobStatus


class JobStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")
    type: DocumentType
    status: JobStatus
    result: str | None = None
    error: str | None = None
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    name: str
    mime_type: str = Field(..., alias="mimeType")
    url: str
    file_size: int = Field(..., alias="fileSize")
    uploaded_at: datetime = Field(..., alias="uploadedAt")


class ApplicationDocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    application_id: int = Field(..., alias="applicationId")
    type: DocumentType
    status: ApplicationDocumentStatus
    is_eligible: bool | None = Field(None, alias="isEligible")
    rejection_reason: str | None = Field(None, alias="rejectionReason")
    verification_date: datetime | None = Field(None, alias="verificationDate")
    document: DocumentResponse


class ApplicationDocumentListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: list[ApplicationDocumentResponse]
    total: int
    page: int
    page_size: int = Field(..., alias="pageSize")
    total_pages: int = Field(..., alias="totalPages")


class VerificationOutcome(BaseModel):
    """
    Result of a human verification.

    Validation failures are reported here (with the job marked failed)
    rather than raised, so reviewers can see why the data was rejected.
    """

    model_config = ConfigDict(populate_by_name=True)

    job: DocumentProcessJob
    application_document_id: int = Field(..., alias="applicationDocumentId")
    status: ApplicationDocumentStatus
    is_eligible: bool | None = Field(None, alias="isEligible")
    rejection_reason: str | None = Field(None, alias="rejectionReason")
    validation_errors: list[str] = Field(default_factory=list, alias="validationErrors")
