"""
Document Processing Models

Uploaded files, their attachment to admission applications, and the data
extracted from them by the external document-understanding API.
"""

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.modules.shared import BaseModel

if TYPE_CHECKING:
    from app.modules.applications.models import Application


class DocumentType(str, enum.Enum):
    """Kinds of documents the pipeline can process."""

    TRANSCRIPT = "transcript"
    CERTIFICATE = "certificate"


class ApplicationDocumentStatus(str, enum.Enum):
    """
    Processing status of an application document.

    Anything other than PENDING and COMPLETED is a failure reason.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    DOCUMENT_NOT_FOUND = "document_not_found"
    DOCUMENT_NOT_UPLOADED = "document_not_uploaded"
    DOCUMENT_UPLOAD_FAILED = "document_upload_failed"
    DOCUMENT_PROCESSING_FAILED = "document_processing_failed"
    DOCUMENT_PROCESSING_FAILED_INVALID_DATA = "document_processing_failed_invalid_data"
    DOCUMENT_PROCESSING_FAILED_INVALID_FORMAT = "document_processing_failed_invalid_format"
    DOCUMENT_PROCESSING_FAILED_INVALID_FILE_TYPE = "document_processing_failed_invalid_file_type"
    DOCUMENT_QUALITY_CHECK_FAILED = "document_quality_check_failed"
    DOCUMENT_INFORMATION_MISSING = "document_information_missing"

    @property
    def is_failure(self) -> bool:
        return self not in (ApplicationDocumentStatus.PENDING, ApplicationDocumentStatus.COMPLETED)


# Rejection messages shown to parents, keyed by failure status
FAILURE_MESSAGES: dict[ApplicationDocumentStatus, str] = {
    ApplicationDocumentStatus.DOCUMENT_NOT_FOUND: "Không tìm thấy tài liệu",
    ApplicationDocumentStatus.DOCUMENT_NOT_UPLOADED: "Tài liệu không được tải lên",
    ApplicationDocumentStatus.DOCUMENT_UPLOAD_FAILED: "Tải lên tài liệu thất bại",
    ApplicationDocumentStatus.DOCUMENT_PROCESSING_FAILED: "Xử lý tài liệu thất bại",
    ApplicationDocumentStatus.DOCUMENT_PROCESSING_FAILED_INVALID_DATA: "Dữ liệu tài liệu không hợp lệ",
    ApplicationDocumentStatus.DOCUMENT_PROCESSING_FAILED_INVALID_FORMAT: "Định dạng tài liệu không hợp lệ",
    ApplicationDocumentStatus.DOCUMENT_PROCESSING_FAILED_INVALID_FILE_TYPE: "Định dạng tài liệu không hợp lệ",
    ApplicationDocumentStatus.DOCUMENT_QUALITY_CHECK_FAILED: "Kiểm tra chất lượng tài liệu thất bại",
    ApplicationDocumentStatus.DOCUMENT_INFORMATION_MISSING: "Thông tin tài liệu không đầy đủ",
}


def build_rejection_reason(status: ApplicationDocumentStatus, detail: str | None = None) -> str:
    """Vietnamese rejection message for a failure status, with the technical detail appended."""
    message = FAILURE_MESSAGES.get(status, FAILURE_MESSAGES[ApplicationDocumentStatus.DOCUMENT_PROCESSING_FAILED])
    if detail:
        return f"{message}: {detail}"
    return message


class Document(BaseModel):
    """Metadata of a file stored on the assets filesystem."""

    __tablename__ = "documents"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    # Relative to the working directory of the worker process
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_by: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    application_document: Mapped["ApplicationDocument | None"] = relationship(
        "ApplicationDocument",
        back_populates="document",
        uselist=False,
    )
    extracted_data: Mapped["ExtractedData | None"] = relationship(
        "ExtractedData",
        back_populates="document",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, name={self.name}, mime_type={self.mime_type})>"


class ApplicationDocument(BaseModel):
    """
    Status-bearing link between an Application and an uploaded Document.

    An application has at most one transcript row (re-uploads update it in
    place) and any number of certificate rows.
    """

    __tablename__ = "application_documents"

    application_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    document_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    type: Mapped[DocumentType] = mapped_column(
        Enum(DocumentType, name="document_type"), nullable=False
    )

    # Review state
    status: Mapped[ApplicationDocumentStatus] = mapped_column(
        Enum(ApplicationDocumentStatus, name="application_document_status"),
        nullable=False,
        default=ApplicationDocumentStatus.PENDING,
    )
    is_eligible: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    verification_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    application: Mapped["Application"] = relationship("Application", back_populates="documents")
    document: Mapped["Document"] = relationship(
        "Document",
        back_populates="application_document",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_application_documents_application_id", "application_id"),
        Index(
            "uq_application_documents_transcript",
            "application_id",
            unique=True,
            postgresql_where=text("type = 'TRANSCRIPT'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ApplicationDocument(id={self.id}, application_id={self.application_id}, "
            f"type={self.type}, status={self.status})>"
        )


class ExtractedData(BaseModel):
    """Normalized extraction result of a Document, one row per Document."""

    __tablename__ = "extracted_data"

    document_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    document: Mapped["Document"] = relationship("Document", back_populates="extracted_data")

    def __repr__(self) -> str:
        return f"<ExtractedData(id={self.id}, document_id={self.document_id}, verified={self.is_verified})>"
