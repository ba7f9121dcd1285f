"""
Document Processing Repository

Database operations for documents, application documents and extracted data.
Functions flush but never commit: the service layer owns the transaction
of each logical operation (upload, processing, verification).
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.modules.applications.models import Application, Student, StudentRegistration
from app.modules.documents.models import (
    ApplicationDocument,
    ApplicationDocumentStatus,
    Document,
    DocumentType,
    ExtractedData,
    build_rejection_reason,
)


# ============================================
# Applications (read-only)
# ============================================


async def get_application(db: AsyncSession, application_id: int) -> Application | None:
    """Get an application with its student loaded."""
    return await db.get(Application, application_id)


async def get_student_full_name(db: AsyncSession, user_id: int, application_id: int) -> str | None:
    """Registered full name of the student an application belongs to."""
    result = await db.execute(
        select(StudentRegistration.full_name)
        .join(Student, Student.id == StudentRegistration.student_id)
        .join(Application, Application.student_id == Student.id)
        .where(Application.id == application_id, Student.user_id == user_id)
    )
    return result.scalar_one_or_none()


# ============================================
# Documents
# ============================================


async def get_document(db: AsyncSession, document_id: int) -> Document | None:
    return await db.get(Document, document_id)


async def create_document(
    db: AsyncSession,
    *,
    name: str,
    mime_type: str,
    url: str,
    file_path: str,
    file_size: int,
    uploaded_by: int,
) -> Document:
    document = Document(
        name=name,
        mime_type=mime_type,
        url=url,
        file_path=file_path,
        file_size=file_size,
        uploaded_by=uploaded_by,
        uploaded_at=datetime.now(UTC),
    )
    db.add(document)
    await db.flush()
    return document


async def replace_document_file(
    db: AsyncSession,
    document: Document,
    *,
    name: str,
    mime_type: str,
    url: str,
    file_path: str,
    file_size: int,
    uploaded_by: int,
) -> Document:
    """Point an existing Document row at a newly uploaded file."""
    document.name = name
    document.mime_type = mime_type
    document.url = url
    document.file_path = file_path
    document.file_size = file_size
    document.uploaded_by = uploaded_by
    document.uploaded_at = datetime.now(UTC)
    await db.flush()
    return document


# ============================================
# Application documents
# ============================================


async def get_application_document(
    db: AsyncSession, application_document_id: int
) -> ApplicationDocument | None:
    return await db.get(ApplicationDocument, application_document_id)


async def get_transcript_application_document(
    db: AsyncSession, application_id: int
) -> ApplicationDocument | None:
    """The (single) transcript row of an application, if one was uploaded."""
    result = await db.execute(
        select(ApplicationDocument)
        .options(selectinload(ApplicationDocument.document))
        .where(
            ApplicationDocument.application_id == application_id,
            ApplicationDocument.type == DocumentType.TRANSCRIPT,
        )
    )
    return result.scalar_one_or_none()


async def create_application_document(
    db: AsyncSession,
    *,
    application_id: int,
    document_id: int,
    document_type: DocumentType,
) -> ApplicationDocument:
    application_document = ApplicationDocument(
        application_id=application_id,
        document_id=document_id,
        type=document_type,
        status=ApplicationDocumentStatus.PENDING,
    )
    db.add(application_document)
    await db.flush()
    return application_document


async def reset_application_document(
    db: AsyncSession, application_document: ApplicationDocument
) -> ApplicationDocument:
    """Return a re-uploaded document to the pending state."""
    application_document.status = ApplicationDocumentStatus.PENDING
    application_document.is_eligible = None
    application_document.rejection_reason = None
    application_document.verification_date = None
    await db.flush()
    return application_document


async def mark_application_document_completed(
    db: AsyncSession,
    application_document: ApplicationDocument,
    *,
    is_eligible: bool | None = None,
    verified_at: datetime | None = None,
) -> ApplicationDocument:
    application_document.status = ApplicationDocumentStatus.COMPLETED
    application_document.rejection_reason = None
    if is_eligible is not None:
        application_document.is_eligible = is_eligible
    if verified_at is not None:
        application_document.verification_date = verified_at
    await db.flush()
    return application_document


async def mark_application_document_failed(
    db: AsyncSession,
    application_document: ApplicationDocument,
    status: ApplicationDocumentStatus,
    detail: str | None = None,
    *,
    verified_at: datetime | None = None,
) -> ApplicationDocument:
    """Record a failure reason with its Vietnamese rejection message."""
    application_document.status = status
    application_document.is_eligible = False
    application_document.rejection_reason = build_rejection_reason(status, detail)
    if verified_at is not None:
        application_document.verification_date = verified_at
    await db.flush()
    return application_document


async def list_application_documents(
    db: AsyncSession,
    application_id: int,
    *,
    offset: int,
    limit: int,
) -> tuple[list[ApplicationDocument], int]:
    """Page through the documents of an application, newest first."""
    total_result = await db.execute(
        select(func.count())
        .select_from(ApplicationDocument)
        .where(ApplicationDocument.application_id == application_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(ApplicationDocument)
        .options(selectinload(ApplicationDocument.document))
        .where(ApplicationDocument.application_id == application_id)
        .order_by(ApplicationDocument.created_at.desc(), ApplicationDocument.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all()), total


# ============================================
# Extracted data
# ============================================


async def get_extracted_data_by_document(db: AsyncSession, document_id: int) -> ExtractedData | None:
    result = await db.execute(select(ExtractedData).where(ExtractedData.document_id == document_id))
    return result.scalar_one_or_none()


async def delete_extracted_data_for_document(db: AsyncSession, document_id: int) -> int:
    result = await db.execute(delete(ExtractedData).where(ExtractedData.document_id == document_id))
    return result.rowcount or 0


async def save_extracted_data(
    db: AsyncSession,
    document_id: int,
    data: dict[str, Any],
) -> ExtractedData:
    """Store the extraction result of a document, replacing any previous one."""
    await delete_extracted_data_for_document(db, document_id)
    extracted = ExtractedData(document_id=document_id, data=data, is_verified=False)
    db.add(extracted)
    await db.flush()
    return extracted


async def set_extracted_data_verification(
    db: AsyncSession,
    extracted: ExtractedData,
    *,
    is_verified: bool,
    notes: str | None = None,
) -> ExtractedData:
    extracted.is_verified = is_verified
    if notes is not None:
        extracted.verification_notes = notes
    await db.flush()
    return extracted
