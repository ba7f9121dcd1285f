"""create admissions document tables

Revision ID: a1c4e7b2d9f0
Revises:
Create Date: 2026-10-17 09:00:00.000000

This migration:
1. Creates users, students, student_registrations and applications
2. Creates documents, application_documents and extracted_data
3. Creates notifications
4. Adds a partial unique index so an application has at most one transcript

Enum columns store member names (SQLAlchemy's default for Python enums).
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a1c4e7b2d9f0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

user_role = postgresql.ENUM("ADMIN", "PARENT", name="user_role", create_type=False)
application_status = postgresql.ENUM(
    "DRAFT", "SUBMITTED", "UNDER_REVIEW", "APPROVED", "REJECTED",
    name="application_status",
    create_type=False,
)
document_type = postgresql.ENUM("TRANSCRIPT", "CERTIFICATE", name="document_type", create_type=False)
application_document_status = postgresql.ENUM(
    "PENDING",
    "COMPLETED",
    "DOCUMENT_NOT_FOUND",
    "DOCUMENT_NOT_UPLOADED",
    "DOCUMENT_UPLOAD_FAILED",
    "DOCUMENT_PROCESSING_FAILED",
    "DOCUMENT_PROCESSING_FAILED_INVALID_DATA",
    "DOCUMENT_PROCESSING_FAILED_INVALID_FORMAT",
    "DOCUMENT_PROCESSING_FAILED_INVALID_FILE_TYPE",
    "DOCUMENT_QUALITY_CHECK_FAILED",
    "DOCUMENT_INFORMATION_MISSING",
    name="application_document_status",
    create_type=False,
)
notification_type = postgresql.ENUM(
    "SYSTEM", "ADMIN", "DOCUMENT", "APPLICATION", name="notification_type", create_type=False
)
notification_priority = postgresql.ENUM(
    "HIGH", "NORMAL", "LOW", name="notification_priority", create_type=False
)

ENUMS = [
    user_role,
    application_status,
    document_type,
    application_document_status,
    notification_type,
    notification_priority,
]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    """Create the admissions and document processing tables."""
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    # ============================================
    # Accounts and applications
    # ============================================
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "students",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_students_user_id", "students", ["user_id"])

    op.create_table(
        "student_registrations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("student_id"),
    )

    op.create_table(
        "applications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("status", application_status, nullable=False, server_default="DRAFT"),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_applications_student_id", "applications", ["student_id"])

    # ============================================
    # Documents
    # ============================================
    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("mime_type", sa.String(length=100), nullable=False),
        sa.Column("url", sa.String(length=500), nullable=False),
        sa.Column("file_path", sa.String(length=500), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("uploaded_by", sa.Integer(), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "application_documents",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column("application_id", sa.Integer(), nullable=False),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("type", document_type, nullable=False),
        sa.Column("status", application_document_status, nullable=False, server_default="PENDING"),
        sa.Column("is_eligible", sa.Boolean(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("verification_date", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_id"),
    )
    op.create_index(
        "ix_application_documents_application_id",
        "application_documents",
        ["application_id"],
    )
    # One transcript per application; certificates are unrestricted
    op.create_index(
        "uq_application_documents_transcript",
        "application_documents",
        ["application_id"],
        unique=True,
        postgresql_where=sa.text("type = 'TRANSCRIPT'"),
    )

    op.create_table(
        "extracted_data",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("data", postgresql.JSON(astext_type=sa.Text()), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_id"),
    )

    # ============================================
    # Notifications
    # ============================================
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        *_timestamps(),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("html_content", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", notification_type, nullable=False, server_default="SYSTEM"),
        sa.Column("priority", notification_priority, nullable=False, server_default="NORMAL"),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("metadata", postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column("sent_via", postgresql.JSON(astext_type=sa.Text()), nullable=False, server_default="[]"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_id_is_read", "notifications", ["user_id", "is_read"])


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_index("ix_notifications_user_id_is_read", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("extracted_data")
    op.drop_index("uq_application_documents_transcript", table_name="application_documents")
    op.drop_index("ix_application_documents_application_id", table_name="application_documents")
    op.drop_table("application_documents")
    op.drop_table("documents")
    op.drop_index("ix_applications_student_id", table_name="applications")
    op.drop_table("applications")
    op.drop_table("student_registrations")
    op.drop_index("ix_students_user_id", table_name="students")
    op.drop_table("students")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
