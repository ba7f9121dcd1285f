"""
Admission Application Models

Students, their registration records and admission applications.
The CRUD flows for these tables live in the admissions front office;
the document pipeline only reads them for ownership checks and for the
student's registered name.
"""

import enum
from typing import TYPE_CHECKING

from sqlalchemy import Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.modules.shared import BaseModel

if TYPE_CHECKING:
    from app.modules.documents.models import ApplicationDocument
    from app.modules.users.models import User


class ApplicationStatus(str, enum.Enum):
    """Status of an admission application."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class Student(BaseModel):
    """A student registered by a parent account."""

    __tablename__ = "students"

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user: Mapped["User"] = relationship("User", back_populates="students")
    registration: Mapped["StudentRegistration | None"] = relationship(
        "StudentRegistration",
        back_populates="student",
        uselist=False,
        lazy="selectin",
    )
    applications: Mapped[list["Application"]] = relationship(
        "Application",
        back_populates="student",
    )

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, user_id={self.user_id})>"


class StudentRegistration(BaseModel):
    """Registration details of a student as declared by the parent."""

    __tablename__ = "student_registrations"

    student_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)

    student: Mapped["Student"] = relationship("Student", back_populates="registration")


class Application(BaseModel):
    """Admission application of a student."""

    __tablename__ = "applications"

    student_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"),
        nullable=False,
        default=ApplicationStatus.DRAFT,
    )

    student: Mapped["Student"] = relationship(
        "Student",
        back_populates="applications",
        lazy="selectin",
    )
    documents: Mapped[list["ApplicationDocument"]] = relationship(
        "ApplicationDocument",
        back_populates="application",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Application(id={self.id}, student_id={self.student_id}, status={self.status})>"
