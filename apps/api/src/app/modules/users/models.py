"""
User Models

Accounts of parents and school administrators.
"""

from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String
from sqlalchemy.dialects.postgresql import ENUM
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.modules.shared import BaseModel

if TYPE_CHECKING:
    from app.modules.applications.models import Student


class UserRole(str, Enum):
    """User roles in the system."""

    ADMIN = "admin"
    PARENT = "parent"


class User(BaseModel):
    """
    Application user.

    Parents own students and their admission applications; admins review
    uploaded documents. Login and password management live outside this
    service, so only the profile columns are mapped here.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    first_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    last_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    role: Mapped[UserRole] = mapped_column(
        ENUM(UserRole, name="user_role", create_type=True),
        nullable=False,
        default=UserRole.PARENT,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Relationships
    students: Mapped[list["Student"]] = relationship(
        "Student",
        back_populates="user",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"

    @property
    def full_name(self) -> str:
        """Return user's full name."""
        return f"{self.first_name} {self.last_name}"
