"""
User Repository

Read-only lookups used by the notification channels.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.users.models import User

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: int) -> User | None:
        """Get a user by ID."""
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Get a user by email (case-insensitive)."""
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_display_name(db: AsyncSession, user_id: int) -> str | None:
        """
        Name to greet a user with in notifications.

        Prefers the registered name of the user's first student, falling back
        to the account holder's own name.
        """
        user = await db.get(User, user_id)
        if user is None:
            return None

        for student in user.students:
            if student.registration is not None and student.registration.full_name:
                return student.registration.full_name

        return user.full_name
