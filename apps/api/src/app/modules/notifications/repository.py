"""
Notification Repository
"""

from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.notifications.models import (
    Notification,
    NotificationPriority,
    NotificationType,
)


async def create(
    db: AsyncSession,
    *,
    user_id: int,
    title: str,
    content: str,
    html_content: str | None = None,
    description: str | None = None,
    type: NotificationType = NotificationType.SYSTEM,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    metadata: dict[str, Any] | None = None,
    sent_via: list[str] | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        title=title,
        content=content,
        html_content=html_content,
        description=description,
        type=type,
        priority=priority,
        is_read=False,
        extra_metadata=metadata,
        sent_via=sent_via or [],
    )
    db.add(notification)
    await db.commit()
    await db.refresh(notification)
    return notification


async def list_for_user(
    db: AsyncSession,
    user_id: int,
    *,
    offset: int,
    limit: int,
    unread_only: bool = False,
) -> tuple[list[Notification], int, int]:
    """
    Page through a user's notifications, newest first.

    Returns:
        (notifications, total matching, total unread)
    """
    conditions = [Notification.user_id == user_id]
    if unread_only:
        conditions.append(Notification.is_read.is_(False))

    total = (
        await db.execute(select(func.count()).select_from(Notification).where(*conditions))
    ).scalar_one()
    unread = (
        await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        )
    ).scalar_one()

    result = await db.execute(
        select(Notification)
        .where(*conditions)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all()), total, unread


async def mark_as_read(db: AsyncSession, user_id: int, notification_ids: list[int]) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.id.in_(notification_ids))
        .values(is_read=True)
    )
    await db.commit()
    return result.rowcount or 0


async def delete_for_user(db: AsyncSession, user_id: int, notification_ids: list[int]) -> int:
    result = await db.execute(
        delete(Notification).where(
            Notification.user_id == user_id,
            Notification.id.in_(notification_ids),
        )
    )
    await db.commit()
    return result.rowcount or 0
