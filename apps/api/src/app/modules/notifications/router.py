"""
Notifications Router

The current user's in-app inbox (notifications stored by the database
channel).

Endpoints:
- GET /notifications - List notifications, newest first
- PATCH /notifications/read - Mark notifications as read
- DELETE /notifications - Delete notifications
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import CurrentUser, get_current_user
from app.core.database import get_db
from app.modules.notifications.schemas import (
    NotificationIdsRequest,
    NotificationListResponse,
    NotificationUpdateResponse,
)
from app.modules.notifications.service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_notification_service(db: AsyncSession = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


@router.get("", response_model=NotificationListResponse, summary="List my notifications")
async def list_notifications(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    unread_only: bool = Query(False, alias="unreadOnly"),
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationListResponse:
    try:
        return await service.get_notifications(user.id, page=page, page_size=page_size, unread_only=unread_only)
    except Exception as e:
        logger.exception(f"Failed to list notifications for user {user.id}")
        raise _internal_error() from e


@router.patch("/read", response_model=NotificationUpdateResponse, summary="Mark notifications as read")
async def mark_notifications_read(
    data: NotificationIdsRequest,
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationUpdateResponse:
    try:
        updated = await service.mark_as_read(user.id, data.ids)
    except Exception as e:
        logger.exception(f"Failed to mark notifications read for user {user.id}")
        raise _internal_error() from e

    return NotificationUpdateResponse(updated=updated)


@router.delete("", response_model=NotificationUpdateResponse, summary="Delete notifications")
async def delete_notifications(
    data: NotificationIdsRequest,
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationUpdateResponse:
    try:
        deleted = await service.delete_notifications(user.id, data.ids)
    except Exception as e:
        logger.exception(f"Failed to delete notifications for user {user.id}")
        raise _internal_error() from e

    logger.info(f"User {user.id} deleted {deleted} notifications")
    return NotificationUpdateResponse(updated=deleted)
