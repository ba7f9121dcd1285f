"""
Notification Schemas
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.modules.notifications.models import NotificationPriority, NotificationType


class NotificationChannel(str, Enum):
    DATABASE = "database"
    EMAIL = "email"
    TELEGRAM = "telegram"


class NotificationPayload(BaseModel):
    """What to tell the recipient, and over which channels."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    message: str
    html_content: str | None = Field(None, alias="htmlContent")
    description: str | None = None
    type: NotificationType = NotificationType.SYSTEM
    priority: NotificationPriority = NotificationPriority.NORMAL
    metadata: dict[str, Any] = Field(default_factory=dict)
    channels: list[NotificationChannel] | None = None


class NotificationOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    parse_mode: Literal["MarkdownV2", "HTML"] | None = Field(None, alias="parseMode")
    silent: bool = False


class ChannelResult(BaseModel):
    success: bool
    details: dict[str, Any] | None = None
    error: str | None = None


class NotificationResult(BaseModel):
    """
    Outcome of a fan-out.

    ``success`` is true if at least one channel succeeded; ``details``
    holds each attempted channel's own result.
    """

    success: bool
    details: dict[str, ChannelResult] = Field(default_factory=dict)
    error: str | None = None


class BroadcastResult(BaseModel):
    success: bool
    results: dict[str, NotificationResult]


# ============================================
# API
# ============================================


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    title: str
    content: str
    html_content: str | None = Field(None, alias="htmlContent")
    description: str | None = None
    type: NotificationType
    priority: NotificationPriority
    is_read: bool = Field(..., alias="isRead")
    metadata: dict[str, Any] | None = Field(None, validation_alias="extra_metadata")
    sent_via: list[str] = Field(default_factory=list, alias="sentVia")
    created_at: datetime = Field(..., alias="createdAt")


class NotificationListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: list[NotificationResponse]
    total: int
    unread: int
    page: int
    page_size: int = Field(..., alias="pageSize")


class NotificationIdsRequest(BaseModel):
    ids: list[int] = Field(..., min_length=1, max_length=500)


class NotificationUpdateResponse(BaseModel):
    updated: int
