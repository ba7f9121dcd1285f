"""
Notification Service

Fans a notification out to the requested channels and aggregates their
outcomes:

- Channels come from the payload, or the configured defaults.
- A payload whose metadata carries an "error" is an operational alert and
  goes to the telegram channel only, addressed to the default chat when
  one is configured.
- Each channel's failure is caught and recorded in ``details``; the
  overall result succeeds if any channel succeeded.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.modules.notifications import repository
from app.modules.notifications.channels import EmailChannel, TelegramChannel
from app.modules.notifications.schemas import (
    BroadcastResult,
    ChannelResult,
    NotificationChannel,
    NotificationListResponse,
    NotificationOptions,
    NotificationPayload,
    NotificationResponse,
    NotificationResult,
)

logger = logging.getLogger(__name__)

# Delivery order when several channels are requested
CHANNEL_ORDER = [
    NotificationChannel.DATABASE,
    NotificationChannel.TELEGRAM,
    NotificationChannel.EMAIL,
]


class NotificationService:
    def __init__(
        self,
        db: AsyncSession,
        telegram: TelegramChannel | None = None,
        email: EmailChannel | None = None,
        default_channels: list[NotificationChannel] | None = None,
    ):
        self.db = db
        self.telegram = telegram or TelegramChannel()
        self.email = email or EmailChannel(db)
        if default_channels is None:
            default_channels = [NotificationChannel(name) for name in settings.notification_default_channels]
        self.default_channels = default_channels

    def _channels_for(self, payload: NotificationPayload) -> list[NotificationChannel]:
        if payload.metadata.get("error"):
            return [NotificationChannel.TELEGRAM]
        requested = set(payload.channels if payload.channels is not None else self.default_channels)
        return [channel for channel in CHANNEL_ORDER if channel in requested]

    async def _store(
        self,
        recipient_id: int | str,
        payload: NotificationPayload,
        channels: list[NotificationChannel],
    ) -> ChannelResult:
        notification = await repository.create(
            self.db,
            user_id=int(recipient_id),
            title=payload.title,
            content=payload.message,
            html_content=payload.html_content,
            description=payload.description,
            type=payload.type,
            priority=payload.priority,
            metadata=payload.metadata,
            sent_via=[channel.value for channel in channels],
        )
        return ChannelResult(success=True, details={"notificationId": notification.id})

    async def send_notification(
        self,
        recipient_id: int | str,
        payload: NotificationPayload,
        options: NotificationOptions | None = None,
    ) -> NotificationResult:
        channels = self._channels_for(payload)
        details: dict[str, ChannelResult] = {}

        if payload.metadata.get("error"):
            recipient_id = self.telegram.default_chat_id or recipient_id

        for channel in channels:
            try:
                if channel == NotificationChannel.DATABASE:
                    outcome = await self._store(recipient_id, payload, channels)
                elif channel == NotificationChannel.TELEGRAM:
                    outcome = await self.telegram.send(recipient_id, payload, options)
                else:
                    outcome = await self.email.send(recipient_id, payload, options)
            except Exception as e:
                logger.error(
                    f"Notification channel {channel.value} failed for recipient {recipient_id}: {e}",
                    exc_info=True,
                )
                if channel == NotificationChannel.DATABASE:
                    await self.db.rollback()
                outcome = ChannelResult(success=False, error=str(e))
            details[channel.value] = outcome

        success = any(outcome.success for outcome in details.values())
        error = None
        if not success:
            error = "; ".join(
                f"{name}: {outcome.error}" for name, outcome in details.items()
            ) or "No channel available"
        return NotificationResult(success=success, details=details, error=error)

    async def broadcast_notification(
        self,
        recipient_ids: list[int | str],
        payload: NotificationPayload,
        options: NotificationOptions | None = None,
    ) -> BroadcastResult:
        results: dict[str, NotificationResult] = {}
        # Sequential: all recipients share one database session
        for recipient_id in recipient_ids:
            results[str(recipient_id)] = await self.send_notification(recipient_id, payload, options)
        return BroadcastResult(
            success=any(result.success for result in results.values()),
            results=results,
        )

    # ============================================
    # Inbox
    # ============================================

    async def get_notifications(
        self,
        user_id: int,
        page: int = 1,
        page_size: int = 20,
        unread_only: bool = False,
    ) -> NotificationListResponse:
        items, total, unread = await repository.list_for_user(
            self.db,
            user_id,
            offset=(page - 1) * page_size,
            limit=page_size,
            unread_only=unread_only,
        )
        return NotificationListResponse(
            data=[NotificationResponse.model_validate(item) for item in items],
            total=total,
            unread=unread,
            page=page,
            page_size=page_size,
        )

    async def mark_as_read(self, user_id: int, notification_ids: list[int]) -> int:
        return await repository.mark_as_read(self.db, user_id, notification_ids)

    async def delete_notifications(self, user_id: int, notification_ids: list[int]) -> int:
        return await repository.delete_for_user(self.db, user_id, notification_ids)
