"""
Notification Channels

Telegram and e-mail deliveries are queued on Celery rather than sent
inline; a channel reports success once its message is on the queue.
"""

import asyncio
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.email import EmailContent, render_document_error, render_document_processed, render_generic
from app.modules.notifications.models import NotificationType
from app.modules.notifications.schemas import ChannelResult, NotificationOptions, NotificationPayload
from app.modules.notifications.tasks import send_email_message, send_telegram_message
from app.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


class TelegramChannel:
    """Queues chat messages for the telegram-notifications worker."""

    def __init__(self, bot_token: str | None = None, default_chat_id: str | None = None):
        self.bot_token = bot_token if bot_token is not None else settings.telegram_bot_token
        self.default_chat_id = (
            default_chat_id if default_chat_id is not None else settings.telegram_default_chat_id
        )

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token)

    def resolve_chat_id(self, recipient_id: int | str) -> str:
        """Numeric ids are Telegram chats; anything else goes to the default chat."""
        recipient = str(recipient_id)
        if recipient[:1].isdigit() or recipient.startswith("-"):
            return recipient
        return self.default_chat_id or recipient

    @staticmethod
    def format_message(payload: NotificationPayload) -> str:
        lines = [payload.title, "", payload.message]
        error = payload.metadata.get("error")
        if error:
            lines += ["", f"Error: {error}"]
        job_id = payload.metadata.get("jobId")
        if job_id:
            lines.append(f"Job: {job_id}")
        return "\n".join(lines)

    async def send(
        self,
        recipient_id: int | str,
        payload: NotificationPayload,
        options: NotificationOptions | None = None,
    ) -> ChannelResult:
        if not self.enabled:
            return ChannelResult(success=False, error="Telegram bot is not configured")

        chat_id = self.resolve_chat_id(recipient_id)
        options = options or NotificationOptions()
        result = await asyncio.to_thread(
            send_telegram_message.apply_async,
            kwargs={
                "chat_id": chat_id,
                "text": self.format_message(payload),
                "parse_mode": options.parse_mode,
                "silent": options.silent,
            },
        )
        logger.info(f"Queued telegram message {result.id} for chat {chat_id}")
        return ChannelResult(success=True, details={"taskId": result.id, "queue": "telegram-notifications"})


class EmailChannel:
    """Renders the e-mail for a notification and queues it for delivery."""

    def __init__(self, db: AsyncSession, school_name: str | None = None):
        self.db = db
        self.school_name = school_name or settings.school_name

    async def _resolve_recipient(self, recipient_id: int | str) -> tuple[str | None, str]:
        recipient = str(recipient_id)
        if "@" in recipient:
            user = await UserRepository.get_by_email(self.db, recipient)
            name = await UserRepository.get_display_name(self.db, user.id) if user else None
            return recipient, name or recipient

        user = await UserRepository.get_by_id(self.db, int(recipient))
        if user is None:
            return None, ""
        name = await UserRepository.get_display_name(self.db, user.id)
        return user.email, name or user.full_name

    def render(self, payload: NotificationPayload, student_name: str) -> EmailContent:
        metadata: dict[str, Any] = payload.metadata
        document_type = metadata.get("documentType")
        if payload.type == NotificationType.DOCUMENT and document_type:
            if metadata.get("status") == "failed":
                return render_document_error(
                    student_name=student_name,
                    job_id=str(metadata.get("jobId", "")),
                    document_type=document_type,
                    error=str(metadata.get("reason") or "Không xác định"),
                    school_name=self.school_name,
                )
            return render_document_processed(
                student_name=student_name,
                job_id=str(metadata.get("jobId", "")),
                document_type=document_type,
                school_name=self.school_name,
                transcript=metadata.get("transcript"),
            )
        return render_generic(payload.title, payload.message, payload.html_content, self.school_name)

    async def send(
        self,
        recipient_id: int | str,
        payload: NotificationPayload,
        options: NotificationOptions | None = None,
    ) -> ChannelResult:
        email, student_name = await self._resolve_recipient(recipient_id)
        if not email:
            return ChannelResult(success=False, error=f"No e-mail address for recipient {recipient_id}")

        content = self.render(payload, student_name)
        result = await asyncio.to_thread(
            send_email_message.apply_async,
            kwargs={
                "to": email,
                "subject": content.subject,
                "text": content.text,
                "html": content.html,
            },
        )
        logger.info(f"Queued e-mail {result.id} to {email}")
        return ChannelResult(success=True, details={"taskId": result.id, "queue": "email-sending"})
