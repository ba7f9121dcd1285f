"""
Notification Delivery Tasks

Celery tasks behind the telegram and e-mail channels. Each task retries
with exponential backoff up to MAX_RETRIES; after that the message is
dropped and the failure logged.
"""

import asyncio
import logging

import httpx

from app.core.celery_app import celery_app
from app.core.config import settings
from app.core.email import send_email

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
TELEGRAM_RETRY_BACKOFF = 5  # seconds, doubled per retry
EMAIL_RETRY_BACKOFF = 10
TELEGRAM_API_URL = "https://api.telegram.org"
TELEGRAM_TIMEOUT_SECONDS = 15.0


class EmailDeliveryError(Exception):
    """Raised when the e-mail provider rejects a message."""


def post_telegram_message(
    chat_id: str,
    text: str,
    parse_mode: str | None = None,
    silent: bool = False,
    *,
    bot_token: str | None = None,
    transport: httpx.BaseTransport | None = None,
) -> dict:
    """Call the Bot API sendMessage method."""
    token = bot_token or settings.telegram_bot_token
    if not token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not configured")

    body: dict = {"chat_id": chat_id, "text": text, "disable_notification": silent}
    if parse_mode:
        body["parse_mode"] = parse_mode

    with httpx.Client(timeout=TELEGRAM_TIMEOUT_SECONDS, transport=transport) as client:
        resp = client.post(f"{TELEGRAM_API_URL}/bot{token}/sendMessage", json=body)
        resp.raise_for_status()
        return resp.json()


@celery_app.task(
    name="notifications.send_telegram_message",
    bind=True,
    autoretry_for=(httpx.HTTPError,),
    retry_backoff=TELEGRAM_RETRY_BACKOFF,
    retry_jitter=True,
    max_retries=MAX_RETRIES,
)
def send_telegram_message(
    self,
    chat_id: str,
    text: str,
    parse_mode: str | None = None,
    silent: bool = False,
) -> dict:
    logger.info(f"Sending telegram message to chat {chat_id} (attempt {self.request.retries + 1})")
    data = post_telegram_message(chat_id, text, parse_mode, silent)
    message_id = data.get("result", {}).get("message_id")
    return {"chat_id": chat_id, "message_id": message_id}


@celery_app.task(
    name="notifications.send_email",
    bind=True,
    autoretry_for=(EmailDeliveryError,),
    retry_backoff=EMAIL_RETRY_BACKOFF,
    retry_jitter=True,
    max_retries=MAX_RETRIES,
)
def send_email_message(self, to: str, subject: str, text: str, html: str) -> dict:
    logger.info(f"Sending e-mail to {to} (attempt {self.request.retries + 1})")
    sent = asyncio.run(send_email(to_email=to, subject=subject, html_content=html, text_content=text))
    if not sent:
        raise EmailDeliveryError(f"E-mail to {to} was not accepted")
    return {"to": to, "subject": subject}
