"""
Unit tests for the notification delivery tasks.
"""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.core.config import settings
from app.modules.notifications.tasks import EmailDeliveryError, post_telegram_message, send_email_message


class TestPostTelegramMessage:
    def test_posts_send_message(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 42}})

        data = post_telegram_message(
            "-1001234",
            "Document job failed",
            parse_mode="HTML",
            silent=True,
            bot_token="123:abc",
            transport=httpx.MockTransport(handler),
        )

        assert data["result"]["message_id"] == 42
        assert seen["path"] == "/bot123:abc/sendMessage"
        assert seen["body"] == {
            "chat_id": "-1001234",
            "text": "Document job failed",
            "disable_notification": True,
            "parse_mode": "HTML",
        }

    def test_parse_mode_omitted_when_unset(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "result": {}})

        post_telegram_message("1", "hi", bot_token="t", transport=httpx.MockTransport(handler))

        assert "parse_mode" not in seen["body"]

    def test_api_error_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(502))

        with pytest.raises(httpx.HTTPStatusError):
            post_telegram_message("1", "hi", bot_token="t", transport=transport)

    def test_missing_token(self):
        with patch.object(settings, "telegram_bot_token", None):
            with pytest.raises(RuntimeError, match="TELEGRAM_BOT_TOKEN"):
                post_telegram_message("1", "hi")


class TestSendEmailMessage:
    def test_sends_through_provider(self):
        with patch("app.modules.notifications.tasks.send_email", AsyncMock(return_value=True)) as send:
            result = send_email_message(to="parent@example.com", subject="S", text="T", html="<p>T</p>")

        assert result == {"to": "parent@example.com", "subject": "S"}
        send.assert_awaited_once_with(
            to_email="parent@example.com", subject="S", html_content="<p>T</p>", text_content="T"
        )

    def test_rejected_message_raises(self):
        with patch("app.modules.notifications.tasks.send_email", AsyncMock(return_value=False)):
            with pytest.raises(EmailDeliveryError):
                send_email_message(to="parent@example.com", subject="S", text="T", html="<p>T</p>")
