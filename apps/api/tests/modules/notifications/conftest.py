"""
Fixtures for notification tests.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.modules.notifications.models import NotificationType
from app.modules.notifications.schemas import ChannelResult, NotificationPayload


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def mock_telegram():
    telegram = MagicMock()
    telegram.default_chat_id = "-1001234"
    telegram.send = AsyncMock(return_value=ChannelResult(success=True, details={"taskId": "tg-1"}))
    return telegram


@pytest.fixture
def mock_email():
    email = MagicMock()
    email.send = AsyncMock(return_value=ChannelResult(success=True, details={"taskId": "mail-1"}))
    return email


@pytest.fixture
def document_payload():
    return NotificationPayload(
        title="Xử lý học bạ hoàn tất",
        message="Hồ sơ học bạ (hoc-ba.pdf) đã được xử lý thành công.",
        type=NotificationType.DOCUMENT,
        metadata={
            "jobId": "transcript-1700000000000-11",
            "documentType": "transcript",
            "applicationDocumentId": 21,
            "status": "completed",
        },
    )


@pytest.fixture
def alert_payload():
    return NotificationPayload(
        title="Document job failed: transcript-1700000000000-11",
        message="transcript job for application document 21 failed",
        type=NotificationType.SYSTEM,
        metadata={"jobId": "transcript-1700000000000-11", "error": "Invalid data structure for Lớp 5"},
    )
