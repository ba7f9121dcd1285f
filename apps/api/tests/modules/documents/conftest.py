"""
Fixtures for document processing tests.
"""

import copy
import fnmatch
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.modules.applications.models import Application, Student
from app.modules.documents.job_store import DocumentJobStore
from app.modules.documents.models import (
    ApplicationDocument,
    ApplicationDocumentStatus,
    Document,
    DocumentType,
)
from app.modules.documents.schemas import DocumentProcessJob, JobStatus
from app.modules.documents.storage import StoredAsset
from app.modules.notifications.schemas import NotificationResult

RAW_TRANSCRIPT = {
    "Lớp 5": {
        "Tên": "Nguyễn Văn A",
        "Điểm": [{"Môn": "Toán", "Mức": "T", "Điểm": 9}],
    }
}

NORMALIZED_TRANSCRIPT = {
    "Lớp 5": {
        "ten": "Nguyễn Văn A",
        "monHoc": [{"mon": "Toán", "muc": "T", "diem": 9}],
    }
}


class InMemoryRedis:
    """Minimal async stand-in for the Redis hash commands the job store uses."""

    def __init__(self):
        self.hashes: dict[str, dict[str, str]] = {}

    async def hset(self, key: str, mapping: dict[str, str]) -> int:
        self.hashes.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self.hashes.get(key, {}))

    async def hdel(self, key: str, *fields: str) -> int:
        stored = self.hashes.get(key, {})
        return sum(1 for field in fields if stored.pop(field, None) is not None)

    async def delete(self, key: str) -> int:
        return 1 if self.hashes.pop(key, None) is not None else 0

    async def scan_iter(self, match: str = "*"):
        for key in list(self.hashes):
            if fnmatch.fnmatch(key, match):
                yield key


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def session_maker(mock_db):
    """Session factory whose sessions are all ``mock_db``."""
    maker = MagicMock()
    maker.return_value.__aenter__ = AsyncMock(return_value=mock_db)
    maker.return_value.__aexit__ = AsyncMock(return_value=False)
    return maker


@pytest.fixture
def redis():
    return InMemoryRedis()


@pytest.fixture
def job_store(redis):
    return DocumentJobStore(redis)


@pytest.fixture
def make_job():
    """Factory for job records; keyword arguments override the defaults."""

    def _make(**overrides) -> DocumentProcessJob:
        now = datetime.now(UTC)
        data = {
            "id": "transcript-1700000000000-11",
            "user_id": 7,
            "file_id": 11,
            "file_name": "hoc-ba.pdf",
            "file_url": "/assets/users/7/abc.pdf",
            "path": "storage/assets/users/7/abc.pdf",
            "application_document_id": 21,
            "type": DocumentType.TRANSCRIPT,
            "status": JobStatus.PENDING,
            "created_at": now,
            "updated_at": now,
        }
        data.update(overrides)
        return DocumentProcessJob(**data)

    return _make


@pytest.fixture
def sample_application():
    """Application 42 belonging to user 7."""
    student = Student(id=3, user_id=7)
    return Application(id=42, student_id=3, student=student)


@pytest.fixture
def sample_document():
    return Document(
        id=11,
        name="hoc-ba.pdf",
        mime_type="application/pdf",
        url="/assets/users/7/abc.pdf",
        file_path="storage/assets/users/7/abc.pdf",
        file_size=4,
        uploaded_by=7,
    )


@pytest.fixture
def sample_application_document(sample_document):
    return ApplicationDocument(
        id=21,
        application_id=42,
        document_id=sample_document.id,
        type=DocumentType.TRANSCRIPT,
        status=ApplicationDocumentStatus.PENDING,
        document=sample_document,
    )


@pytest.fixture
def certificate_document():
    return Document(
        id=12,
        name="ielts.png",
        mime_type="image/png",
        url="/assets/users/7/def.png",
        file_path="storage/assets/users/7/def.png",
        file_size=4,
        uploaded_by=7,
    )


@pytest.fixture
def certificate_application_document(certificate_document):
    return ApplicationDocument(
        id=22,
        application_id=42,
        document_id=certificate_document.id,
        type=DocumentType.CERTIFICATE,
        status=ApplicationDocumentStatus.PENDING,
        document=certificate_document,
    )


@pytest.fixture
def mock_storage():
    storage = MagicMock()
    storage.save = AsyncMock(
        return_value=StoredAsset(
            file_id="abc",
            file_name="hoc-ba.pdf",
            file_size=4,
            mime_type="application/pdf",
            file_path="storage/assets/users/7/abc.pdf",
            url="/assets/users/7/abc.pdf",
        )
    )
    storage.read = AsyncMock(return_value=b"%PDF")
    storage.delete = AsyncMock()
    return storage


@pytest.fixture
def mock_queue():
    queue = MagicMock()
    queue.enqueue = AsyncMock()
    return queue


@pytest.fixture
def mock_notification_service():
    """Patched NotificationService class; ``.instance`` is what callers get."""
    service_cls = MagicMock()
    instance = MagicMock()
    instance.send_notification = AsyncMock(return_value=NotificationResult(success=True))
    service_cls.return_value = instance
    service_cls.instance = instance
    return service_cls


@pytest.fixture
def raw_transcript():
    """Transcript payload as returned by the extraction API."""
    return copy.deepcopy(RAW_TRANSCRIPT)


@pytest.fixture
def normalized_transcript():
    return copy.deepcopy(NORMALIZED_TRANSCRIPT)
