"""
Unit tests for the Redis-backed document job record store.

These tests cover:
- Hash encoding of job records
- Partial updates and updatedAt stamping
- Status transitions and result/error bookkeeping
- Scanning and deletion
"""

from datetime import UTC, datetime, timedelta

import pytest

from app.modules.documents.errors import InvalidJobTransitionError
from app.modules.documents.job_store import job_key
from app.modules.documents.models import DocumentType
from app.modules.documents.schemas import DocumentProcessJob, JobStatus


class TestJobRecordEncoding:
    """Tests for the Redis hash representation of a job."""

    def test_hash_uses_camel_case_string_fields(self, make_job):
        job = make_job()

        data = job.to_redis_hash()

        assert data["userId"] == "7"
        assert data["fileId"] == "11"
        assert data["applicationDocumentId"] == "21"
        assert data["type"] == "transcript"
        assert data["status"] == "pending"
        assert "result" not in data
        assert "error" not in data
        assert all(isinstance(value, str) for value in data.values())

    def test_hash_decodes_back_to_job(self, make_job):
        job = make_job(status=JobStatus.COMPLETED, result='{"Lớp 5": {}}')

        decoded = DocumentProcessJob.from_redis_hash(job.to_redis_hash())

        assert decoded == job

    def test_empty_result_and_error_read_as_none(self, make_job):
        data = make_job().to_redis_hash()
        data["result"] = ""
        data["error"] = ""

        decoded = DocumentProcessJob.from_redis_hash(data)

        assert decoded.result is None
        assert decoded.error is None


class TestCreateAndGet:
    @pytest.mark.asyncio
    async def test_create_then_get(self, job_store, redis, make_job):
        job = make_job()

        await job_store.create_job(job)

        assert job_key(job.id) in redis.hashes
        assert await job_store.get_job(job.id) == job

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, job_store):
        assert await job_store.get_job("transcript-0-0") is None


class TestUpdateJob:
    @pytest.mark.asyncio
    async def test_update_missing_job_returns_none(self, job_store):
        result = await job_store.update_job("transcript-0-0", {"status": JobStatus.PROCESSING})

        assert result is None

    @pytest.mark.asyncio
    async def test_update_always_stamps_updated_at(self, job_store, make_job):
        old = datetime.now(UTC) - timedelta(hours=1)
        job = make_job(created_at=old, updated_at=old)
        await job_store.create_job(job)

        updated = await job_store.update_job(job.id, {"file_name": "renamed.pdf", "updated_at": old})

        assert updated.file_name == "renamed.pdf"
        assert updated.updated_at > old
        assert updated.created_at == old
        assert (await job_store.get_job(job.id)).updated_at == updated.updated_at

    @pytest.mark.asyncio
    async def test_update_cannot_change_id(self, job_store, make_job):
        job = make_job()
        await job_store.create_job(job)

        updated = await job_store.update_job(job.id, {"id": "certificate-1-1"})

        assert updated.id == job.id

    @pytest.mark.asyncio
    async def test_none_value_removes_field(self, job_store, redis, make_job):
        job = make_job(status=JobStatus.FAILED, error="boom")
        await job_store.create_job(job)

        await job_store.update_job(job.id, {"error": None})

        assert "error" not in redis.hashes[job_key(job.id)]


class TestUpdateJobStatus:
    @pytest.mark.asyncio
    async def test_full_success_lifecycle(self, job_store, make_job):
        job = make_job()
        await job_store.create_job(job)

        processing = await job_store.update_job_status(job.id, JobStatus.PROCESSING)
        completed = await job_store.update_job_status(job.id, JobStatus.COMPLETED, result='{"ok": true}')

        assert processing.status == JobStatus.PROCESSING
        assert completed.status == JobStatus.COMPLETED
        assert completed.result == '{"ok": true}'
        assert completed.error is None

    @pytest.mark.asyncio
    async def test_failed_job_has_error_and_no_result(self, job_store, make_job):
        job = make_job(status=JobStatus.COMPLETED, result='{"ok": true}')
        await job_store.create_job(job)

        failed = await job_store.update_job_status(job.id, JobStatus.FAILED, error="invalid data")

        assert failed.status == JobStatus.FAILED
        assert failed.error == "invalid data"
        assert failed.result is None

    @pytest.mark.asyncio
    async def test_failed_without_message_gets_default_error(self, job_store, make_job):
        job = make_job(status=JobStatus.PROCESSING)
        await job_store.create_job(job)

        failed = await job_store.update_job_status(job.id, JobStatus.FAILED)

        assert failed.error == "Unknown error"

    @pytest.mark.asyncio
    async def test_redelivered_job_may_reenter_processing(self, job_store, make_job):
        job = make_job(status=JobStatus.PROCESSING)
        await job_store.create_job(job)

        again = await job_store.update_job_status(job.id, JobStatus.PROCESSING)

        assert again.status == JobStatus.PROCESSING

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "current,target",
        [
            (JobStatus.PENDING, JobStatus.COMPLETED),
            (JobStatus.COMPLETED, JobStatus.PROCESSING),
            (JobStatus.FAILED, JobStatus.PROCESSING),
            (JobStatus.FAILED, JobStatus.COMPLETED),
        ],
    )
    async def test_invalid_transitions_rejected(self, job_store, make_job, current, target):
        job = make_job(status=current)
        await job_store.create_job(job)

        with pytest.raises(InvalidJobTransitionError):
            await job_store.update_job_status(job.id, target, result="{}")

        assert (await job_store.get_job(job.id)).status == current

    @pytest.mark.asyncio
    async def test_missing_job_returns_none(self, job_store):
        assert await job_store.update_job_status("transcript-0-0", JobStatus.PROCESSING) is None


class TestScanAndDelete:
    @pytest.mark.asyncio
    async def test_scan_yields_every_job(self, job_store, make_job):
        await job_store.create_job(make_job())
        await job_store.create_job(make_job(id="certificate-1700000000000-12", type=DocumentType.CERTIFICATE))

        ids = {job.id async for job in job_store.scan_jobs()}

        assert ids == {"transcript-1700000000000-11", "certificate-1700000000000-12"}

    @pytest.mark.asyncio
    async def test_delete_job(self, job_store, make_job):
        job = make_job()
        await job_store.create_job(job)

        assert await job_store.delete_job(job.id) is True
        assert await job_store.delete_job(job.id) is False
        assert await job_store.get_job(job.id) is None
