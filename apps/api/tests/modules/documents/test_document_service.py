"""
Unit tests for the document processing service layer.

These tests cover:
- Upload validation and job id routing
- Transcript replace-in-place vs certificate create-new
- Queue failures and service role checks
- Job status and extracted data lookups
- Verification of extracted data
"""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest

from app.core.config import ServiceRole
from app.modules.documents.errors import (
    ApplicationNotFoundError,
    DocumentNotFoundError,
    FileRequiredError,
    InvalidDocumentTypeError,
    InvalidFileError,
    InvalidFileTypeError,
    InvalidJobIdError,
    InvalidServiceRoleError,
    InvalidStoredResultError,
    JobNotFoundError,
    PermissionDeniedError,
    ProcessingIncompleteError,
    QueueUnavailableError,
)
from app.modules.documents.models import ApplicationDocumentStatus, DocumentType, ExtractedData
from app.modules.documents.schemas import JobStatus
from app.modules.documents.service import (
    DocumentProcessService,
    UploadedFile,
    build_job_id,
    resolve_document_type,
    validate_upload,
)


@pytest.fixture
def pdf_upload():
    return UploadedFile(filename="hoc-ba.pdf", content_type="application/pdf", content=b"%PDF")


@pytest.fixture
def png_upload():
    return UploadedFile(filename="ielts.png", content_type="image/png", content=b"\x89PNG")


@pytest.fixture
def service(mock_db, job_store, mock_queue, mock_storage):
    return DocumentProcessService(mock_db, job_store, mock_queue, storage=mock_storage, role=ServiceRole.BOTH)


class TestJobIds:
    def test_build_job_id_has_type_prefix_and_document_id(self):
        job_id = build_job_id(DocumentType.TRANSCRIPT, 11)

        prefix, timestamp, document_id = job_id.split("-")
        assert prefix == "transcript"
        assert timestamp.isdigit()
        assert document_id == "11"

    def test_resolve_document_type_by_prefix(self):
        assert resolve_document_type("transcript-1700000000000-11") == DocumentType.TRANSCRIPT
        assert resolve_document_type("certificate-1700000000000-12") == DocumentType.CERTIFICATE

    @pytest.mark.parametrize("job_id", ["diploma-1-1", "", "TRANSCRIPT-1-1", "11"])
    def test_unknown_prefix_is_rejected(self, job_id):
        with pytest.raises(InvalidJobIdError) as exc_info:
            resolve_document_type(job_id)

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == "INVALID_JOB_ID"


class TestValidateUpload:
    def test_missing_file(self):
        with pytest.raises(FileRequiredError):
            validate_upload(None, "transcript")

    def test_empty_file(self):
        with pytest.raises(InvalidFileError):
            validate_upload(UploadedFile(filename="a.pdf", content_type="application/pdf", content=b""), "transcript")

    def test_unknown_document_type(self, pdf_upload):
        with pytest.raises(InvalidDocumentTypeError):
            validate_upload(pdf_upload, "diploma")

    def test_transcript_must_be_pdf(self, png_upload):
        with pytest.raises(InvalidFileTypeError):
            validate_upload(png_upload, "transcript")

    def test_certificate_must_be_image(self, pdf_upload):
        with pytest.raises(InvalidFileTypeError):
            validate_upload(pdf_upload, "certificate")

    def test_valid_uploads(self, pdf_upload, png_upload):
        assert validate_upload(pdf_upload, "transcript") == DocumentType.TRANSCRIPT
        assert validate_upload(png_upload, DocumentType.CERTIFICATE) == DocumentType.CERTIFICATE


class TestUploadAndProcessDocument:
    @pytest.mark.asyncio
    async def test_first_transcript_creates_rows_and_queues_job(
        self,
        service,
        mock_db,
        mock_queue,
        job_store,
        pdf_upload,
        sample_application,
        sample_document,
        sample_application_document,
    ):
        with patch("app.modules.documents.service.repository") as mock_repo:
            mock_repo.get_application = AsyncMock(return_value=sample_application)
            mock_repo.get_transcript_application_document = AsyncMock(return_value=None)
            mock_repo.create_document = AsyncMock(return_value=sample_document)
            mock_repo.create_application_document = AsyncMock(return_value=sample_application_document)

            result = await service.upload_and_process_document(pdf_upload, "transcript", 42, 7)

        assert result.id == result.job_id
        assert result.id.startswith("transcript-")
        assert result.id.endswith("-11")
        assert result.status == JobStatus.PENDING

        mock_repo.create_application_document.assert_called_once()
        assert mock_repo.create_application_document.call_args.kwargs["document_type"] == DocumentType.TRANSCRIPT
        mock_db.commit.assert_awaited()
        mock_queue.enqueue.assert_awaited_once()

        job = await job_store.get_job(result.id)
        assert job.status == JobStatus.PENDING
        assert job.user_id == 7
        assert job.file_id == 11
        assert job.application_document_id == 21
        assert job.type == DocumentType.TRANSCRIPT

    @pytest.mark.asyncio
    async def test_second_transcript_replaces_in_place(
        self,
        service,
        mock_storage,
        pdf_upload,
        sample_application,
        sample_document,
        sample_application_document,
    ):
        sample_document.file_path = "storage/assets/users/7/old.pdf"
        sample_application_document.status = ApplicationDocumentStatus.DOCUMENT_PROCESSING_FAILED

        with patch("app.modules.documents.service.repository") as mock_repo:
            mock_repo.get_application = AsyncMock(return_value=sample_application)
            mock_repo.get_transcript_application_document = AsyncMock(return_value=sample_application_document)
            mock_repo.replace_document_file = AsyncMock(return_value=sample_document)
            mock_repo.reset_application_document = AsyncMock(return_value=sample_application_document)
            mock_repo.delete_extracted_data_for_document = AsyncMock(return_value=1)
            mock_repo.create_document = AsyncMock()
            mock_repo.create_application_document = AsyncMock()

            result = await service.upload_and_process_document(pdf_upload, "transcript", 42, 7)

        mock_repo.create_document.assert_not_called()
        mock_repo.create_application_document.assert_not_called()
        mock_repo.reset_application_document.assert_awaited_once_with(service.db, sample_application_document)
        mock_repo.delete_extracted_data_for_document.assert_awaited_once_with(service.db, 11)
        mock_storage.delete.assert_awaited_once_with("storage/assets/users/7/old.pdf")
        assert result.id.endswith("-11")

    @pytest.mark.asyncio
    async def test_certificate_always_creates_new_rows(
        self,
        service,
        png_upload,
        sample_application,
        certificate_document,
        certificate_application_document,
    ):
        with patch("app.modules.documents.service.repository") as mock_repo:
            mock_repo.get_application = AsyncMock(return_value=sample_application)
            mock_repo.get_transcript_application_document = AsyncMock()
            mock_repo.create_document = AsyncMock(return_value=certificate_document)
            mock_repo.create_application_document = AsyncMock(return_value=certificate_application_document)

            first = await service.upload_and_process_document(png_upload, "certificate", 42, 7)
            second = await service.upload_and_process_document(png_upload, "certificate", 42, 7)

        mock_repo.get_transcript_application_document.assert_not_called()
        assert mock_repo.create_document.await_count == 2
        assert mock_repo.create_application_document.await_count == 2
        assert first.id.startswith("certificate-")
        assert second.id.startswith("certificate-")

    @pytest.mark.asyncio
    async def test_invalid_file_is_rejected_before_anything_is_stored(
        self, service, mock_storage, mock_db, png_upload
    ):
        with patch("app.modules.documents.service.repository") as mock_repo:
            with pytest.raises(InvalidFileTypeError):
                await service.upload_and_process_document(png_upload, "transcript", 42, 7)

        mock_storage.save.assert_not_called()
        mock_repo.get_application.assert_not_called()
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_application(self, service, pdf_upload):
        with patch("app.modules.documents.service.repository") as mock_repo:
            mock_repo.get_application = AsyncMock(return_value=None)

            with pytest.raises(ApplicationNotFoundError) as exc_info:
                await service.upload_and_process_document(pdf_upload, "transcript", 42, 7)

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_application_of_another_parent(self, service, mock_storage, pdf_upload, sample_application):
        with patch("app.modules.documents.service.repository") as mock_repo:
            mock_repo.get_application = AsyncMock(return_value=sample_application)

            with pytest.raises(PermissionDeniedError):
                await service.upload_and_process_document(pdf_upload, "transcript", 42, 8)

        mock_storage.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_admin_may_upload_for_any_application(
        self, service, pdf_upload, sample_application, sample_document, sample_application_document
    ):
        with patch("app.modules.documents.service.repository") as mock_repo:
            mock_repo.get_application = AsyncMock(return_value=sample_application)
            mock_repo.get_transcript_application_document = AsyncMock(return_value=None)
            mock_repo.create_document = AsyncMock(return_value=sample_document)
            mock_repo.create_application_document = AsyncMock(return_value=sample_application_document)

            result = await service.upload_and_process_document(pdf_upload, "transcript", 42, 1, is_admin=True)

        assert result.status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_database_failure_rolls_back_and_removes_file(
        self, service, mock_db, mock_storage, pdf_upload, sample_application
    ):
        with patch("app.modules.documents.service.repository") as mock_repo:
            mock_repo.get_application = AsyncMock(return_value=sample_application)
            mock_repo.get_transcript_application_document = AsyncMock(return_value=None)
            mock_repo.create_document = AsyncMock(side_effect=RuntimeError("db down"))

            with pytest.raises(RuntimeError):
                await service.upload_and_process_document(pdf_upload, "transcript", 42, 7)

        mock_db.rollback.assert_awaited_once()
        mock_storage.delete.assert_awaited_once_with("storage/assets/users/7/abc.pdf")

    @pytest.mark.asyncio
    async def test_queue_failure_marks_job_and_document_failed(
        self,
        service,
        mock_queue,
        job_store,
        redis,
        pdf_upload,
        sample_application,
        sample_document,
        sample_application_document,
    ):
        mock_queue.enqueue = AsyncMock(side_effect=ConnectionError("broker down"))

        with patch("app.modules.documents.service.repository") as mock_repo:
            mock_repo.get_application = AsyncMock(return_value=sample_application)
            mock_repo.get_transcript_application_document = AsyncMock(return_value=None)
            mock_repo.create_document = AsyncMock(return_value=sample_document)
            mock_repo.create_application_document = AsyncMock(return_value=sample_application_document)
            mock_repo.mark_application_document_failed = AsyncMock()

            with pytest.raises(QueueUnavailableError) as exc_info:
                await service.upload_and_process_document(pdf_upload, "transcript", 42, 7)

        assert exc_info.value.status_code == 503
        args = mock_repo.mark_application_document_failed.call_args.args
        assert args[2] == ApplicationDocumentStatus.DOCUMENT_UPLOAD_FAILED

        jobs = [job async for job in job_store.scan_jobs()]
        assert len(jobs) == 1
        assert jobs[0].status == JobStatus.FAILED
        assert "broker down" in jobs[0].error

    @pytest.mark.asyncio
    async def test_consumer_role_cannot_upload(self, mock_db, job_store, mock_queue, mock_storage, pdf_upload):
        service = DocumentProcessService(
            mock_db, job_store, mock_queue, storage=mock_storage, role=ServiceRole.CONSUMER
        )

        with pytest.raises(InvalidServiceRoleError) as exc_info:
            await service.upload_and_process_document(pdf_upload, "transcript", 42, 7)

        assert exc_info.value.error_code == "INVALID_SERVICE_ROLE"
        mock_storage.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_producer_role_can_upload(
        self,
        mock_db,
        job_store,
        mock_queue,
        mock_storage,
        pdf_upload,
        sample_application,
        sample_document,
        sample_application_document,
    ):
        service = DocumentProcessService(
            mock_db, job_store, mock_queue, storage=mock_storage, role=ServiceRole.PRODUCER
        )

        with patch("app.modules.documents.service.repository") as mock_repo:
            mock_repo.get_application = AsyncMock(return_value=sample_application)
            mock_repo.get_transcript_application_document = AsyncMock(return_value=None)
            mock_repo.create_document = AsyncMock(return_value=sample_document)
            mock_repo.create_application_document = AsyncMock(return_value=sample_application_document)

            result = await service.upload_and_process_document(pdf_upload, "transcript", 42, 7)

        assert result.status == JobStatus.PENDING


class TestLookups:
    @pytest.mark.asyncio
    async def test_get_job_status(self, service, job_store, make_job):
        await job_store.create_job(make_job())

        status = await service.get_job_status("transcript-1700000000000-11", 7)

        assert status.job_id == "transcript-1700000000000-11"
        assert status.status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_get_job_status_of_other_user(self, service, job_store, make_job):
        await job_store.create_job(make_job())

        with pytest.raises(PermissionDeniedError):
            await service.get_job_status("transcript-1700000000000-11", 8)

    @pytest.mark.asyncio
    async def test_job_stored_under_wrong_prefix_is_not_found(self, service, job_store, make_job):
        await job_store.create_job(make_job(type=DocumentType.CERTIFICATE))

        with pytest.raises(JobNotFoundError):
            await service.get_job_status("transcript-1700000000000-11")

    @pytest.mark.asyncio
    async def test_get_extracted_data(self, service, job_store, make_job, normalized_transcript):
        await job_store.create_job(
            make_job(status=JobStatus.COMPLETED, result=json.dumps(normalized_transcript, ensure_ascii=False))
        )

        data = await service.get_extracted_data("transcript-1700000000000-11", 7)

        assert data == normalized_transcript

    @pytest.mark.asyncio
    async def test_get_extracted_data_missing_job(self, service):
        with pytest.raises(JobNotFoundError) as exc_info:
            await service.get_extracted_data("transcript-1700000000000-99", 7)

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_get_extracted_data_of_other_user(self, service, job_store, make_job):
        await job_store.create_job(make_job(status=JobStatus.COMPLETED, result="{}"))

        with pytest.raises(PermissionDeniedError):
            await service.get_extracted_data("transcript-1700000000000-11", 8)

    @pytest.mark.asyncio
    async def test_admin_reads_any_extracted_data(self, service, job_store, make_job):
        await job_store.create_job(make_job(status=JobStatus.COMPLETED, result='{"Lớp 5": {}}'))

        data = await service.get_extracted_data("transcript-1700000000000-11", 1, is_admin=True)

        assert data == {"Lớp 5": {}}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.FAILED])
    async def test_get_extracted_data_before_completion(self, service, job_store, make_job, status):
        await job_store.create_job(make_job(status=status))

        with pytest.raises(ProcessingIncompleteError) as exc_info:
            await service.get_extracted_data("transcript-1700000000000-11", 7)

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_unparseable_result(self, service, job_store, make_job):
        await job_store.create_job(make_job(status=JobStatus.COMPLETED, result="not json"))

        with pytest.raises(InvalidStoredResultError) as exc_info:
            await service.get_extracted_data("transcript-1700000000000-11", 7)

        assert exc_info.value.status_code == 500
        assert exc_info.value.error_code == "INVALID_STORED_RESULT"

    @pytest.mark.asyncio
    async def test_get_application_documents_paginates(
        self, service, sample_application, sample_application_document
    ):
        sample_application_document.document.uploaded_at = datetime(2026, 10, 1, tzinfo=UTC)
        with patch("app.modules.documents.service.repository") as mock_repo:
            mock_repo.get_application = AsyncMock(return_value=sample_application)
            mock_repo.list_application_documents = AsyncMock(return_value=([sample_application_document], 21))

            result = await service.get_application_documents(42, 7, page=2, page_size=10)

        assert mock_repo.list_application_documents.call_args.kwargs == {"offset": 10, "limit": 10}
        assert result.total == 21
        assert result.total_pages == 3
        assert result.data[0].id == 21
        assert result.data[0].document.name == "hoc-ba.pdf"


class TestVerifyExtractedData:
    @pytest.fixture
    def extracted(self):
        return ExtractedData(id=31, document_id=11, data={}, is_verified=False)

    @pytest.mark.asyncio
    async def test_accepts_valid_transcript(
        self, service, mock_db, job_store, make_job, normalized_transcript, sample_application_document, extracted
    ):
        job = make_job(status=JobStatus.COMPLETED, result=json.dumps(normalized_transcript, ensure_ascii=False))
        await job_store.create_job(job)

        with (
            patch(
                "app.modules.documents.repository.get_application_document",
                AsyncMock(return_value=sample_application_document),
            ),
            patch(
                "app.modules.documents.repository.get_extracted_data_by_document",
                AsyncMock(return_value=extracted),
            ),
        ):
            outcome = await service.verify_extracted_data(job.id, "transcript", True, 7)

        assert outcome.status == ApplicationDocumentStatus.COMPLETED
        assert outcome.is_eligible is True
        assert outcome.validation_errors == []
        assert sample_application_document.verification_date is not None
        assert extracted.is_verified is True
        mock_db.commit.assert_awaited()
        assert (await job_store.get_job(job.id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_rejection_fails_quality_check_but_keeps_job_completed(
        self, service, job_store, make_job, normalized_transcript, sample_application_document, extracted
    ):
        job = make_job(status=JobStatus.COMPLETED, result=json.dumps(normalized_transcript, ensure_ascii=False))
        await job_store.create_job(job)

        with (
            patch(
                "app.modules.documents.repository.get_application_document",
                AsyncMock(return_value=sample_application_document),
            ),
            patch(
                "app.modules.documents.repository.get_extracted_data_by_document",
                AsyncMock(return_value=extracted),
            ),
        ):
            outcome = await service.verify_extracted_data(
                job.id, "transcript", False, 7, verification_notes="Ảnh mờ"
            )

        assert outcome.status == ApplicationDocumentStatus.DOCUMENT_QUALITY_CHECK_FAILED
        assert outcome.is_eligible is False
        assert "Ảnh mờ" in outcome.rejection_reason
        assert extracted.is_verified is False
        assert extracted.verification_notes == "Ảnh mờ"
        assert (await job_store.get_job(job.id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_invalid_rating_fails_job_without_raising(
        self, service, job_store, make_job, sample_application_document
    ):
        bad = {"Lớp 5": {"ten": "A", "monHoc": [{"mon": "Toán", "muc": "X", "diem": 9}]}}
        job = make_job(status=JobStatus.COMPLETED, result=json.dumps(bad, ensure_ascii=False))
        await job_store.create_job(job)

        with patch(
            "app.modules.documents.repository.get_application_document",
            AsyncMock(return_value=sample_application_document),
        ):
            outcome = await service.verify_extracted_data(job.id, "transcript", True, 7)

        assert outcome.status == ApplicationDocumentStatus.DOCUMENT_PROCESSING_FAILED_INVALID_DATA
        assert outcome.is_eligible is False
        assert any("muc" in error for error in outcome.validation_errors)
        assert outcome.rejection_reason.startswith("Dữ liệu tài liệu không hợp lệ")
        assert outcome.job.status == JobStatus.FAILED
        assert (await job_store.get_job(job.id)).status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_non_numeric_score_fails_validation(
        self, service, job_store, make_job, sample_application_document
    ):
        bad = {"Lớp 5": {"ten": "A", "monHoc": [{"mon": "Toán", "muc": "T", "diem": "9"}]}}
        job = make_job(status=JobStatus.COMPLETED, result=json.dumps(bad, ensure_ascii=False))
        await job_store.create_job(job)

        with patch(
            "app.modules.documents.repository.get_application_document",
            AsyncMock(return_value=sample_application_document),
        ):
            outcome = await service.verify_extracted_data(job.id, "transcript", True, 7)

        assert any("diem" in error for error in outcome.validation_errors)

    @pytest.mark.asyncio
    async def test_job_not_completed(self, service, job_store, make_job):
        await job_store.create_job(make_job(status=JobStatus.PROCESSING))

        with pytest.raises(ProcessingIncompleteError):
            await service.verify_extracted_data("transcript-1700000000000-11", "transcript", True, 7)

    @pytest.mark.asyncio
    async def test_type_must_match_job_prefix(self, service):
        with pytest.raises(InvalidJobIdError):
            await service.verify_extracted_data("certificate-1700000000000-12", "transcript", True, 7)

    @pytest.mark.asyncio
    async def test_missing_extracted_data(
        self, service, job_store, make_job, normalized_transcript, sample_application_document
    ):
        job = make_job(status=JobStatus.COMPLETED, result=json.dumps(normalized_transcript, ensure_ascii=False))
        await job_store.create_job(job)

        with (
            patch(
                "app.modules.documents.repository.get_application_document",
                AsyncMock(return_value=sample_application_document),
            ),
            patch(
                "app.modules.documents.repository.get_extracted_data_by_document",
                AsyncMock(return_value=None),
            ),
        ):
            with pytest.raises(DocumentNotFoundError):
                await service.verify_extracted_data(job.id, "transcript", True, 7)

    @pytest.mark.asyncio
    async def test_certificate_verification(
        self, service, job_store, make_job, certificate_application_document, extracted
    ):
        job = make_job(
            id="certificate-1700000000000-12",
            type=DocumentType.CERTIFICATE,
            file_id=12,
            application_document_id=22,
            status=JobStatus.COMPLETED,
            result=json.dumps({"name": "A", "extracted_name": "A", "level": "B1", "correct": True}),
        )
        await job_store.create_job(job)

        with (
            patch(
                "app.modules.documents.repository.get_application_document",
                AsyncMock(return_value=certificate_application_document),
            ),
            patch(
                "app.modules.documents.repository.get_extracted_data_by_document",
                AsyncMock(return_value=extracted),
            ),
        ):
            outcome = await service.verify_extracted_data(job.id, "certificate", True, 7)

        assert outcome.application_document_id == 22
        assert outcome.status == ApplicationDocumentStatus.COMPLETED
