"""
Document Processing Errors

Every error carries a machine-readable code and the HTTP status the router
should answer with.
"""

from app.modules.documents.models import ApplicationDocumentStatus


class DocumentProcessError(Exception):
    """Base exception for document processing errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class FileRequiredError(DocumentProcessError):
    def __init__(self, message: str = "A file is required"):
        super().__init__(message=message, error_code="FILE_REQUIRED", status_code=400)


class InvalidFileError(DocumentProcessError):
    def __init__(self, message: str = "The uploaded file is empty or incomplete"):
        super().__init__(message=message, error_code="INVALID_FILE", status_code=400)


class InvalidFileTypeError(DocumentProcessError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="INVALID_FILE_TYPE", status_code=400)


class InvalidDocumentTypeError(DocumentProcessError):
    def __init__(self, document_type: str):
        super().__init__(
            message=f"Unsupported document type: {document_type}",
            error_code="INVALID_DOCUMENT_TYPE",
            status_code=400,
        )


class InvalidJobIdError(DocumentProcessError):
    def __init__(self, job_id: str):
        super().__init__(
            message=f"Job id {job_id} does not belong to a known document queue",
            error_code="INVALID_JOB_ID",
            status_code=400,
        )


class ApplicationNotFoundError(DocumentProcessError):
    def __init__(self, application_id: int):
        super().__init__(
            message=f"Application {application_id} not found",
            error_code="APPLICATION_NOT_FOUND",
            status_code=404,
        )


class JobNotFoundError(DocumentProcessError):
    def __init__(self, job_id: str):
        super().__init__(
            message=f"Job {job_id} not found",
            error_code="JOB_NOT_FOUND",
            status_code=404,
        )


class DocumentNotFoundError(DocumentProcessError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="DOCUMENT_NOT_FOUND", status_code=404)


class PermissionDeniedError(DocumentProcessError):
    def __init__(self, message: str = "You do not have access to this resource"):
        super().__init__(message=message, error_code="PERMISSION_DENIED", status_code=403)


class ProcessingIncompleteError(DocumentProcessError):
    def __init__(self, job_id: str, status: str):
        super().__init__(
            message=f"Job {job_id} is {status}; extracted data is not available yet",
            error_code="PROCESSING_INCOMPLETE",
            status_code=409,
        )


class InvalidStoredResultError(DocumentProcessError):
    def __init__(self, job_id: str):
        super().__init__(
            message=f"Stored result of job {job_id} could not be read",
            error_code="INVALID_STORED_RESULT",
            status_code=500,
        )


class QueueUnavailableError(DocumentProcessError):
    def __init__(self, job_id: str):
        super().__init__(
            message=f"Job {job_id} could not be queued for processing",
            error_code="QUEUE_UNAVAILABLE",
            status_code=503,
        )


class InvalidServiceRoleError(DocumentProcessError):
    def __init__(self, operation: str, role: str):
        super().__init__(
            message=f"Operation '{operation}' is not available for service role '{role}'",
            error_code="INVALID_SERVICE_ROLE",
            status_code=500,
        )


class InvalidJobTransitionError(ValueError):
    """Raised when a job status change violates the job lifecycle."""


# ============================================
# Worker-side failures
# ============================================


class ExtractionFailure(Exception):
    """
    A job failure that retrying will not fix.

    ``status`` is the failure reason recorded on the ApplicationDocument.
    """

    def __init__(
        self,
        message: str,
        status: ApplicationDocumentStatus = ApplicationDocumentStatus.DOCUMENT_PROCESSING_FAILED,
    ):
        self.status = status
        super().__init__(message)


class InvalidExtractionDataError(ExtractionFailure):
    def __init__(self, message: str):
        super().__init__(
            message,
            status=ApplicationDocumentStatus.DOCUMENT_PROCESSING_FAILED_INVALID_DATA,
        )


class MissingSourceError(ExtractionFailure):
    """The document row, its file, or the student's registration is missing."""

    def __init__(
        self,
        message: str,
        status: ApplicationDocumentStatus = ApplicationDocumentStatus.DOCUMENT_NOT_FOUND,
    ):
        super().__init__(message, status=status)
