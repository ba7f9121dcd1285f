"""
Documents Module

Asynchronous processing of admission documents:
1. Upload: files are stored, Document/ApplicationDocument rows written, and
   a job queued per file (transcripts replaced in place, certificates added)
2. Worker: Celery consumers call the extraction API, store ExtractedData and
   settle the ApplicationDocument status
3. Verification: reviewers accept or reject extracted data after it is
   validated again

API Endpoints:
- POST /process/document-upload - Upload and queue documents
- GET /process/application/{id}/documents - List application documents
- GET /process/document-upload/{jobId}/extracted-data - Extracted data
- PATCH /process/document-upload/extracted-data/{jobId} - Verify extracted data
- GET /process/jobs/{jobId} - Job status

Background Jobs (via APScheduler):
- report_stale_document_jobs: Runs every 10 minutes, alerts on stuck jobs
"""

from .jobs import register_document_jobs
from .router import router

__all__ = ["router", "register_document_jobs"]
