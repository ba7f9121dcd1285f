"""
Celery Configuration

Task queue shared by the API (producer) and the worker processes (consumer).
Redis is both broker and result backend.

Run a worker:
    celery -A app.core.celery_app worker -Q transcript-processing,certificate-processing
    celery -A app.core.celery_app worker -Q telegram-notifications,email-sending -c 5
"""

import logging

from celery import Celery
from celery.signals import setup_logging

from app.core.config import settings

# Queue names
TRANSCRIPT_QUEUE = "transcript-processing"
CERTIFICATE_QUEUE = "certificate-processing"
TELEGRAM_QUEUE = "telegram-notifications"
EMAIL_QUEUE = "email-sending"

celery_app = Celery("admissions")

celery_app.conf.update(
    broker_url=settings.broker_url,
    result_backend=settings.result_backend,
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Queue entries are ephemeral; job state lives in the job record store
    task_ignore_result=True,
    result_expires=3600,
    task_time_limit=10 * 60,
    task_soft_time_limit=8 * 60,
    # Reliability
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,
    # Routing
    task_default_queue=TRANSCRIPT_QUEUE,
    task_routes={
        "documents.process_transcript": {"queue": TRANSCRIPT_QUEUE},
        "documents.process_certificate": {"queue": CERTIFICATE_QUEUE},
        "notifications.send_telegram_message": {"queue": TELEGRAM_QUEUE},
        "notifications.send_email": {"queue": EMAIL_QUEUE},
    },
)

celery_app.autodiscover_tasks(
    ["app.modules.documents", "app.modules.notifications"],
    related_name="tasks",
)


@setup_logging.connect
def _configure_worker_logging(**_kwargs) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
