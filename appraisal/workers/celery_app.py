"""
Celery application for invitation emails.

Broker and result backend default to REDIS_URL (see Settings).
"""

from celery import Celery

from appraisal.core.config import settings

EMAIL_QUEUE = "email"

celery_app = Celery(
    "appraisal",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["appraisal.workers.email_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,
    # Re-delivered if the worker dies mid-task.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=60,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
    task_default_queue=EMAIL_QUEUE,
    task_queues={EMAIL_QUEUE: {}},
    task_routes={"appraisal.workers.email_tasks.*": {"queue": EMAIL_QUEUE}},
)
