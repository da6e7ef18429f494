"""Celery application: retries aggregate updates that failed in-request."""

from celery import Celery

from courseflow.config import settings

celery_app = Celery(
    "courseflow",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Analytics and progress retries share one low-traffic queue
    task_default_queue="aggregates",
    result_expires=3600,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    # Eager in development: retries run inline, no broker needed.
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    task_eager_propagates=True,
)

celery_app.autodiscover_tasks(["courseflow"])
