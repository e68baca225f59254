"""Celery app for background Gmail scans. Uses Redis; DB session per task."""
from celery import Celery
from .config import settings

celery_app = Celery(
    "jobscan",
    broker=settings.celery_broker,
    backend=settings.redis_url,
    include=["jobscan.tasks"],
)
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)
if settings.scan_all_interval_s > 0:
    celery_app.conf.beat_schedule = {
        "scan-all-owners": {
            "task": "jobscan.tasks.scan_all_owners",
            "schedule": float(settings.scan_all_interval_s),
        },
    }
