"""Celery application and beat schedule."""
from celery import Celery
from celery.schedules import crontab

from app.config import settings

celery_app = Celery(
    "casedesk",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["app.tasks.audit"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

if settings.AUDIT_CLEANUP_ENABLED:
    celery_app.conf.beat_schedule = {
        "purge-expired-audit-logs": {
            "task": "app.tasks.audit.purge_expired_audit_logs",
            "schedule": crontab(hour=3, minute=0),
        },
    }
