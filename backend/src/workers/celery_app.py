"""Celery application and beat schedule.

Workers are started with:

    celery -A workers.celery_app worker -l info
    celery -A workers.celery_app beat -l info

Task modules register themselves with ``shared_task``; they are listed in
``include`` so a worker imports them on startup.
"""

from celery import Celery
from celery.schedules import crontab

from config import settings

celery_app = Celery(
    "bizflow",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "attendance.tasks",
        "audit.tasks",
        "webhooks.tasks",
        "workflows.tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    task_eager_propagates=True,
)

celery_app.conf.beat_schedule = {
    "attendance-sync-hourly": {
        "task": "attendance.sync_all",
        "schedule": crontab(minute=0),
        "options": {"expires": 3000},
    },
    "webhooks-retry-failed": {
        "task": "webhooks.retry_failed",
        "schedule": crontab(minute="*/10"),
        "options": {"expires": 540},
    },
    "audit-retention-purge-daily": {
        "task": "audit.purge_expired",
        "schedule": crontab(hour=2, minute=0),  # 02:00 UTC
        "options": {"expires": 3600},
    },
}
