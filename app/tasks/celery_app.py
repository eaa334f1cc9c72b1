"""Celery application configuration."""

from celery import Celery

from app.core.config import settings
from app.tasks.scheduler import parse_schedule

celery_app = Celery(
    "portfolios",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "app.tasks.cleanup",
        "app.tasks.corporate_actions",
        "app.tasks.snapshots",
    ],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

# Scheduled tasks (Celery Beat), intervals come from settings
celery_app.conf.beat_schedule = {
    "cleanup-expired-credentials": {
        "task": "tasks.cleanup_expired",
        "schedule": parse_schedule(settings.CLEANUP_SCHEDULE).total_seconds(),
    },
    "detect-corporate-actions": {
        "task": "tasks.detect_corporate_actions",
        "schedule": parse_schedule(settings.CORPORATE_ACTION_SCHEDULE).total_seconds(),
    },
    "create-daily-snapshots": {
        "task": "tasks.create_daily_snapshots",
        "schedule": parse_schedule(settings.SNAPSHOT_SCHEDULE).total_seconds(),
    },
}
