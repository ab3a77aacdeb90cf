"""
Celery application configuration for background tasks.
"""

from celery import Celery
from celery.schedules import crontab

from ..config import get_settings

settings = get_settings()

celery_app = Celery(
    "procession_booking",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "procession_booking.tasks.maintenance_tasks",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,  # 8 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

# Two overlapping schedules call the same idempotent pass
celery_app.conf.beat_schedule = {
    "booking-maintenance": {
        "task": "run_booking_maintenance_task",
        "schedule": settings.maintenance_interval_seconds,
        "kwargs": {"trigger": "interval"},
    },
    "booking-maintenance-hourly": {
        "task": "run_booking_maintenance_task",
        "schedule": crontab(minute=settings.maintenance_backup_minute),
        "kwargs": {"trigger": "hourly"},
    },
}
