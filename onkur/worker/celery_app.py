"""
Celery Application Configuration
"""
from celery import Celery

from onkur.config import settings

# Create Celery app
celery_app = Celery(
    "onkur_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "onkur.worker.tasks"
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=240,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    result_expires=3600,  # Results expire after 1 hour
)

# Periodic tasks
celery_app.conf.beat_schedule = {
    "dispatch-event-reminders": {
        "task": "onkur.worker.tasks.dispatch_event_reminders",
        "schedule": float(settings.REMINDER_INTERVAL_SECONDS),
    },
}

celery_app.conf.task_routes = {
    "onkur.worker.tasks.dispatch_event_reminders": {"queue": "reminders"},
    "onkur.worker.tasks.*": {"queue": "default"},
}
