"""Celery worker configuration for judgelink.

Runs the case-judge linking pipeline on a daily schedule.
"""

from celery import Celery
from celery.schedules import crontab

from .config import get_settings

settings = get_settings()

# Create Celery app
app = Celery(
    "judgelink",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Celery configuration
app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,  # Acknowledge tasks after completion
    task_reject_on_worker_lost=True,  # Requeue tasks if worker dies
    task_time_limit=6 * 3600,  # A full pass over a large case table takes hours
    task_soft_time_limit=6 * 3600 - 300,
    # Worker settings
    worker_prefetch_multiplier=1,  # Fetch one task at a time
    worker_concurrency=1,  # Linking runs must not overlap
    # Result backend
    result_expires=7 * 86400,
    # Task routing
    task_routes={
        "judgelink.linking.*": {"queue": "linking"},
    },
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Case-judge linking daily (LINK_SCHEDULE_HOUR UTC)
    "run-case-judge-linking": {
        "task": "judgelink.linking.tasks.run_linking",
        "schedule": crontab(hour=settings.link_schedule_hour, minute=0),
        "options": {"queue": "linking"},
    },
}


# Autodiscover tasks in the judgelink package
app.autodiscover_tasks(["judgelink.linking"], force=True)
