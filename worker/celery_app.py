"""Celery application configuration.

This module sets up the Celery app with:
- Redis as broker and result backend
- Workflow jobs routed to their own queue
- Serialization and timezone settings
- Beat schedule for stalled-execution recovery
"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from app.config import get_settings
from core.logging_config import setup_logging

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "workflow_engine",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

# Configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    task_routes={
        "worker.tasks.workflow.*": {"queue": settings.CELERY_QUEUE},
    },
    task_default_queue="default",

    # Result expiration (24 hours)
    result_expires=86400,

    task_acks_late=True,        # Acknowledge after execution (safer)
    worker_prefetch_multiplier=1,  # One task at a time per worker process
    task_reject_on_worker_lost=True,

    # Retries are scheduled by the engine, never by Celery
    task_default_retry_delay=0,

    # Beat schedule for periodic tasks
    beat_schedule={
        "recover-stalled-executions": {
            "task": "worker.tasks.workflow.recover_stalled_executions",
            "schedule": crontab(minute="*/5"),  # Every 5 minutes
            "options": {"queue": settings.CELERY_QUEUE},
        },
    },

    include=[
        "worker.tasks.workflow",
    ],
)


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Route worker logs through the engine's structlog setup."""
    setup_logging()
