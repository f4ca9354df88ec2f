# app/config/celery_config.py
"""Celery configuration and task routing"""
from celery import Celery
from kombu import Queue

from app.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure the Celery app used for calendar sync work"""

    celery_app = Celery(
        "booking_scheduler",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    # Configure Celery
    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,

        # Task routing
        task_routes={
            "app.tasks.calendar_tasks.*": {"queue": "calendar_sync"},
        },

        # Queue definitions
        task_queues=(
            Queue("calendar_sync", routing_key="calendar_sync"),
        ),

        # Worker settings
        worker_max_tasks_per_child=1000,
        worker_prefetch_multiplier=1,
        task_acks_late=True,

        # Tests and local runs execute tasks inline
        task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,

        broker_connection_retry_on_startup=True,
    )

    # Auto-discover tasks
    celery_app.autodiscover_tasks([
        "app.tasks.calendar_tasks",
    ])

    return celery_app


# Create the Celery app instance
celery_app = create_celery_app()
