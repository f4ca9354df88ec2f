"""
Celery worker entry point
Mirrors committed bookings to external calendars
"""
import logging
from celery.signals import task_failure, worker_process_init, worker_ready, worker_shutdown

from app.config.celery_config import celery_app
from app.config.database import engine
from app.utils.my_logging import setup_logging

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)

# Register the calendar tasks with the app
import app.tasks.calendar_tasks  # noqa: E402,F401


@worker_process_init.connect
def reset_db_pool(**kwargs):
    """Forked children must not share the parent's pooled connections"""
    engine.dispose(close=False)


@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    """Handle worker startup"""
    sync_tasks = sorted(name for name in celery_app.tasks if name.startswith("app.tasks.calendar_tasks"))
    logger.info("🚀 Celery worker ready!")
    logger.info(f"📋 Calendar sync tasks: {sync_tasks}")


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, args=None, **kwargs):
    """Crashes only; retries and failed_permanent are logged by the task itself"""
    booking_id = args[0] if args else None
    logger.error(f"❌ {sender.name if sender else 'task'} [{task_id}] crashed for booking {booking_id}: {exception}")


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    """Handle worker shutdown"""
    logger.info("🛑 Celery worker shutting down...")


if __name__ == "__main__":
    # Run worker directly
    celery_app.start([
        'worker',
        '--loglevel=info',
        '--queues=calendar_sync',
        '--concurrency=4',
        '--max-tasks-per-child=1000'
    ])
