"""
Celery Worker Configuration

Configures Celery for background task processing including:
- Audit crawl setup
- Completion sweep
- Auto-stop of long-paused audits
- Crawl queue cleanup

Crawl jobs themselves are consumed by the asyncio worker pool
(``python -m app.crawl_worker``), not by Celery.
"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init

from app.config import settings
from app.core.logging import setup_logging


# Create Celery app
celery_app = Celery(
    "seocrawler",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "app.tasks.audit_tasks",
        "app.tasks.maintenance_tasks",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=1800,  # 30 min max per task
    task_soft_time_limit=1700,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
    worker_max_tasks_per_child=100,

    # Result backend settings
    result_expires=86400,  # 24 hours
    result_extended=True,

    # Queue routing
    task_routes={
        "app.tasks.audit_tasks.*": {"queue": "audit"},
        "app.tasks.maintenance_tasks.*": {"queue": "maintenance"},
    },

    # Default queue
    task_default_queue="default",
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Finalize audits that have been done and quiet for the inactivity window
    "completion-sweep": {
        "task": "app.tasks.maintenance_tasks.run_completion_sweep",
        "schedule": crontab(),
    },

    # Stop audits paused for more than PAUSED_AUDIT_TTL_DAYS
    "auto-stop-paused-audits": {
        "task": "app.tasks.maintenance_tasks.auto_stop_paused_audits",
        "schedule": crontab(minute=0),
    },

    # Drop finished crawl jobs
    "clean-crawl-queue": {
        "task": "app.tasks.maintenance_tasks.clean_queue",
        "schedule": crontab(minute=30),
    },
}


@worker_process_init.connect
def _configure_worker_logging(**kwargs):
    setup_logging()


# Task base class with common functionality
class SEOCrawlerTask(celery_app.Task):
    """Base task class with error handling."""

    abstract = True

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Handle task failure."""
        self.update_state(
            state="FAILURE",
            meta={
                "exc_type": type(exc).__name__,
                "exc_message": str(exc),
            }
        )


# Register base class
celery_app.Task = SEOCrawlerTask
