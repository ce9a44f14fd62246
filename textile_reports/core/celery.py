"""
Celery configuration for background report generation
"""
from celery import Celery
import logging

from textile_reports.core.config import settings

logger = logging.getLogger(__name__)

# Create Celery instance
celery_app = Celery(
    "textile_reports",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "textile_reports.modules.reports.tasks",
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
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,  # 8 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Report results are only useful for a short time
    result_expires=3600,  # 1 hour

    task_routes={
        "textile_reports.modules.reports.tasks.*": {"queue": "reports"},
    },
)

if __name__ == "__main__":
    celery_app.start()
