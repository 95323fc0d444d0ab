"""
Celery application configuration.
Sets up Celery with Redis broker and the beat schedule for usage resets.
"""
import logging
import time
from celery import Celery
from celery.schedules import crontab
from celery.signals import task_prerun, task_postrun, task_failure, worker_ready
from prometheus_client import start_http_server

from app.config import settings
from app.utils.metrics import scheduled_jobs_total, scheduled_job_duration_seconds
from app.utils.logging import configure_logging

logger = logging.getLogger(__name__)

# Create Celery app
celery_app = Celery(
    "notecompanion",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.tasks.reset_usage",
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
    task_time_limit=10 * 60,
    task_soft_time_limit=8 * 60,
    worker_prefetch_multiplier=1,
    beat_schedule={
        # 00:00 UTC on the first day of every month
        "reset-monthly-usage": {
            "task": "reset_usage",
            "schedule": crontab(minute=0, hour=0, day_of_month=1),
        },
    },
)

# Configure structured JSON logging
configure_logging('nc-worker', settings.log_level)

_task_started_at = {}


@worker_ready.connect
def start_worker_metrics_server(sender=None, **kwargs):
    """Expose worker metrics to Prometheus once the worker is up."""
    try:
        start_http_server(settings.worker_metrics_port)
        logger.info(f"Worker metrics server listening on port {settings.worker_metrics_port}")
    except OSError as e:
        logger.warning(f"Failed to start metrics server: {e}")


# Celery signal handlers for metrics
@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, **kwds):
    """Track task start."""
    _task_started_at[task_id] = time.time()


@task_postrun.connect
def task_postrun_handler(sender=None, task_id=None, task=None, state=None, **kwds):
    """Track task completion."""
    job = task.name if task else "unknown"
    started = _task_started_at.pop(task_id, None)
    if started is not None:
        scheduled_job_duration_seconds.labels(job=job).observe(time.time() - started)
    if state == "SUCCESS":
        scheduled_jobs_total.labels(job=job, status="success").inc()


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, **kwds):
    """Track task failures."""
    job = sender.name if sender else "unknown"
    scheduled_jobs_total.labels(job=job, status="failure").inc()
    logger.error(f"Task {job} failed: {exception}", extra={"event": "task_failed", "job": job})
