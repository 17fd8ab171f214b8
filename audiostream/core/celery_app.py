"""Celery application configuration.

Run the worker with ``--concurrency 1`` so posts are processed one at a time.
"""

from celery import Celery

from audiostream.core.config import settings

celery_app = Celery(
    "audiostream",
    broker=settings.broker_url,
    backend=settings.result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    beat_schedule={
        "scan-unprocessed-posts": {
            "task": "audiostream.modules.job.tasks.scan_posts_task",
            "schedule": settings.POLL_INTERVAL_MS / 1000.0,
        },
    },
)

celery_app.autodiscover_tasks(["audiostream.modules.job"])
