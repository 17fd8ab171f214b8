"""Celery tasks for post processing.

Retries happen inside the orchestrator, so these tasks never ask Celery to
retry them.
"""

import logging

from audiostream.core.celery_app import celery_app
from audiostream.modules.job.service import get_processing_service

logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def process_post_task(self, post_id: str) -> dict:
    """Process one post.

    Args:
        post_id: Post document id

    Returns:
        dict with the post id and its terminal outcome
    """
    outcome = get_processing_service().process_post(post_id)
    return {"post_id": post_id, "outcome": outcome.value}


@celery_app.task(bind=True)
def scan_posts_task(self) -> dict:
    """Scan for eligible posts and process them one at a time.

    Scheduled by beat every ``POLL_INTERVAL_MS``.
    """
    outcomes = get_processing_service().run_scan()
    logger.info(f"Scan processed {len(outcomes)} posts")
    return {
        "processed": len(outcomes),
        "outcomes": {post_id: outcome.value for post_id, outcome in outcomes.items()},
    }


def enqueue_post(post_id: str) -> str:
    """Queue a post for processing and return the task id."""
    return process_post_task.delay(post_id).id
