"""Weighted progress reporting for pipeline runs.

Progress is written to the post's ``audio_processing_progress`` field and,
when configured, POSTed to a webhook. Reporting never fails a run.
"""

import logging
from enum import Enum
from typing import Optional

import httpx

from audiostream.core.database import DocumentStoreError
from audiostream.modules.post.models import utc_now
from audiostream.modules.post.repository import PostRepository

logger = logging.getLogger(__name__)


class ProgressStep(str, Enum):
    INITIALIZE = "initialize"
    DOWNLOAD = "download"
    CONVERT = "convert"
    SEGMENT = "segment"
    UPLOAD_SEGMENTS = "upload_segments"
    CREATE_PLAYLIST = "create_playlist"
    FINALIZE = "finalize"


# Weights sum to 100, in pipeline order
STEP_WEIGHTS: dict[ProgressStep, int] = {
    ProgressStep.INITIALIZE: 5,
    ProgressStep.DOWNLOAD: 15,
    ProgressStep.CONVERT: 20,
    ProgressStep.SEGMENT: 25,
    ProgressStep.UPLOAD_SEGMENTS: 20,
    ProgressStep.CREATE_PLAYLIST: 10,
    ProgressStep.FINALIZE: 5,
}


def progress_percentage(step: ProgressStep, step_progress: float = 100.0) -> int:
    """Overall percentage for a step that is ``step_progress`` percent done.

    Args:
        step: Current step
        step_progress: Completion of the current step, clamped to 0-100

    Returns:
        int: Overall progress, 0-100
    """
    steps = list(STEP_WEIGHTS)
    previous = sum(STEP_WEIGHTS[s] for s in steps[:steps.index(step)])
    fraction = min(max(step_progress, 0.0), 100.0) / 100.0
    return round(previous + STEP_WEIGHTS[step] * fraction)


class ProgressReporter:
    """Publishes progress for a post to the document store and a webhook."""

    def __init__(
        self,
        repository: PostRepository,
        enabled: bool = True,
        webhook_url: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        self.repository = repository
        self.enabled = enabled
        self.webhook_url = webhook_url
        self.http_client = http_client

    def report(
        self,
        post_id: str,
        step: ProgressStep,
        step_progress: float = 100.0,
        status: str = "processing",
    ) -> Optional[int]:
        """Publish progress. Returns the percentage, or None when disabled."""
        if not self.enabled:
            return None

        percentage = progress_percentage(step, step_progress)
        try:
            self.repository.update_progress(post_id, percentage)
        except DocumentStoreError as e:
            logger.warning(f"Failed to update progress for post {post_id}: {e}")

        if self.webhook_url:
            self._send_webhook(post_id, step, percentage, status)

        logger.debug(f"Post {post_id} progress: {step.value} {percentage}%")
        return percentage

    def _send_webhook(self, post_id: str, step: ProgressStep, percentage: int, status: str) -> None:
        payload = {
            "postId": post_id,
            "step": step.value,
            "progress": percentage,
            "status": status,
            "timestamp": utc_now().isoformat(),
        }
        try:
            if self.http_client is not None:
                response = self.http_client.post(self.webhook_url, json=payload)
            else:
                response = httpx.post(self.webhook_url, json=payload, timeout=10.0)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Progress webhook failed for post {post_id}: {e}")
