"""Job discovery: periodic scans and document change events."""

import logging
from typing import Optional

from audiostream.core.database import DocumentNotFoundError
from audiostream.core.metrics import SCANNED_POSTS_TOTAL
from audiostream.modules.job.models import Job
from audiostream.modules.post.models import Post, ProcessingStatus
from audiostream.modules.post.repository import PostRepository

logger = logging.getLogger(__name__)

# Event names must mention all of these to be a document change
DOCUMENT_EVENT_TOKENS = ("databases", "collections", "documents")
ACCEPTED_EVENT_ACTIONS = ("create", "update")


def is_document_event(event: str) -> bool:
    """Check that an event name describes a document in a collection."""
    return bool(event) and all(token in event for token in DOCUMENT_EVENT_TOKENS)


def is_create_or_update(event: str) -> bool:
    return any(action in event for action in ACCEPTED_EVENT_ACTIONS)


class JobSource:
    """Produces jobs for eligible posts."""

    def __init__(self, repository: PostRepository):
        self.repository = repository

    def scan(self) -> list[Job]:
        """Return a job for every eligible post, in query order."""
        jobs = [Job(post=post) for post in self.repository.list_eligible()]
        SCANNED_POSTS_TOTAL.inc(len(jobs))
        logger.info(f"Scan found {len(jobs)} posts to process")
        return jobs

    def for_post(self, post_id: str) -> Optional[Job]:
        """Build a job for one post if it is eligible.

        Raises:
            DocumentNotFoundError: If the post does not exist
        """
        post = self.repository.get(post_id)
        if not post.is_eligible():
            self._reconcile(post)
            return None
        return Job(post=post)

    def from_event(self, event: str, document_id: str) -> Optional[Job]:
        """Build a job from a document change notification.

        Only create and update events are accepted. The document is fetched
        again, since the notification may be stale.

        Returns:
            A Job, or None when there is nothing to process
        """
        if not is_create_or_update(event):
            logger.info(f"Ignoring event {event} for post {document_id}")
            return None
        try:
            return self.for_post(document_id)
        except DocumentNotFoundError:
            logger.info(f"Post {document_id} from event {event} no longer exists")
            return None

    def _reconcile(self, post: Post) -> None:
        """Mark a post completed when its outputs exist but its status lags."""
        if post.has_outputs() and post.processing_status != ProcessingStatus.COMPLETED.value:
            logger.info(f"Post {post.id} already has outputs, marking completed")
            self.repository.mark_reconciled(post.id)
