"""Post repository over the document store.

Implements the eligibility scan, the conditional claim and every status write
the processor makes.
"""

import json
import logging
from datetime import datetime
from typing import Iterator, Optional

from audiostream.core.database import DocumentStore, Query
from audiostream.core.redis import ClaimLock
from audiostream.modules.post.models import (
    AUDIO_URL_FIELD,
    MP3_URL_FIELD,
    Post,
    ProcessingStatus,
    utc_now,
)

logger = logging.getLogger(__name__)


class PostRepository:
    """Repository for post reads and processing-field updates."""

    def __init__(
        self,
        store: DocumentStore,
        claim_lock: ClaimLock,
        stale_claim_seconds: int = 3600,
        page_size: int = 100,
    ):
        """Initialize repository.

        Args:
            store: Document store holding the posts collection
            claim_lock: Lock serialising claims of the same post
            stale_claim_seconds: Age after which a processing claim is abandoned
            page_size: Page size for eligibility scans
        """
        self.store = store
        self.claim_lock = claim_lock
        self.stale_claim_seconds = stale_claim_seconds
        self.page_size = page_size

    def get(self, post_id: str) -> Post:
        """Fetch a post by id.

        Raises:
            DocumentNotFoundError: If the post does not exist
        """
        return Post.from_document(self.store.get_document(post_id))

    def list_eligible(self) -> Iterator[Post]:
        """Yield eligible posts in query order."""
        queries = [Query.is_not_null(AUDIO_URL_FIELD), Query.is_null(MP3_URL_FIELD)]
        for document in self.store.iter_documents(queries, page_size=self.page_size):
            post = Post.from_document(document)
            if post.is_eligible():
                yield post
            else:
                logger.debug(f"Dropping ineligible post {post.id} from scan")

    def claim(
        self,
        post_id: str,
        now: Optional[datetime] = None,
        owned_since: Optional[str] = None,
    ) -> Optional[str]:
        """Move a post into ``processing`` if nobody else owns it.

        The re-read and the status write happen under the claim lock, so two
        runs racing for the same post cannot both succeed.

        Args:
            post_id: Post to claim
            now: Claim time (defaults to current UTC time)
            owned_since: Timestamp of an earlier claim by the same run

        Returns:
            The claim timestamp if this run now owns the post, else None
        """
        with self.claim_lock.hold(post_id) as acquired:
            if not acquired:
                logger.info(f"Post {post_id} is being claimed by another run")
                return None

            post = self.get(post_id)
            if not post.is_eligible():
                logger.info(f"Post {post_id} is no longer eligible, not claiming")
                return None
            if not post.is_claimable(self.stale_claim_seconds, now=now, owned_since=owned_since):
                logger.info(
                    f"Post {post_id} already has status {post.processing_status}, not claiming"
                )
                return None

            claimed_at = (now or utc_now()).isoformat()
            self.store.update_document(post_id, {
                "processing_status": ProcessingStatus.PROCESSING.value,
                "processing_started_at": claimed_at,
                "processing_error": None,
                "audio_processing_progress": 0,
            })
            return claimed_at

    def mark_completed(
        self,
        post_id: str,
        mp3_url: str,
        m3u8_url: str,
        segment_ids: list[str],
        streaming_urls: list[str],
    ) -> None:
        """Persist the outputs of a successful run in one update."""
        self.store.update_document(post_id, {
            "mp3_url": mp3_url,
            "m3u8_url": m3u8_url,
            "segments": json.dumps(segment_ids),
            "streaming_urls": streaming_urls,
            "processing_status": ProcessingStatus.COMPLETED.value,
            "processing_completed_at": utc_now().isoformat(),
            "processing_error": None,
            "audio_processing_progress": 100,
        })

    def mark_failed(self, post_id: str, error: str) -> None:
        """Record a failed run."""
        self.store.update_document(post_id, {
            "processing_status": ProcessingStatus.FAILED.value,
            "processing_error": error or "Unknown error",
        })

    def mark_reconciled(self, post_id: str) -> None:
        """Mark a post completed whose outputs already exist."""
        self.store.update_document(post_id, {
            "processing_status": ProcessingStatus.COMPLETED.value,
            "processing_error": None,
            "audio_processing_progress": 100,
        })

    def update_progress(self, post_id: str, progress: int) -> None:
        self.store.update_document(post_id, {"audio_processing_progress": progress})
