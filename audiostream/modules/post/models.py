"""Post document model.

A post is created outside this service when a track is uploaded. This service
only reads it and writes the processing fields.
"""

import json
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ProcessingStatus(str, Enum):
    """Processing status of a post.

    An unset status (``None``) means the post was never picked up.
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Attributes queried by the eligibility scan
AUDIO_URL_FIELD = "audio_url"
MP3_URL_FIELD = "mp3_url"


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Post(BaseModel):
    """A post document from the posts collection."""

    id: str = Field(..., alias="$id")
    trackname: Optional[str] = None
    audio_url: Optional[str] = None
    mp3_url: Optional[str] = None
    m3u8_url: Optional[str] = None
    segments: Optional[str] = None  # JSON-encoded list of storage ids
    streaming_urls: Optional[list[str]] = None
    processing_status: Optional[str] = None
    processing_error: Optional[str] = None
    processing_started_at: Optional[str] = None
    processing_completed_at: Optional[str] = None
    audio_processing_progress: Optional[int] = None

    class Config:
        populate_by_name = True
        extra = "ignore"

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Post":
        """Build a Post from a raw store document."""
        return cls.model_validate(document)

    def is_eligible(self) -> bool:
        """True iff raw audio is present and no compressed rendition exists."""
        return _present(self.audio_url) and not _present(self.mp3_url)

    def has_outputs(self) -> bool:
        """True when every derived reference is already recorded."""
        return (
            _present(self.mp3_url)
            and _present(self.m3u8_url)
            and _present(self.segments)
        )

    def is_claimable(
        self,
        stale_after_seconds: int,
        now: Optional[datetime] = None,
        owned_since: Optional[str] = None,
    ) -> bool:
        """Check whether a run may move this post into ``processing``.

        Only a live ``processing`` claim blocks a run. Any other status is
        claimable, including ``pending`` and a ``completed`` status left on a
        post that never got its outputs. A ``processing`` post is claimable
        once its claim is older than ``stale_after_seconds``, which recovers
        posts left behind by a crashed worker, or by the run that made the
        claim (``owned_since`` matches ``processing_started_at``).
        """
        if self.processing_status != ProcessingStatus.PROCESSING.value:
            return True
        if owned_since and self.processing_started_at == owned_since:
            return True
        started = parse_timestamp(self.processing_started_at)
        if started is None:
            return True
        now = now or utc_now()
        return now - started >= timedelta(seconds=stale_after_seconds)

    @property
    def segment_ids(self) -> list[str]:
        """Decode the stored segment id list."""
        if not self.segments:
            return []
        try:
            decoded = json.loads(self.segments)
        except ValueError:
            return []
        return [str(item) for item in decoded] if isinstance(decoded, list) else []


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, returning None when unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
