"""Pydantic schemas for the post endpoints."""

from typing import Optional

from pydantic import BaseModel

from audiostream.modules.post.models import Post


class PostStatusResponse(BaseModel):
    """Processing state of one post."""

    post_id: str
    trackname: Optional[str] = None
    processing_status: Optional[str] = None
    processing_error: Optional[str] = None
    progress: int = 0
    mp3_url: Optional[str] = None
    m3u8_url: Optional[str] = None
    processing_started_at: Optional[str] = None
    processing_completed_at: Optional[str] = None

    @classmethod
    def from_post(cls, post: Post) -> "PostStatusResponse":
        return cls(
            post_id=post.id,
            trackname=post.trackname,
            processing_status=post.processing_status,
            processing_error=post.processing_error,
            progress=post.audio_processing_progress or 0,
            mp3_url=post.mp3_url,
            m3u8_url=post.m3u8_url,
            processing_started_at=post.processing_started_at,
            processing_completed_at=post.processing_completed_at,
        )


class ProcessPostResponse(BaseModel):
    """Response for a queued single-post run."""

    post_id: str
    task_id: Optional[str] = None
    message: str
