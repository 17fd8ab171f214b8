"""Job models for post processing.

A Job is in-memory only: it wraps one post while it moves through the
pipeline and is dropped once it reaches a terminal outcome.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from audiostream.modules.post.models import Post


class JobOutcome(str, Enum):
    """Terminal outcome of a job."""
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"  # another run owns the post


@dataclass
class Job:
    """One post carried through the pipeline, with its attempt counter."""
    post: Post
    attempt: int = 0
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    claimed_at: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def post_id(self) -> str:
        return self.post.id

    def __repr__(self) -> str:
        return f"<Job(id={self.job_id}, post={self.post_id}, attempt={self.attempt})>"
