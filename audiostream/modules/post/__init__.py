"""Post module.

Model and repository for the post documents this service transcodes.
"""

from audiostream.modules.post.models import Post, ProcessingStatus
from audiostream.modules.post.repository import PostRepository

__all__ = ["Post", "ProcessingStatus", "PostRepository"]
