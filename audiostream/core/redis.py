"""Redis connection and the per-post claim lock."""

import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional

import redis

from audiostream.core.config import Settings

CLAIM_KEY_PREFIX = "audiostream:claim:"

# Compare-and-delete so a lock that expired and was re-taken is not released
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def get_redis(settings: Settings) -> redis.Redis:
    """Create a Redis client from settings."""
    return redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)


class ClaimLock(ABC):
    """Short-lived mutual exclusion around the claim of one post."""

    @abstractmethod
    def acquire(self, post_id: str) -> Optional[str]:
        """Try to take the lock; return a token or None when held elsewhere."""

    @abstractmethod
    def release(self, post_id: str, token: str) -> None:
        """Release a lock previously acquired with ``token``."""

    @contextmanager
    def hold(self, post_id: str) -> Iterator[bool]:
        """Context manager yielding True when the lock was obtained."""
        token = self.acquire(post_id)
        try:
            yield token is not None
        finally:
            if token is not None:
                self.release(post_id, token)


class RedisClaimLock(ClaimLock):
    """Claim lock shared by every process using the same Redis."""

    def __init__(self, client: redis.Redis, ttl_seconds: int = 30):
        self.client = client
        self.ttl_seconds = ttl_seconds

    def acquire(self, post_id: str) -> Optional[str]:
        token = uuid.uuid4().hex
        if self.client.set(CLAIM_KEY_PREFIX + post_id, token, nx=True, ex=self.ttl_seconds):
            return token
        return None

    def release(self, post_id: str, token: str) -> None:
        self.client.eval(_RELEASE_SCRIPT, 1, CLAIM_KEY_PREFIX + post_id, token)


class LocalClaimLock(ClaimLock):
    """In-process claim lock for single-process deployments."""

    def __init__(self):
        self._guard = threading.Lock()
        self._held: dict[str, str] = {}

    def acquire(self, post_id: str) -> Optional[str]:
        with self._guard:
            if post_id in self._held:
                return None
            token = uuid.uuid4().hex
            self._held[post_id] = token
            return token

    def release(self, post_id: str, token: str) -> None:
        with self._guard:
            if self._held.get(post_id) == token:
                del self._held[post_id]


def create_claim_lock(settings: Settings) -> ClaimLock:
    """Build the claim lock selected by ``CLAIM_LOCK_BACKEND``."""
    backend = settings.CLAIM_LOCK_BACKEND.lower()
    if backend == "redis":
        return RedisClaimLock(get_redis(settings), ttl_seconds=settings.CLAIM_LOCK_TTL_SECONDS)
    if backend == "local":
        return LocalClaimLock()
    raise ValueError(f"Unsupported claim lock backend: {backend}")
