"""Tests for PostRepository scans, claims and status writes."""

import json
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from audiostream.core.database import DocumentNotFoundError
from audiostream.core.redis import ClaimLock
from audiostream.modules.post.repository import PostRepository


NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class BusyLock(ClaimLock):
    """Lock that is always held by someone else."""

    def acquire(self, post_id: str) -> Optional[str]:
        return None

    def release(self, post_id: str, token: str) -> None:
        raise AssertionError("release called without acquire")


class TestListEligible:

    def test_paginates_through_all_posts(self, repository, store, post_factory) -> None:
        for index in range(5):
            store.add(post_factory(f"p{index}"))

        ids = [post.id for post in repository.list_eligible()]

        assert ids == ["p0", "p1", "p2", "p3", "p4"]
        assert len(store.list_calls) == 3

    def test_skips_posts_with_mp3_or_blank_audio(self, repository, store, post_factory) -> None:
        store.add(post_factory("done", mp3_url="https://cdn.test/files/x"))
        store.add(post_factory("blank", audio_url="  "))
        store.add(post_factory("ready"))
        store.add({"$id": "no-audio"})

        assert [post.id for post in repository.list_eligible()] == ["ready"]

    def test_empty_collection(self, repository) -> None:
        assert list(repository.list_eligible()) == []


class TestClaim:

    def test_claim_writes_processing_fields(self, repository, store, post_factory) -> None:
        store.add(post_factory("p1", processing_error="old"))

        claimed_at = repository.claim("p1", now=NOW)

        assert claimed_at == NOW.isoformat()
        document = store.documents["p1"]
        assert document["processing_status"] == "processing"
        assert document["processing_started_at"] == NOW.isoformat()
        assert document["processing_error"] is None
        assert document["audio_processing_progress"] == 0

    def test_second_claim_is_rejected(self, repository, store, post_factory) -> None:
        store.add(post_factory("p1"))
        assert repository.claim("p1", now=NOW)
        assert repository.claim("p1", now=NOW + timedelta(seconds=1)) is None

    def test_stale_claim_is_taken_over(self, repository, store, post_factory) -> None:
        store.add(post_factory("p1"))
        repository.claim("p1", now=NOW)
        later = NOW + timedelta(seconds=repository.stale_claim_seconds)
        assert repository.claim("p1", now=later) == later.isoformat()

    def test_owner_can_reclaim(self, repository, store, post_factory) -> None:
        store.add(post_factory("p1"))
        first = repository.claim("p1", now=NOW)
        assert repository.claim("p1", now=NOW + timedelta(seconds=5), owned_since=first)

    def test_ineligible_post_not_claimed(self, repository, store, post_factory) -> None:
        store.add(post_factory("p1", mp3_url="https://cdn.test/files/x"))
        assert repository.claim("p1", now=NOW) is None
        assert store.updates == []

    def test_busy_lock_blocks_claim(self, store, post_factory) -> None:
        store.add(post_factory("p1"))
        repository = PostRepository(store, claim_lock=BusyLock())
        assert repository.claim("p1", now=NOW) is None
        assert store.updates == []

    def test_missing_post_raises(self, repository) -> None:
        with pytest.raises(DocumentNotFoundError):
            repository.claim("missing")


class TestStatusWrites:

    def test_mark_completed_persists_outputs(self, repository, store, post_factory) -> None:
        store.add(post_factory("p1"))

        repository.mark_completed(
            "p1",
            mp3_url="https://cdn.test/files/p1-mp3",
            m3u8_url="https://cdn.test/files/p1-m3u8",
            segment_ids=["p1-seg000", "p1-seg001"],
            streaming_urls=["https://cdn.test/files/p1-seg000", "https://cdn.test/files/p1-seg001"],
        )

        assert len(store.updates) == 1
        document = store.documents["p1"]
        assert document["processing_status"] == "completed"
        assert document["processing_completed_at"]
        assert document["audio_processing_progress"] == 100
        assert json.loads(document["segments"]) == ["p1-seg000", "p1-seg001"]
        assert len(document["streaming_urls"]) == 2

    def test_mark_failed_defaults_message(self, repository, store, post_factory) -> None:
        store.add(post_factory("p1"))
        repository.mark_failed("p1", "")
        assert store.documents["p1"]["processing_status"] == "failed"
        assert store.documents["p1"]["processing_error"] == "Unknown error"

    def test_update_progress_only_touches_progress(self, repository, store, post_factory) -> None:
        store.add(post_factory("p1"))
        repository.update_progress("p1", 42)
        assert store.updates == [("p1", {"audio_processing_progress": 42})]
