"""Tests for the Celery tasks, run eagerly with ``apply``."""

from types import SimpleNamespace

from audiostream.core.celery_app import celery_app
from audiostream.modules.job import tasks
from audiostream.modules.job.models import JobOutcome


class StubService:

    def __init__(self):
        self.processed = []

    def process_post(self, post_id):
        self.processed.append(post_id)
        return JobOutcome.COMPLETED

    def run_scan(self):
        return {"a": JobOutcome.COMPLETED, "b": JobOutcome.SKIPPED}


def test_process_post_task_returns_outcome(monkeypatch) -> None:
    service = StubService()
    monkeypatch.setattr(tasks, "get_processing_service", lambda: service)

    result = tasks.process_post_task.apply(args=["p1"]).get()

    assert result == {"post_id": "p1", "outcome": "completed"}
    assert service.processed == ["p1"]


def test_scan_posts_task_summarizes_outcomes(monkeypatch) -> None:
    monkeypatch.setattr(tasks, "get_processing_service", lambda: StubService())

    result = tasks.scan_posts_task.apply().get()

    assert result == {"processed": 2, "outcomes": {"a": "completed", "b": "skipped"}}


def test_enqueue_post_returns_task_id(monkeypatch) -> None:
    fake_task = SimpleNamespace(delay=lambda post_id: SimpleNamespace(id=f"t-{post_id}"))
    monkeypatch.setattr(tasks, "process_post_task", fake_task)
    assert tasks.enqueue_post("p1") == "t-p1"


def test_beat_schedules_the_scan() -> None:
    entry = celery_app.conf.beat_schedule["scan-unprocessed-posts"]
    assert entry["task"] == "audiostream.modules.job.tasks.scan_posts_task"
    assert celery_app.conf.worker_concurrency == 1
