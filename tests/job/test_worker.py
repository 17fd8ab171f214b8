"""Tests for the polling worker."""

from audiostream import worker
from audiostream.core.config import Settings
from audiostream.modules.job.models import JobOutcome


class StubService:

    def __init__(self, outcomes=None, error=None):
        self.outcomes = outcomes or {}
        self.error = error
        self.scans = 0

    def run_scan(self):
        self.scans += 1
        if self.error is not None:
            raise self.error
        return self.outcomes


def complete_settings(**overrides) -> Settings:
    values = {
        "APPWRITE_ENDPOINT": "https://cloud.test/v1",
        "APPWRITE_PROJECT_ID": "project",
        "APPWRITE_API_KEY": "key",
        "APPWRITE_DATABASE_ID": "main",
        "APPWRITE_COLLECTION_ID_POST": "posts",
        "APPWRITE_BUCKET_ID": "audio",
        "LOG_JSON": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestRunSweep:

    def test_returns_number_processed(self) -> None:
        service = StubService({"a": JobOutcome.COMPLETED, "b": JobOutcome.FAILED})
        assert worker.run_sweep(service) == 2

    def test_errors_do_not_escape(self) -> None:
        assert worker.run_sweep(StubService(error=RuntimeError("store down"))) == 0


class TestPoll:

    def test_sleeps_between_sweeps_only(self) -> None:
        service = StubService()
        sleeps = []
        worker.poll(service, 60.0, sleep=sleeps.append, max_sweeps=3)
        assert service.scans == 3
        assert sleeps == [60.0, 60.0]

    def test_failed_sweep_keeps_polling(self) -> None:
        service = StubService(error=RuntimeError("boom"))
        worker.poll(service, 1.0, sleep=lambda _: None, max_sweeps=2)
        assert service.scans == 2


class TestMain:

    def test_missing_configuration_exits_nonzero(self) -> None:
        settings = Settings(_env_file=None, APPWRITE_ENDPOINT="", LOG_JSON=False)
        assert worker.main(["--once"], settings=settings) == 1

    def test_once_runs_single_sweep(self, monkeypatch) -> None:
        service = StubService()
        monkeypatch.setattr(worker, "build_processing_service", lambda settings: service)
        assert worker.main(["--once"], settings=complete_settings()) == 0
        assert service.scans == 1
