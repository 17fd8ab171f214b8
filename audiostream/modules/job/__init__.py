"""Job module: retry orchestration, job discovery, triggers and tasks."""

from audiostream.modules.job.models import Job, JobOutcome

__all__ = ["Job", "JobOutcome"]
