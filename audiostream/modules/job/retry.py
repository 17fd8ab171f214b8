"""Retry orchestration around pipeline runs."""

import logging
import math
import time
from typing import Callable, Optional

from audiostream.core.config import Settings
from audiostream.core.logging import bind_job_context, correlation_scope, log_error
from audiostream.core.metrics import (
    JOBS_IN_PROGRESS,
    record_attempt,
    record_job_outcome,
    record_unrecorded_failure,
)
from audiostream.modules.job.models import Job, JobOutcome
from audiostream.modules.post.repository import PostRepository
from audiostream.modules.transcoding.pipeline import PipelineResult, TranscodePipeline

logger = logging.getLogger(__name__)


class RetryConfig:
    """Configuration for retry behavior with exponential backoff."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 5.0,
        max_delay: float = 300.0,
        backoff_multiplier: float = 2.0,
        retry_validation_failures: bool = True,
    ):
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_multiplier = backoff_multiplier
        self.retry_validation_failures = retry_validation_failures

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryConfig":
        return cls(
            max_attempts=settings.MAX_RETRY_ATTEMPTS,
            initial_delay=settings.RETRY_BASE_DELAY_MS / 1000.0,
            max_delay=settings.RETRY_MAX_DELAY_MS / 1000.0,
            retry_validation_failures=settings.RETRY_VALIDATION_FAILURES,
        )

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt using exponential backoff.

        Args:
            attempt: The number of failed attempts so far (1-indexed).

        Returns:
            The delay in seconds, capped at max_delay.
        """
        if attempt < 1:
            return self.initial_delay

        delay = self.initial_delay * math.pow(self.backoff_multiplier, attempt - 1)
        return min(delay, self.max_delay)


def exhausted_message(max_attempts: int) -> str:
    return f"Failed after {max_attempts} attempts"


def validation_not_retried_message(reason: str) -> str:
    return f"Validation failed, not retried: {reason}"


class RetryOrchestrator:
    """Runs the pipeline for a job with bounded retries.

    Owns the terminal failure write once every attempt has failed.
    """

    def __init__(
        self,
        pipeline: TranscodePipeline,
        repository: PostRepository,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.pipeline = pipeline
        self.repository = repository
        self.config = config or RetryConfig()
        self.sleep = sleep

    def run_with_retry(self, job: Job, max_attempts: Optional[int] = None) -> JobOutcome:
        """Run the job until it succeeds, is skipped, or attempts run out.

        Args:
            job: Job to run
            max_attempts: Override for the configured attempt limit

        Returns:
            JobOutcome: Terminal outcome of the job
        """
        if max_attempts is None:
            max_attempts = self.config.max_attempts
        with correlation_scope(job.job_id, post_id=job.post_id):
            JOBS_IN_PROGRESS.inc()
            try:
                outcome = self._run(job, max_attempts)
            finally:
                JOBS_IN_PROGRESS.dec()
            record_job_outcome(outcome.value)
            return outcome

    def _run(self, job: Job, max_attempts: int) -> JobOutcome:
        logger.info(f"Starting job for post {job.post_id} (max {max_attempts} attempts)")

        while job.attempt < max_attempts:
            result = self._attempt(job)

            if result is not None and not result.claimed:
                logger.info(f"Post {job.post_id} is owned by another run, skipping")
                return JobOutcome.SKIPPED

            if result is not None and result.success:
                record_attempt(success=True)
                logger.info(f"Post {job.post_id} completed on attempt {job.attempt + 1}")
                return JobOutcome.COMPLETED

            record_attempt(success=False)
            job.attempt += 1
            if result is not None:
                job.last_error = result.error

            if (
                result is not None
                and result.validation_failed
                and not self.config.retry_validation_failures
            ):
                reason = (result.error or "").replace("Validation failed: ", "", 1)
                self._persist_terminal_failure(job, validation_not_retried_message(reason))
                return JobOutcome.FAILED

            if job.attempt < max_attempts:
                delay = self.config.calculate_delay(job.attempt)
                logger.warning(
                    f"Attempt {job.attempt}/{max_attempts} for post {job.post_id} failed: "
                    f"{job.last_error}. Retrying in {delay:.1f}s"
                )
                self.sleep(delay)

        logger.error(f"Post {job.post_id} failed after {max_attempts} attempts: {job.last_error}")
        self._persist_terminal_failure(job, exhausted_message(max_attempts))
        return JobOutcome.FAILED

    def _attempt(self, job: Job) -> Optional[PipelineResult]:
        """Run one attempt. A raised exception counts as a failed attempt."""
        bind_job_context(attempt=job.attempt + 1)
        try:
            return self.pipeline.run(job)
        except Exception as e:
            logger.exception(f"Attempt {job.attempt + 1} for post {job.post_id} raised")
            job.last_error = str(e) or e.__class__.__name__
            return None

    def _persist_terminal_failure(self, job: Job, message: str) -> None:
        if job.claimed_at is None:
            # The post was never moved to processing, leave its status alone
            record_unrecorded_failure("unclaimed")
            logger.error(
                f"Post {job.post_id} failed without ever being claimed, status left unchanged: "
                f"{job.last_error}"
            )
            return
        try:
            self.repository.mark_failed(job.post_id, message)
        except Exception as e:
            record_unrecorded_failure("store_error")
            log_error(logger, f"Failed to persist terminal failure for post {job.post_id}", exception=e)
