"""Prometheus metrics for the processor.

Tracks HTTP traffic, job outcomes, attempts and per-stage durations.
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
    multiprocess,
)
import os

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()

# Check if running in multiprocess mode (e.g., with gunicorn)
if "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "audiostream_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)


# ============================================
# Job Metrics
# ============================================
JOBS_TOTAL = Counter(
    "audiostream_jobs_total",
    "Jobs finished, by terminal outcome",
    ["outcome"],
    registry=REGISTRY,
)

JOB_ATTEMPTS_TOTAL = Counter(
    "audiostream_job_attempts_total",
    "Pipeline attempts, by result",
    ["result"],
    registry=REGISTRY,
)

JOBS_IN_PROGRESS = Gauge(
    "audiostream_jobs_in_progress",
    "Jobs currently running in this process",
    registry=REGISTRY,
)

STAGE_DURATION_SECONDS = Histogram(
    "audiostream_stage_duration_seconds",
    "Pipeline stage duration in seconds",
    ["stage"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
    registry=REGISTRY,
)

SCANNED_POSTS_TOTAL = Counter(
    "audiostream_scanned_posts_total",
    "Eligible posts found by scans",
    registry=REGISTRY,
)

UNRECORDED_FAILURES_TOTAL = Counter(
    "audiostream_unrecorded_failures_total",
    "Failed jobs whose failed status was not written to the post",
    ["reason"],
    registry=REGISTRY,
)


def set_app_info(version: str, environment: str) -> None:
    """Set application info metric."""
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })


def record_job_outcome(outcome: str) -> None:
    """Count a finished job (completed, failed, skipped)."""
    JOBS_TOTAL.labels(outcome=outcome).inc()


def record_attempt(success: bool) -> None:
    JOB_ATTEMPTS_TOTAL.labels(result="success" if success else "failure").inc()


def record_unrecorded_failure(reason: str) -> None:
    """Count a failed job that left the post status untouched (unclaimed, store_error)."""
    UNRECORDED_FAILURES_TOTAL.labels(reason=reason).inc()


def observe_stage(stage: str, duration_seconds: float) -> None:
    STAGE_DURATION_SECONDS.labels(stage=stage).observe(duration_seconds)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get Prometheus metrics content type."""
    return CONTENT_TYPE_LATEST
