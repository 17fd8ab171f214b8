"""Polling worker.

Scans for eligible posts every ``POLL_INTERVAL_MS`` and processes them one
at a time in this process, without Celery::

    python -m audiostream.worker          # poll forever
    python -m audiostream.worker --once   # single sweep
"""

import argparse
import logging
import sys
import time
from typing import Callable, Optional

from dotenv import load_dotenv

from audiostream.core.config import ConfigurationError, Settings, get_settings
from audiostream.core.logging import setup_logging
from audiostream.modules.job.service import ProcessingService, build_processing_service

logger = logging.getLogger("audiostream.worker")


def run_sweep(service: ProcessingService) -> int:
    """Run one scan. Errors are logged so the next interval still runs.

    Returns:
        int: Number of posts processed
    """
    try:
        outcomes = service.run_scan()
    except Exception:
        logger.exception("Sweep failed")
        return 0
    if outcomes:
        summary = ", ".join(f"{post_id}={outcome.value}" for post_id, outcome in outcomes.items())
        logger.info(f"Sweep finished: {summary}")
    return len(outcomes)


def poll(
    service: ProcessingService,
    interval_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
    max_sweeps: Optional[int] = None,
) -> None:
    """Run sweeps forever, or ``max_sweeps`` times, waiting between them."""
    sweeps = 0
    while max_sweeps is None or sweeps < max_sweeps:
        run_sweep(service)
        sweeps += 1
        if max_sweeps is None or sweeps < max_sweeps:
            sleep(interval_seconds)


def main(argv: Optional[list[str]] = None, settings: Optional[Settings] = None) -> int:
    parser = argparse.ArgumentParser(description="Audiostream polling worker")
    parser.add_argument("--once", action="store_true", help="run a single sweep and exit")
    args = parser.parse_args(argv)

    load_dotenv()
    settings = settings or get_settings()
    setup_logging(
        level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
        json_format=settings.LOG_JSON,
    )

    missing = settings.missing_required()
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        return 1

    try:
        service = build_processing_service(settings)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    interval = settings.POLL_INTERVAL_MS / 1000.0
    logger.info(f"Worker started, polling every {interval:.0f}s")
    try:
        poll(service, interval, max_sweeps=1 if args.once else None)
    except KeyboardInterrupt:
        logger.info("Worker stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
