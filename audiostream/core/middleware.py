"""FastAPI middleware for metrics, correlation IDs and request logging."""

import logging
import re
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from audiostream.core.metrics import (
    HTTP_REQUESTS_TOTAL,
    HTTP_REQUEST_DURATION_SECONDS,
)
from audiostream.core.logging import set_correlation_id, clear_correlation_id

_POST_PATH = re.compile(r"/posts/(?P<post_id>[^/]+)")


def post_id_from_path(path: str) -> Optional[str]:
    match = _POST_PATH.search(path)
    return match.group("post_id") if match else None


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for collecting HTTP request metrics."""

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        method = request.method
        path = self._normalize_path(request.url.path)

        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time
            HTTP_REQUEST_DURATION_SECONDS.labels(
                method=method, endpoint=path
            ).observe(duration)
            HTTP_REQUESTS_TOTAL.labels(
                method=method, endpoint=path, status_code=str(status_code)
            ).inc()

    def _normalize_path(self, path: str) -> str:
        """Collapse post IDs to a placeholder to bound label cardinality."""
        return _POST_PATH.sub("/posts/{id}", path)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware for managing correlation IDs.

    Uses ``X-Correlation-ID`` when the caller sends one, then the Appwrite
    webhook id, then a fresh UUID.
    """

    CORRELATION_ID_HEADER = "X-Correlation-ID"
    FALLBACK_HEADERS = ("X-Appwrite-Webhook-Id",)

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        correlation_id = request.headers.get(self.CORRELATION_ID_HEADER)
        for header in self.FALLBACK_HEADERS:
            if correlation_id:
                break
            correlation_id = request.headers.get(header)
        correlation_id = correlation_id or str(uuid.uuid4())

        set_correlation_id(correlation_id)

        try:
            response = await call_next(request)
            response.headers[self.CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs trigger and post requests. Probe endpoints are not logged."""

    SKIP_PATHS = frozenset(("/health", "/metrics"))

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = logging.getLogger("audiostream.requests")

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        path = request.url.path
        if path in self.SKIP_PATHS:
            return await call_next(request)

        context = {
            "method": request.method,
            "path": path,
            "client_ip": request.client.host if request.client else None,
        }
        post_id = post_id_from_path(path)
        if post_id:
            context["request_post_id"] = post_id

        start_time = time.perf_counter()
        self.logger.info("Request started", extra=context)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            self.logger.error(
                "Request failed",
                extra={
                    **context,
                    "duration_ms": round(duration * 1000, 2),
                    "error": str(e),
                },
                exc_info=True,
            )
            raise

        duration = time.perf_counter() - start_time
        self.logger.info(
            "Request completed",
            extra={
                **context,
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            }
        )
        return response


__all__ = [
    "MetricsMiddleware",
    "CorrelationIdMiddleware",
    "RequestLoggingMiddleware",
    "post_id_from_path",
]
