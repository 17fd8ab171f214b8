"""Trigger handlers for document change webhooks and scheduled sweeps.

Handlers are plain functions returning a status code and a JSON body, so
they can be mounted on FastAPI or called from any other runner.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from audiostream.modules.job.source import JobSource, is_create_or_update, is_document_event

logger = logging.getLogger(__name__)

# Queues a post for processing and returns a task id
Enqueue = Callable[[str], Optional[str]]

MSG_METHOD_NOT_ALLOWED = "Method Not Allowed"
MSG_INVALID_PAYLOAD = "Invalid webhook payload"
MSG_SKIP_EVENT = "Skipping non-create/update event"
MSG_NOT_NEEDED = "No processing needed for this post"
MSG_STARTED = "Post processing started"
MSG_INTERNAL_ERROR = "Internal server error"
MSG_NONE_FOUND = "No unprocessed posts found"


@dataclass
class TriggerResponse:
    status_code: int
    body: dict[str, Any]

    def to_envelope(self) -> dict[str, Any]:
        """Serverless-style ``{statusCode, body}`` envelope."""
        return {"statusCode": self.status_code, "body": json.dumps(self.body)}


def _error(status_code: int, error: str, details: Optional[str] = None) -> TriggerResponse:
    body: dict[str, Any] = {"error": error}
    if details is not None:
        body["details"] = details
    return TriggerResponse(status_code, body)


def parse_webhook_body(raw: Union[bytes, str, dict, None]) -> Optional[tuple[str, str]]:
    """Extract ``(event, document_id)`` from a webhook body.

    Returns:
        The pair, or None if the body is malformed or not a document event
    """
    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None
    if not isinstance(raw, dict):
        return None

    event = raw.get("event")
    payload = raw.get("payload")
    if not isinstance(event, str) or not is_document_event(event):
        return None
    if not isinstance(payload, dict):
        return None
    document_id = payload.get("$id")
    if not isinstance(document_id, str) or not document_id:
        return None
    return event, document_id


def handle_webhook(
    method: str,
    raw_body: Union[bytes, str, dict, None],
    source: JobSource,
    enqueue: Enqueue,
) -> TriggerResponse:
    """Handle a document change notification.

    Args:
        method: HTTP method of the request
        raw_body: Request body, raw or already decoded
        source: Job source used to re-check the document
        enqueue: Callable that queues a post for processing

    Returns:
        TriggerResponse with one of the fixed webhook messages
    """
    if method.upper() != "POST":
        return _error(405, MSG_METHOD_NOT_ALLOWED)

    parsed = parse_webhook_body(raw_body)
    if parsed is None:
        return _error(400, MSG_INVALID_PAYLOAD)
    event, document_id = parsed

    if not is_create_or_update(event):
        return TriggerResponse(200, {"message": MSG_SKIP_EVENT})

    try:
        job = source.from_event(event, document_id)
        if job is None:
            return TriggerResponse(200, {"message": MSG_NOT_NEEDED})

        task_id = enqueue(job.post_id)
        logger.info(f"Queued post {job.post_id} from webhook (task {task_id})")
        return TriggerResponse(200, {"message": MSG_STARTED})
    except Exception as e:
        logger.exception(f"Error processing webhook for post {document_id}")
        return _error(500, MSG_INTERNAL_ERROR, str(e))


def handle_scheduled(source: JobSource, enqueue: Enqueue) -> TriggerResponse:
    """Queue every eligible post, one task per post.

    A failure to queue one post is reported in its result entry and does
    not stop the sweep.
    """
    try:
        jobs = source.scan()
    except Exception as e:
        logger.exception("Scheduled scan failed")
        return _error(500, MSG_INTERNAL_ERROR, str(e))

    if not jobs:
        return TriggerResponse(200, {"message": MSG_NONE_FOUND, "results": []})

    results = []
    for job in jobs:
        try:
            enqueue(job.post_id)
            results.append({"postId": job.post_id, "status": "processing_initiated"})
        except Exception as e:
            logger.error(f"Error initiating processing for post {job.post_id}: {e}")
            results.append({"postId": job.post_id, "status": "error", "message": str(e)})

    return TriggerResponse(200, {
        "message": f"Initiated processing for {len(jobs)} posts",
        "results": results,
    })
