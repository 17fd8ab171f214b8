"""API Router for processing triggers and post status."""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from audiostream.core.database import DocumentNotFoundError
from audiostream.modules.job.service import ProcessingService, get_processing_service
from audiostream.modules.job.source import JobSource
from audiostream.modules.job.tasks import enqueue_post
from audiostream.modules.job.triggers import (
    MSG_NOT_NEEDED,
    MSG_STARTED,
    Enqueue,
    handle_scheduled,
    handle_webhook,
)
from audiostream.modules.post.schemas import PostStatusResponse, ProcessPostResponse

router = APIRouter(tags=["processing"])


def get_service() -> ProcessingService:
    """Dependency to get the ProcessingService instance."""
    return get_processing_service()


def get_job_source(service: ProcessingService = Depends(get_service)) -> JobSource:
    return service.source


def get_enqueue() -> Enqueue:
    """Dependency returning the callable that queues a post."""
    return enqueue_post


# ==================== Triggers ====================

@router.api_route(
    "/triggers/webhook",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
)
async def document_webhook(
    request: Request,
    source: JobSource = Depends(get_job_source),
    enqueue: Enqueue = Depends(get_enqueue),
) -> JSONResponse:
    """Receive a document change event and queue the post if eligible."""
    body = await request.body()
    response = await run_in_threadpool(handle_webhook, request.method, body, source, enqueue)
    return JSONResponse(status_code=response.status_code, content=response.body)


@router.post("/triggers/scheduled")
def scheduled_sweep(
    source: JobSource = Depends(get_job_source),
    enqueue: Enqueue = Depends(get_enqueue),
) -> JSONResponse:
    """Queue every eligible post, one task per post."""
    response = handle_scheduled(source, enqueue)
    return JSONResponse(status_code=response.status_code, content=response.body)


# ==================== Posts ====================

@router.post("/posts/{post_id}/process", response_model=ProcessPostResponse)
def process_post(
    post_id: str,
    service: ProcessingService = Depends(get_service),
    enqueue: Enqueue = Depends(get_enqueue),
) -> JSONResponse:
    """Queue a single post for processing."""
    try:
        job = service.source.for_post(post_id)
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Post not found")

    if job is None:
        content = ProcessPostResponse(post_id=post_id, message=MSG_NOT_NEEDED)
        return JSONResponse(status_code=200, content=content.model_dump())

    task_id = enqueue(post_id)
    content = ProcessPostResponse(post_id=post_id, task_id=task_id, message=MSG_STARTED)
    return JSONResponse(status_code=202, content=content.model_dump())


@router.get("/posts/{post_id}/status", response_model=PostStatusResponse)
def get_post_status(
    post_id: str,
    service: ProcessingService = Depends(get_service),
) -> PostStatusResponse:
    """Get the processing status of a post."""
    try:
        post = service.get_post(post_id)
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Post not found")
    return PostStatusResponse.from_post(post)
