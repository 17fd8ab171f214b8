"""Processing service.

Wires settings into the document store, storage, claim lock, pipeline and
orchestrator, and exposes the operations the triggers and workers call.
"""

import logging
from functools import lru_cache
from typing import Optional

from audiostream.core.appwrite import create_appwrite_client
from audiostream.core.config import Settings, get_settings
from audiostream.core.database import AppwriteDocumentStore
from audiostream.core.redis import create_claim_lock
from audiostream.core.storage import create_storage
from audiostream.modules.job.models import Job, JobOutcome
from audiostream.modules.job.retry import RetryConfig, RetryOrchestrator
from audiostream.modules.job.source import JobSource
from audiostream.modules.post.models import Post
from audiostream.modules.post.repository import PostRepository
from audiostream.modules.transcoding.ffmpeg import FFmpegEngine, TranscodingEngine
from audiostream.modules.transcoding.pipeline import PipelineConfig, TranscodePipeline
from audiostream.modules.transcoding.progress import ProgressReporter
from audiostream.modules.transcoding.workspace import TempWorkspace

logger = logging.getLogger(__name__)


class ProcessingService:
    """Runs jobs one at a time through the retry orchestrator."""

    def __init__(
        self,
        repository: PostRepository,
        source: JobSource,
        orchestrator: RetryOrchestrator,
    ):
        self.repository = repository
        self.source = source
        self.orchestrator = orchestrator

    def get_post(self, post_id: str) -> Post:
        return self.repository.get(post_id)

    def process_job(self, job: Job) -> JobOutcome:
        return self.orchestrator.run_with_retry(job)

    def process_post(self, post_id: str) -> JobOutcome:
        """Process one post if it is eligible.

        Returns:
            JobOutcome: SKIPPED when the post needs no processing
        """
        job = self.source.for_post(post_id)
        if job is None:
            logger.info(f"Post {post_id} needs no processing")
            return JobOutcome.SKIPPED
        return self.process_job(job)

    def run_scan(self) -> dict[str, JobOutcome]:
        """Scan for eligible posts and process them sequentially, in query order."""
        outcomes: dict[str, JobOutcome] = {}
        for job in self.source.scan():
            outcomes[job.post_id] = self.process_job(job)
        return outcomes


def build_processing_service(
    settings: Settings,
    engine: Optional[TranscodingEngine] = None,
) -> ProcessingService:
    """Build a ProcessingService from settings.

    Raises:
        ConfigurationError: If required settings are missing
    """
    settings.ensure_required()

    client = create_appwrite_client(settings)
    store = AppwriteDocumentStore(
        client,
        database_id=settings.APPWRITE_DATABASE_ID,
        collection_id=settings.APPWRITE_COLLECTION_ID_POST,
    )
    repository = PostRepository(
        store,
        claim_lock=create_claim_lock(settings),
        stale_claim_seconds=settings.STALE_CLAIM_SECONDS,
        page_size=settings.SCAN_PAGE_SIZE,
    )
    pipeline = TranscodePipeline(
        repository=repository,
        storage=create_storage(settings),
        engine=engine or FFmpegEngine(
            ffmpeg_path=settings.FFMPEG_PATH,
            ffprobe_path=settings.FFPROBE_PATH,
            timeout_seconds=settings.FFMPEG_TIMEOUT_SECONDS,
        ),
        workspace=TempWorkspace(
            settings.WORK_DIR,
            segment_dirname=settings.SEGMENT_DIRNAME,
            raw_extension=settings.RAW_AUDIO_EXTENSION,
        ),
        config=PipelineConfig.from_settings(settings),
        progress=ProgressReporter(
            repository,
            enabled=settings.PROGRESS_TRACKING_ENABLED,
            webhook_url=settings.PROGRESS_WEBHOOK_URL,
        ),
    )
    orchestrator = RetryOrchestrator(
        pipeline,
        repository,
        config=RetryConfig.from_settings(settings),
    )
    return ProcessingService(repository, JobSource(repository), orchestrator)


@lru_cache
def get_processing_service() -> ProcessingService:
    """Get the process-wide ProcessingService."""
    return build_processing_service(get_settings())
