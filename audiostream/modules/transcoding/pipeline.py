"""Transcoding pipeline for one post.

Stages run strictly in order: claim, download, validate, compress, upload
MP3, segment, upload segments, rewrite manifest, upload manifest, persist.
Local files are removed after every run, whatever its outcome.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional
from urllib.parse import urlparse

from audiostream.core.config import Settings
from audiostream.core.database import DocumentStoreError
from audiostream.core.logging import log_error
from audiostream.core.metrics import observe_stage
from audiostream.core.storage import StorageBackend, StorageError, object_key
from audiostream.modules.job.models import Job
from audiostream.modules.post.models import Post
from audiostream.modules.post.repository import PostRepository
from audiostream.modules.transcoding.exceptions import (
    AudioValidationError,
    DownloadError,
    PersistError,
    PipelineError,
    TranscodeError,
    UploadError,
)
from audiostream.modules.transcoding.ffmpeg import TranscodingEngine, validate_audio
from audiostream.modules.transcoding.playlist import rewrite_manifest
from audiostream.modules.transcoding.progress import ProgressReporter, ProgressStep
from audiostream.modules.transcoding.workspace import TempWorkspace

logger = logging.getLogger(__name__)

MP3_CONTENT_TYPE = "audio/mpeg"
PLAYLIST_CONTENT_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_CONTENT_TYPE = "video/mp2t"


@dataclass
class PipelineConfig:
    """Fixed encoding parameters and upload policy."""
    mp3_bitrate_kbps: int = 192
    hls_bitrate_kbps: int = 128
    hls_segment_seconds: int = 10
    max_audio_duration_seconds: float = 4 * 60 * 60
    deterministic_keys: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineConfig":
        return cls(
            mp3_bitrate_kbps=settings.MP3_BITRATE_KBPS,
            hls_bitrate_kbps=settings.HLS_BITRATE_KBPS,
            hls_segment_seconds=settings.HLS_SEGMENT_SECONDS,
            max_audio_duration_seconds=settings.MAX_AUDIO_DURATION_SECONDS,
            deterministic_keys=settings.DETERMINISTIC_STORAGE_KEYS,
        )


@dataclass
class PipelineResult:
    """Outcome of one pipeline run."""
    post_id: str
    success: bool
    claimed: bool = True
    error: Optional[str] = None
    validation_failed: bool = False
    mp3_url: Optional[str] = None
    m3u8_url: Optional[str] = None
    segment_ids: list[str] = field(default_factory=list)
    streaming_urls: list[str] = field(default_factory=list)


def extract_file_id(audio_url: str) -> Optional[str]:
    """Extract the storage file id from a raw-audio reference.

    The id is the path segment following ``files``, e.g.
    ``.../buckets/b/files/abc123/view?project=p`` gives ``abc123``. A bare
    reference without any path is taken as the id itself.
    """
    if not audio_url:
        return None
    path = urlparse(audio_url).path if "://" in audio_url else audio_url
    parts = [part for part in path.split("/") if part]
    if "files" in parts:
        index = parts.index("files")
        return parts[index + 1] if index + 1 < len(parts) else None
    if "/" not in audio_url and "?" not in audio_url:
        return audio_url
    return None


class TranscodePipeline:
    """Runs the ordered transcode stages for one post."""

    def __init__(
        self,
        repository: PostRepository,
        storage: StorageBackend,
        engine: TranscodingEngine,
        workspace: TempWorkspace,
        config: Optional[PipelineConfig] = None,
        progress: Optional[ProgressReporter] = None,
    ):
        self.repository = repository
        self.storage = storage
        self.engine = engine
        self.workspace = workspace
        self.config = config or PipelineConfig()
        self.progress = progress

    def run(self, job: Job) -> PipelineResult:
        """Run every stage for the job's post.

        Stage failures are returned as a failed PipelineResult after the
        failure was recorded on the post. Only an error while claiming
        propagates.
        """
        post = job.post

        claimed_at = self.repository.claim(post.id, owned_since=job.claimed_at)
        if claimed_at is None:
            return PipelineResult(post_id=post.id, success=False, claimed=False)
        job.claimed_at = claimed_at

        artifacts: list[Path] = []
        try:
            result = self._execute(post, artifacts)
            logger.info(f"Post {post.id} processed: {len(result.segment_ids)} segments")
            return result
        except PipelineError as e:
            logger.error(f"Post {post.id} failed at {e.stage}: {e.message}")
            self._record_failure(post.id, e.message)
            return PipelineResult(
                post_id=post.id,
                success=False,
                error=e.message,
                validation_failed=isinstance(e, AudioValidationError),
            )
        except Exception as e:
            logger.exception(f"Unexpected error processing post {post.id}")
            message = str(e) or e.__class__.__name__
            self._record_failure(post.id, message)
            return PipelineResult(post_id=post.id, success=False, error=message)
        finally:
            artifacts.extend(self.workspace.list_segments(post.id))
            self.workspace.cleanup(artifacts)

    def _execute(self, post: Post, artifacts: list[Path]) -> PipelineResult:
        self._report(post.id, ProgressStep.INITIALIZE)
        self.workspace.ensure()
        # Leftover segments from an earlier run would be picked up below
        self.workspace.cleanup(self.workspace.list_segments(post.id))

        with self._stage("download"):
            raw_path = self.workspace.raw_path(post.id)
            artifacts.append(raw_path)
            self._download(post, raw_path)
        self._report(post.id, ProgressStep.DOWNLOAD)

        with self._stage("validate"):
            self._validate(raw_path)

        with self._stage("compress"):
            compressed_path = self.workspace.compressed_path(post.id)
            artifacts.append(compressed_path)
            output = self.engine.compress_mp3(
                str(raw_path), str(compressed_path), self.config.mp3_bitrate_kbps
            )
            if not output.success:
                raise TranscodeError(
                    f"MP3 compression failed: {output.error_message}", stage="compress"
                )
        self._report(post.id, ProgressStep.CONVERT)

        with self._stage("upload_mp3"):
            mp3_id = self._upload(compressed_path, post.id, "mp3", MP3_CONTENT_TYPE)
            mp3_url = self.storage.public_url(mp3_id)

        with self._stage("segment"):
            playlist_path = self.workspace.playlist_path(post.id)
            artifacts.append(playlist_path)
            output = self.engine.segment_hls(
                str(compressed_path),
                str(playlist_path),
                str(self.workspace.segment_pattern(post.id)),
                self.config.hls_bitrate_kbps,
                self.config.hls_segment_seconds,
            )
            if not output.success:
                raise TranscodeError(
                    f"HLS segmentation failed: {output.error_message}", stage="segment"
                )
            segments = self.workspace.list_segments(post.id)
            artifacts.extend(segments)
            if not segments:
                raise TranscodeError("HLS segmentation produced no segments", stage="segment")
        self._report(post.id, ProgressStep.SEGMENT)

        segment_ids: list[str] = []
        streaming_urls: list[str] = []
        url_by_name: dict[str, str] = {}
        with self._stage("upload_segments"):
            for index, segment_path in enumerate(segments):
                segment_id = self._upload(
                    segment_path, post.id, f"seg{index:03d}", SEGMENT_CONTENT_TYPE
                )
                url = self.storage.public_url(segment_id)
                segment_ids.append(segment_id)
                streaming_urls.append(url)
                url_by_name[segment_path.name] = url
        self._report(post.id, ProgressStep.UPLOAD_SEGMENTS)

        with self._stage("rewrite_manifest"):
            remote_playlist_path = self.workspace.remote_playlist_path(post.id)
            artifacts.append(remote_playlist_path)
            try:
                manifest = playlist_path.read_text(encoding="utf-8")
                remote_playlist_path.write_text(
                    rewrite_manifest(manifest, url_by_name), encoding="utf-8"
                )
            except OSError as e:
                raise TranscodeError(f"Failed to rewrite manifest: {e}", stage="manifest") from e

        with self._stage("upload_manifest"):
            manifest_id = self._upload(remote_playlist_path, post.id, "m3u8", PLAYLIST_CONTENT_TYPE)
            m3u8_url = self.storage.public_url(manifest_id)
        self._report(post.id, ProgressStep.CREATE_PLAYLIST)

        with self._stage("persist"):
            try:
                self.repository.mark_completed(
                    post.id,
                    mp3_url=mp3_url,
                    m3u8_url=m3u8_url,
                    segment_ids=segment_ids,
                    streaming_urls=streaming_urls,
                )
            except DocumentStoreError as e:
                raise PersistError(f"Failed to save processing result: {e}") from e
        self._report(post.id, ProgressStep.FINALIZE, status="completed")

        return PipelineResult(
            post_id=post.id,
            success=True,
            mp3_url=mp3_url,
            m3u8_url=m3u8_url,
            segment_ids=segment_ids,
            streaming_urls=streaming_urls,
        )

    def _download(self, post: Post, raw_path: Path) -> None:
        file_id = extract_file_id(post.audio_url or "")
        if not file_id:
            raise DownloadError(f"Could not extract file id from audio_url: {post.audio_url}")
        try:
            data = self.storage.get(file_id)
        except StorageError as e:
            raise DownloadError(f"Failed to download raw audio {file_id}: {e}") from e
        try:
            raw_path.write_bytes(data)
        except OSError as e:
            raise DownloadError(f"Failed to write raw audio: {e}") from e
        logger.info(f"Downloaded {len(data)} bytes for post {post.id}")

    def _validate(self, raw_path: Path) -> None:
        try:
            info = self.engine.probe(str(raw_path))
        except TranscodeError as e:
            raise AudioValidationError(f"unreadable audio ({e.message})") from e
        validate_audio(info, raw_path.stat().st_size, self.config.max_audio_duration_seconds)

    def _upload(self, path: Path, post_id: str, artifact: str, content_type: str) -> str:
        key = None
        if self.config.deterministic_keys:
            key = object_key(post_id, artifact, self.storage.MAX_KEY_LENGTH)
        try:
            return self.storage.put(path.read_bytes(), path.name, key=key, content_type=content_type)
        except (StorageError, OSError) as e:
            raise UploadError(f"Failed to upload {path.name}: {e}") from e

    def _record_failure(self, post_id: str, message: str) -> None:
        try:
            self.repository.mark_failed(post_id, message)
        except Exception as e:
            log_error(logger, f"Failed to record failure for post {post_id}", exception=e)

    def _report(self, post_id: str, step: ProgressStep, status: str = "processing") -> None:
        if self.progress is not None:
            self.progress.report(post_id, step, status=status)

    @contextmanager
    def _stage(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            observe_stage(name, time.perf_counter() - start)
