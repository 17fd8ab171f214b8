"""Shared test doubles for the document store, storage and transcoding engine."""

import json
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from audiostream.core.database import DocumentNotFoundError, DocumentStore, DocumentStoreError
from audiostream.core.redis import LocalClaimLock
from audiostream.core.storage import StorageBackend, StorageError
from audiostream.modules.job.retry import RetryConfig, RetryOrchestrator
from audiostream.modules.post.repository import PostRepository
from audiostream.modules.transcoding.ffmpeg import MediaInfo, TranscodeOutput, TranscodingEngine
from audiostream.modules.transcoding.pipeline import PipelineConfig, TranscodePipeline
from audiostream.modules.transcoding.workspace import TempWorkspace


class FakeDocumentStore(DocumentStore):
    """In-memory document store understanding the queries the service sends."""

    def __init__(self, documents: Optional[list[dict[str, Any]]] = None):
        self.documents: dict[str, dict[str, Any]] = {}
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.list_calls: list[list[str]] = []
        # Return True to make an update raise DocumentStoreError
        self.fail_update: Optional[Callable[[str, dict[str, Any]], bool]] = None
        for document in documents or []:
            self.add(document)

    def add(self, document: dict[str, Any]) -> None:
        self.documents[document["$id"]] = dict(document)

    def get_document(self, document_id: str) -> dict[str, Any]:
        if document_id not in self.documents:
            raise DocumentNotFoundError(document_id)
        return dict(self.documents[document_id])

    def update_document(self, document_id: str, data: dict[str, Any]) -> dict[str, Any]:
        if self.fail_update is not None and self.fail_update(document_id, data):
            raise DocumentStoreError("update rejected")
        if document_id not in self.documents:
            raise DocumentNotFoundError(document_id)
        self.updates.append((document_id, dict(data)))
        self.documents[document_id].update(data)
        return dict(self.documents[document_id])

    def list_documents(self, queries: Optional[list[str]] = None) -> list[dict[str, Any]]:
        self.list_calls.append(list(queries or []))
        matches = list(self.documents.values())
        limit = None
        cursor = None
        for raw in queries or []:
            query = json.loads(raw)
            method = query["method"]
            if method == "isNotNull":
                matches = [d for d in matches if d.get(query["attribute"]) is not None]
            elif method == "isNull":
                matches = [d for d in matches if d.get(query["attribute"]) is None]
            elif method == "limit":
                limit = query["values"][0]
            elif method == "cursorAfter":
                cursor = query["values"][0]
        if cursor is not None:
            ids = [d["$id"] for d in matches]
            matches = matches[ids.index(cursor) + 1:]
        if limit is not None:
            matches = matches[:limit]
        return [dict(d) for d in matches]

    def updates_for(self, document_id: str) -> list[dict[str, Any]]:
        return [data for doc_id, data in self.updates if doc_id == document_id]


class FakeStorage(StorageBackend):
    """In-memory object store."""

    MAX_KEY_LENGTH = 36

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.names: dict[str, str] = {}
        self.put_calls: list[tuple[str, Optional[str]]] = []
        self.fail_put: Optional[Callable[[str], bool]] = None
        self._counter = 0

    def put(self, data, name, key=None, content_type="application/octet-stream"):
        self.put_calls.append((name, key))
        if self.fail_put is not None and self.fail_put(name):
            raise StorageError(f"upload of {name} rejected")
        if key is None:
            self._counter += 1
            key = f"obj{self._counter}"
        self.objects[key] = bytes(data)
        self.names[key] = name
        return key

    def get(self, object_id):
        if object_id not in self.objects:
            raise StorageError(f"File not found: {object_id}")
        return self.objects[object_id]

    def delete(self, object_id):
        return self.objects.pop(object_id, None) is not None

    def exists(self, object_id):
        return object_id in self.objects

    def public_url(self, object_id):
        return f"https://cdn.test/files/{object_id}"


class FakeEngine(TranscodingEngine):
    """Transcoding engine writing placeholder files instead of running ffmpeg."""

    def __init__(self, segment_count: int = 3, duration: float = 25.0):
        self.segment_count = segment_count
        self.info = MediaInfo(duration=duration, has_audio=True, codec="pcm_s16le")
        self.probe_error: Optional[Exception] = None
        self.compress_error: Optional[str] = None
        self.segment_error: Optional[str] = None
        self.calls: list[str] = []

    def probe(self, input_path):
        self.calls.append("probe")
        if self.probe_error is not None:
            raise self.probe_error
        return self.info

    def compress_mp3(self, input_path, output_path, bitrate_kbps):
        self.calls.append("compress")
        if self.compress_error is not None:
            return TranscodeOutput(success=False, output_path=output_path,
                                   error_message=self.compress_error)
        Path(output_path).write_bytes(b"ID3mp3data")
        return TranscodeOutput(success=True, output_path=output_path, file_size=10)

    def segment_hls(self, input_path, playlist_path, segment_pattern, bitrate_kbps, segment_seconds):
        self.calls.append("segment")
        if self.segment_error is not None:
            return TranscodeOutput(success=False, output_path=playlist_path,
                                   error_message=self.segment_error)
        pattern = Path(segment_pattern)
        lines = [
            "#EXTM3U",
            "#EXT-X-VERSION:3",
            f"#EXT-X-TARGETDURATION:{segment_seconds}",
            "#EXT-X-MEDIA-SEQUENCE:0",
        ]
        for index in range(self.segment_count):
            segment = pattern.parent / (pattern.name % index)
            segment.write_bytes(b"\x47" * 188)
            lines.append(f"#EXTINF:{segment_seconds}.000000,")
            lines.append(f"{pattern.parent.name}/{segment.name}")
        lines.append("#EXT-X-ENDLIST")
        Path(playlist_path).write_text("\n".join(lines) + "\n")
        return TranscodeOutput(success=True, output_path=playlist_path, file_size=100)


def make_post(post_id: str = "post1", **fields: Any) -> dict[str, Any]:
    document = {
        "$id": post_id,
        "trackname": f"Track {post_id}",
        "audio_url": f"https://cloud.test/v1/storage/buckets/audio/files/raw-{post_id}/view?project=p",
        "mp3_url": None,
    }
    document.update(fields)
    return document


@pytest.fixture
def post_factory() -> Callable[..., dict[str, Any]]:
    return make_post


@pytest.fixture
def store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def repository(store: FakeDocumentStore) -> PostRepository:
    return PostRepository(store, claim_lock=LocalClaimLock(), stale_claim_seconds=3600, page_size=2)


@pytest.fixture
def workspace(tmp_path: Path) -> TempWorkspace:
    return TempWorkspace(tmp_path / "work")


@pytest.fixture
def pipeline(repository, storage, engine, workspace) -> TranscodePipeline:
    return TranscodePipeline(
        repository=repository,
        storage=storage,
        engine=engine,
        workspace=workspace,
        config=PipelineConfig(),
    )


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def orchestrator(pipeline, repository, sleeps) -> RetryOrchestrator:
    return RetryOrchestrator(
        pipeline,
        repository,
        config=RetryConfig(max_attempts=3, initial_delay=5.0, max_delay=300.0),
        sleep=sleeps.append,
    )


@pytest.fixture
def seed(store: FakeDocumentStore, storage: FakeStorage) -> Callable[..., dict[str, Any]]:
    """Add a post to the store with its raw audio uploaded."""

    def _seed(post_id: str = "post1", **fields: Any) -> dict[str, Any]:
        document = make_post(post_id, **fields)
        store.add(document)
        storage.objects[f"raw-{post_id}"] = b"RIFFfakewav"
        return document

    return _seed
