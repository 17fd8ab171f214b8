"""Tests for object keys and the storage backends."""

import io

import httpx
import pytest
from botocore.exceptions import ClientError
from hypothesis import given, settings, strategies as st

from audiostream.core.storage import (
    AppwriteStorage,
    LocalStorage,
    S3Storage,
    StorageConfig,
    StorageError,
    object_key,
)


class TestObjectKey:

    def test_short_keys_are_readable(self) -> None:
        assert object_key("p1", "mp3") == "p1-mp3"
        assert object_key("p1", "seg003") == "p1-seg003"

    def test_invalid_characters_replaced(self) -> None:
        assert object_key("a b/c", "mp3") == "a_b_c-mp3"

    def test_long_keys_are_hashed(self) -> None:
        key = object_key("x" * 40, "seg001")
        assert len(key) == 36
        assert key == object_key("x" * 40, "seg001")
        assert key != object_key("x" * 40, "seg002")

    def test_leading_symbol_is_hashed(self) -> None:
        key = object_key("_p1", "mp3")
        assert key[0].isalnum()

    @given(
        post_id=st.text(min_size=1, max_size=80),
        artifact=st.sampled_from(["mp3", "m3u8", "seg000", "seg999"]),
        max_length=st.integers(min_value=16, max_value=64),
    )
    @settings(max_examples=100)
    def test_keys_fit_backend_limits(self, post_id, artifact, max_length) -> None:
        key = object_key(post_id, artifact, max_length)
        assert 0 < len(key) <= max_length
        assert key[0].isalnum()
        assert key == object_key(post_id, artifact, max_length)


class TestLocalStorage:

    @pytest.fixture
    def local(self, tmp_path) -> LocalStorage:
        return LocalStorage(StorageConfig(
            backend="local",
            local_path=str(tmp_path / "store"),
            local_base_url="http://files.test/",
        ))

    def test_put_get_delete(self, local) -> None:
        object_id = local.put(b"data", "track.mp3", key="p1-mp3")
        assert object_id == "p1-mp3"
        assert local.get("p1-mp3") == b"data"
        assert local.exists("p1-mp3")
        assert local.delete("p1-mp3")
        assert not local.delete("p1-mp3")

    def test_put_replaces_existing_key(self, local) -> None:
        local.put(b"old", "a.mp3", key="k")
        local.put(b"new", "a.mp3", key="k")
        assert local.get("k") == b"new"

    def test_random_ids_without_key(self, local) -> None:
        first = local.put(b"a", "a.ts")
        second = local.put(b"a", "a.ts")
        assert first != second
        assert first.endswith("-a.ts")

    def test_missing_object_raises(self, local) -> None:
        with pytest.raises(StorageError):
            local.get("nope")

    def test_public_url_prefers_cdn(self, tmp_path) -> None:
        base = LocalStorage(StorageConfig(backend="local", local_path=str(tmp_path),
                                          local_base_url="http://files.test/"))
        cdn = LocalStorage(StorageConfig(backend="local", local_path=str(tmp_path),
                                         cdn_domain="cdn.test"))
        assert base.public_url("k") == "http://files.test/k"
        assert cdn.public_url("k") == "https://cdn.test/k"


class FakeAppwrite:
    """MockTransport handler emulating the Appwrite files API."""

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []
        self.counter = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        prefix = "/v1/storage/buckets/audio/files"
        assert path.startswith(prefix)
        rest = path[len(prefix):].strip("/")

        if request.method == "POST":
            return self._upload(request)
        file_id = rest.split("/")[0]
        if file_id not in self.files:
            return httpx.Response(404, json={"message": "File not found"})
        if request.method == "DELETE":
            del self.files[file_id]
            return httpx.Response(204)
        if rest.endswith("/download"):
            return httpx.Response(200, content=self.files[file_id])
        return httpx.Response(200, json={"$id": file_id})

    def _upload(self, request: httpx.Request) -> httpx.Response:
        body = request.read()
        continued = request.headers.get("x-appwrite-id")
        if continued:
            file_id = continued
        else:
            file_id = body.split(b'name="fileId"\r\n\r\n', 1)[1].split(b"\r\n", 1)[0].decode()
            if file_id == "unique()":
                self.counter += 1
                file_id = f"gen{self.counter}"
        self.files[file_id] = self.files.get(file_id, b"") + b"x"
        return httpx.Response(201, json={"$id": file_id})


class TestAppwriteStorage:

    @pytest.fixture
    def api(self) -> FakeAppwrite:
        return FakeAppwrite()

    @pytest.fixture
    def appwrite(self, api) -> AppwriteStorage:
        client = httpx.Client(
            base_url="https://cloud.test/v1",
            transport=httpx.MockTransport(api),
        )
        return AppwriteStorage(client, "https://cloud.test/v1/", "proj", "audio")

    def test_put_with_key_replaces_existing(self, appwrite, api) -> None:
        api.files["p1-mp3"] = b"old"
        assert appwrite.put(b"new", "track_p1.mp3", key="p1-mp3") == "p1-mp3"
        methods = [request.method for request in api.requests]
        assert methods == ["GET", "DELETE", "POST"]

    def test_put_without_key_uses_generated_id(self, appwrite) -> None:
        assert appwrite.put(b"data", "a.ts") == "gen1"

    def test_large_upload_is_chunked(self, appwrite, api, monkeypatch) -> None:
        monkeypatch.setattr(AppwriteStorage, "CHUNK_SIZE", 4)
        file_id = appwrite.put(b"0123456789", "big.mp3", key="big")

        uploads = [request for request in api.requests if request.method == "POST"]
        assert file_id == "big"
        assert [r.headers["Content-Range"] for r in uploads] == [
            "bytes 0-3/10", "bytes 4-7/10", "bytes 8-9/10",
        ]
        assert "x-appwrite-id" not in uploads[0].headers
        assert all(r.headers["x-appwrite-id"] == "big" for r in uploads[1:])

    def test_get_missing_raises_with_message(self, appwrite) -> None:
        with pytest.raises(StorageError, match="File not found"):
            appwrite.get("missing")

    def test_delete_missing_returns_false(self, appwrite) -> None:
        assert not appwrite.delete("missing")

    def test_transport_errors_wrapped(self) -> None:
        def broken(request):
            raise httpx.ConnectError("refused", request=request)

        client = httpx.Client(base_url="https://cloud.test/v1", transport=httpx.MockTransport(broken))
        with pytest.raises(StorageError, match="Storage request failed"):
            AppwriteStorage(client, "https://cloud.test/v1", "proj", "audio").get("x")

    def test_public_url(self, appwrite) -> None:
        assert appwrite.public_url("p1-mp3") == (
            "https://cloud.test/v1/storage/buckets/audio/files/p1-mp3/view?project=proj"
        )


class FakeS3Client:

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[Key] = Body
        self.content_types[Key] = ContentType

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[Key])}

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "404"}}, "HeadObject")
        return {}

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)


class TestS3Storage:

    @pytest.fixture
    def s3(self) -> S3Storage:
        config = StorageConfig(backend="s3", bucket="media", region="eu-west-1")
        return S3Storage(config, client=FakeS3Client())

    def test_round_trip_with_content_type(self, s3) -> None:
        s3.put(b"data", "track.m3u8", key="p1-m3u8", content_type="application/vnd.apple.mpegurl")
        assert s3.get("p1-m3u8") == b"data"
        assert s3._client.content_types["p1-m3u8"] == "application/vnd.apple.mpegurl"

    def test_missing_objects(self, s3) -> None:
        assert not s3.exists("nope")
        assert not s3.delete("nope")
        with pytest.raises(StorageError):
            s3.get("nope")

    def test_public_urls(self) -> None:
        aws = S3Storage(StorageConfig(backend="s3", bucket="media", region="eu-west-1"))
        minio = S3Storage(StorageConfig(backend="minio", bucket="media",
                                        endpoint_url="http://minio:9000/"))
        assert aws.public_url("k") == "https://media.s3.eu-west-1.amazonaws.com/k"
        assert minio.public_url("k") == "http://minio:9000/media/k"
