"""Universal storage module supporting multiple backends.

Supports: Appwrite storage buckets, S3/MinIO and the local filesystem.
Every backend stores opaque bytes under an object id and can produce a public
URL for it.
"""

import hashlib
import logging
import os
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import boto3
import httpx
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from audiostream.core.appwrite import create_appwrite_client, error_message
from audiostream.core.config import Settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a storage operation fails."""


_KEY_INVALID_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def object_key(post_id: str, artifact: str, max_length: int = 36) -> str:
    """Build a deterministic object id for one artifact of a post.

    Args:
        post_id: Post identifier
        artifact: Artifact suffix (e.g. "mp3", "m3u8", "seg003")
        max_length: Longest id the backend accepts

    Returns:
        ``{post_id}-{artifact}``, or a stable hash of it when too long
    """
    key = _KEY_INVALID_CHARS.sub("_", f"{post_id}-{artifact}")
    if len(key) <= max_length and key[0].isalnum():
        return key
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:max_length]


@dataclass
class StorageConfig:
    """Storage configuration."""
    backend: str  # appwrite, local, s3, minio
    bucket: str = ""
    region: str = ""
    access_key: str = ""
    secret_key: str = ""
    endpoint_url: Optional[str] = None
    use_ssl: bool = True
    local_path: str = "./storage"
    local_base_url: Optional[str] = None
    cdn_domain: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageConfig":
        return cls(
            backend=settings.STORAGE_BACKEND,
            bucket=settings.STORAGE_BUCKET,
            region=settings.STORAGE_REGION,
            access_key=settings.STORAGE_ACCESS_KEY,
            secret_key=settings.STORAGE_SECRET_KEY,
            endpoint_url=settings.STORAGE_ENDPOINT_URL,
            use_ssl=settings.STORAGE_USE_SSL,
            local_path=settings.LOCAL_STORAGE_PATH,
            local_base_url=settings.LOCAL_STORAGE_BASE_URL,
            cdn_domain=settings.CDN_DOMAIN,
        )


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    # Longest object id the backend accepts
    MAX_KEY_LENGTH = 255

    @abstractmethod
    def put(
        self,
        data: bytes,
        name: str,
        key: Optional[str] = None,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Store bytes and return the object id.

        When ``key`` is given the object is stored under that id, replacing
        any existing object. Otherwise a fresh id is allocated.
        """
        pass

    @abstractmethod
    def get(self, object_id: str) -> bytes:
        """Fetch the bytes of an object."""
        pass

    @abstractmethod
    def delete(self, object_id: str) -> bool:
        """Delete an object. Returns False if it did not exist."""
        pass

    @abstractmethod
    def exists(self, object_id: str) -> bool:
        """Check if an object exists."""
        pass

    @abstractmethod
    def public_url(self, object_id: str) -> str:
        """Get the public URL of an object."""
        pass


class AppwriteStorage(StorageBackend):
    """Appwrite storage bucket backend."""

    MAX_KEY_LENGTH = 36
    CHUNK_SIZE = 5 * 1024 * 1024

    def __init__(
        self,
        client: httpx.Client,
        endpoint: str,
        project_id: str,
        bucket_id: str,
    ):
        self.client = client
        self.endpoint = endpoint.rstrip("/")
        self.project_id = project_id
        self.bucket_id = bucket_id

    @property
    def _files_path(self) -> str:
        return f"/storage/buckets/{self.bucket_id}/files"

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise StorageError(f"Storage request failed: {e}") from e

    def put(
        self,
        data: bytes,
        name: str,
        key: Optional[str] = None,
        content_type: str = "application/octet-stream",
    ) -> str:
        if key is not None and self.exists(key):
            self.delete(key)
        file_id = key or "unique()"

        total = len(data)
        if total <= self.CHUNK_SIZE:
            return self._upload_chunk(file_id, name, data, content_type)

        # Chunks after the first must carry the id Appwrite assigned
        uploaded_id: Optional[str] = None
        for start in range(0, total, self.CHUNK_SIZE):
            chunk = data[start:start + self.CHUNK_SIZE]
            end = start + len(chunk) - 1
            headers = {"Content-Range": f"bytes {start}-{end}/{total}"}
            if uploaded_id:
                headers["x-appwrite-id"] = uploaded_id
            uploaded_id = self._upload_chunk(
                uploaded_id or file_id, name, chunk, content_type, headers
            )
        return uploaded_id

    def _upload_chunk(
        self,
        file_id: str,
        name: str,
        chunk: bytes,
        content_type: str,
        headers: Optional[dict[str, str]] = None,
    ) -> str:
        response = self._request(
            "POST",
            self._files_path,
            data={"fileId": file_id},
            files={"file": (name, chunk, content_type)},
            headers=headers,
        )
        if response.is_error:
            raise StorageError(f"Failed to upload {name}: {error_message(response)}")
        return response.json()["$id"]

    def get(self, object_id: str) -> bytes:
        response = self._request("GET", f"{self._files_path}/{object_id}/download")
        if response.is_error:
            raise StorageError(
                f"Failed to download file {object_id}: {error_message(response)}"
            )
        return response.content

    def delete(self, object_id: str) -> bool:
        response = self._request("DELETE", f"{self._files_path}/{object_id}")
        if response.status_code == 404:
            return False
        if response.is_error:
            raise StorageError(
                f"Failed to delete file {object_id}: {error_message(response)}"
            )
        return True

    def exists(self, object_id: str) -> bool:
        response = self._request("GET", f"{self._files_path}/{object_id}")
        if response.status_code == 404:
            return False
        if response.is_error:
            raise StorageError(
                f"Failed to look up file {object_id}: {error_message(response)}"
            )
        return True

    def public_url(self, object_id: str) -> str:
        return (
            f"{self.endpoint}/storage/buckets/{self.bucket_id}/files/{object_id}"
            f"/view?project={self.project_id}"
        )


class LocalStorage(StorageBackend):
    """Local filesystem storage backend."""

    def __init__(self, config: StorageConfig):
        self.base_path = Path(config.local_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.base_url = config.local_base_url
        self.cdn_domain = config.cdn_domain

    def _get_full_path(self, key: str) -> Path:
        """Get full path for a key."""
        return self.base_path / key

    def put(
        self,
        data: bytes,
        name: str,
        key: Optional[str] = None,
        content_type: str = "application/octet-stream",
    ) -> str:
        object_id = key or f"{uuid.uuid4().hex}-{Path(name).name}"
        try:
            dest_path = self._get_full_path(object_id)
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            dest_path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to store {name}: {e}") from e
        return object_id

    def get(self, object_id: str) -> bytes:
        try:
            return self._get_full_path(object_id).read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {object_id}: {e}") from e

    def delete(self, object_id: str) -> bool:
        file_path = self._get_full_path(object_id)
        if not file_path.exists():
            return False
        try:
            file_path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to delete {object_id}: {e}") from e
        return True

    def exists(self, object_id: str) -> bool:
        return self._get_full_path(object_id).exists()

    def public_url(self, object_id: str) -> str:
        if self.cdn_domain:
            return f"https://{self.cdn_domain}/{object_id}"
        if self.base_url:
            return f"{self.base_url.rstrip('/')}/{object_id}"
        return self._get_full_path(object_id).absolute().as_uri()


class S3Storage(StorageBackend):
    """S3/MinIO compatible storage backend."""

    MAX_KEY_LENGTH = 1024

    def __init__(self, config: StorageConfig, client=None):
        self.config = config
        self._client = client

    def _get_client(self):
        """Get or create S3 client."""
        if self._client is None:
            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
                "aws_access_key_id": self.config.access_key,
                "aws_secret_access_key": self.config.secret_key,
            }

            # For MinIO or other S3-compatible storage
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                client_kwargs["config"] = BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                )

            if not self.config.use_ssl and self.config.endpoint_url:
                # Allow non-SSL for local MinIO
                client_kwargs["use_ssl"] = False

            self._client = boto3.client(**client_kwargs)

        return self._client

    def put(
        self,
        data: bytes,
        name: str,
        key: Optional[str] = None,
        content_type: str = "application/octet-stream",
    ) -> str:
        object_id = key or f"{uuid.uuid4().hex}-{os.path.basename(name)}"
        try:
            self._get_client().put_object(
                Bucket=self.config.bucket,
                Key=object_id,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to upload {name}: {e}") from e
        return object_id

    def get(self, object_id: str) -> bytes:
        try:
            response = self._get_client().get_object(
                Bucket=self.config.bucket, Key=object_id
            )
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to download {object_id}: {e}") from e

    def delete(self, object_id: str) -> bool:
        if not self.exists(object_id):
            return False
        try:
            self._get_client().delete_object(Bucket=self.config.bucket, Key=object_id)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to delete {object_id}: {e}") from e
        return True

    def exists(self, object_id: str) -> bool:
        try:
            self._get_client().head_object(Bucket=self.config.bucket, Key=object_id)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"Failed to look up {object_id}: {e}") from e

    def public_url(self, object_id: str) -> str:
        if self.config.cdn_domain:
            return f"https://{self.config.cdn_domain}/{object_id}"
        if self.config.endpoint_url:
            return f"{self.config.endpoint_url.rstrip('/')}/{self.config.bucket}/{object_id}"
        return f"https://{self.config.bucket}.s3.{self.config.region}.amazonaws.com/{object_id}"


def create_storage(settings: Settings) -> StorageBackend:
    """Create the storage backend selected by ``STORAGE_BACKEND``."""
    backend_type = settings.STORAGE_BACKEND.lower()

    if backend_type == "appwrite":
        return AppwriteStorage(
            create_appwrite_client(settings),
            endpoint=settings.APPWRITE_ENDPOINT,
            project_id=settings.APPWRITE_PROJECT_ID,
            bucket_id=settings.APPWRITE_BUCKET_ID,
        )
    elif backend_type == "local":
        return LocalStorage(StorageConfig.from_settings(settings))
    elif backend_type in ("s3", "minio", "aws"):
        return S3Storage(StorageConfig.from_settings(settings))
    else:
        raise ValueError(f"Unsupported storage backend: {backend_type}")
