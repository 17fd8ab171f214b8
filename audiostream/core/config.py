"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

from functools import lru_cache
from typing import ClassVar, Optional

from pydantic_settings import BaseSettings


class ConfigurationError(Exception):
    """Raised when required configuration is missing."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "Audiostream Processor"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Appwrite - REQUIRED
    APPWRITE_ENDPOINT: str = ""
    APPWRITE_PROJECT_ID: str = ""
    APPWRITE_API_KEY: str = ""
    APPWRITE_DATABASE_ID: str = ""
    APPWRITE_COLLECTION_ID_POST: str = ""
    APPWRITE_BUCKET_ID: str = ""
    APPWRITE_TIMEOUT_SECONDS: float = 60.0

    # Redis (Celery broker + claim lock)
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = ""
    CELERY_RESULT_BACKEND: str = ""

    # Scheduling
    POLL_INTERVAL_MS: int = 60000
    SCAN_PAGE_SIZE: int = 100

    # Retry policy
    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_BASE_DELAY_MS: int = 5000
    RETRY_MAX_DELAY_MS: int = 300000
    RETRY_VALIDATION_FAILURES: bool = True

    # Claiming
    CLAIM_LOCK_BACKEND: str = "redis"  # redis, local
    CLAIM_LOCK_TTL_SECONDS: int = 30
    STALE_CLAIM_SECONDS: int = 3600

    # Storage Configuration
    # STORAGE_BACKEND: appwrite, s3, minio, local
    STORAGE_BACKEND: str = "appwrite"
    DETERMINISTIC_STORAGE_KEYS: bool = True

    # Local Storage (when STORAGE_BACKEND=local)
    LOCAL_STORAGE_PATH: str = "./storage"
    LOCAL_STORAGE_BASE_URL: Optional[str] = None

    # S3/MinIO/Compatible Storage (when STORAGE_BACKEND=s3 or minio)
    STORAGE_BUCKET: str = ""
    STORAGE_REGION: str = ""
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""
    STORAGE_ENDPOINT_URL: Optional[str] = None  # Required for MinIO
    STORAGE_USE_SSL: bool = True
    CDN_DOMAIN: Optional[str] = None

    # Transcoding
    WORK_DIR: str = "./temp"
    SEGMENT_DIRNAME: str = "segments"
    RAW_AUDIO_EXTENSION: str = "wav"
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    FFMPEG_TIMEOUT_SECONDS: int = 0  # 0 disables the timeout
    MP3_BITRATE_KBPS: int = 192
    HLS_BITRATE_KBPS: int = 128
    HLS_SEGMENT_SECONDS: int = 10
    MAX_AUDIO_DURATION_SECONDS: float = 4 * 60 * 60

    # Progress reporting
    PROGRESS_TRACKING_ENABLED: bool = True
    PROGRESS_WEBHOOK_URL: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = (
        "APPWRITE_ENDPOINT",
        "APPWRITE_PROJECT_ID",
        "APPWRITE_API_KEY",
        "APPWRITE_DATABASE_ID",
        "APPWRITE_COLLECTION_ID_POST",
        "APPWRITE_BUCKET_ID",
    )

    def missing_required(self) -> list[str]:
        """Return the names of required settings that are empty."""
        return [name for name in self.REQUIRED_FIELDS if not getattr(self, name)]

    def ensure_required(self) -> None:
        """Raise ConfigurationError if any required setting is missing."""
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

    @property
    def broker_url(self) -> str:
        return self.CELERY_BROKER_URL or self.REDIS_URL

    @property
    def result_backend(self) -> str:
        return self.CELERY_RESULT_BACKEND or self.REDIS_URL


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()


settings = get_settings()
