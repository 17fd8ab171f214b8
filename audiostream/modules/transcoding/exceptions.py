"""Pipeline exceptions.

Each stage failure maps to one subclass of PipelineError, so callers can tell
what broke without parsing messages.
"""

from typing import Optional


class PipelineError(Exception):
    """Base error for a failed pipeline stage."""

    stage: str = "pipeline"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage


class DownloadError(PipelineError):
    """Raised when the raw audio cannot be fetched."""

    stage = "download"


class AudioValidationError(PipelineError):
    """Raised when the downloaded file is not usable audio."""

    stage = "validate"
    PREFIX = "Validation failed: "

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"{self.PREFIX}{reason}")


class TranscodeError(PipelineError):
    """Raised when ffmpeg or ffprobe fails."""

    stage = "transcode"


class UploadError(PipelineError):
    """Raised when an artifact cannot be uploaded."""

    stage = "upload"


class PersistError(PipelineError):
    """Raised when the result cannot be written to the post."""

    stage = "persist"
