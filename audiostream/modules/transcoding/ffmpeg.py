"""FFmpeg transcoding utilities.

Wraps ffprobe and ffmpeg behind a blocking engine interface: probing an
input, compressing it to MP3 and segmenting it for HLS.
"""

import json
import os
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from audiostream.modules.transcoding.exceptions import (
    AudioValidationError,
    TranscodeError,
)


@dataclass
class MediaInfo:
    """Probe result for an input file."""
    duration: float
    has_audio: bool
    codec: Optional[str] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    bit_rate: Optional[int] = None
    format_name: Optional[str] = None

    @classmethod
    def from_ffprobe(cls, data: dict) -> "MediaInfo":
        """Build MediaInfo from ``ffprobe -print_format json`` output."""
        fmt = data.get("format", {})
        audio_stream = next(
            (s for s in data.get("streams", []) if s.get("codec_type") == "audio"),
            None,
        )

        duration = _to_float(fmt.get("duration"))
        if not duration and audio_stream:
            duration = _to_float(audio_stream.get("duration"))

        return cls(
            duration=duration or 0.0,
            has_audio=audio_stream is not None,
            codec=audio_stream.get("codec_name") if audio_stream else None,
            sample_rate=_to_int(audio_stream.get("sample_rate")) if audio_stream else None,
            channels=audio_stream.get("channels") if audio_stream else None,
            bit_rate=_to_int(fmt.get("bit_rate")),
            format_name=fmt.get("format_name"),
        )


@dataclass
class TranscodeOutput:
    """Result of transcoding operation."""
    success: bool
    output_path: str
    file_size: int = 0
    error_message: Optional[str] = None


def _to_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class TranscodingEngine(ABC):
    """Blocking transcoding engine used by the pipeline."""

    @abstractmethod
    def probe(self, input_path: str) -> MediaInfo:
        """Inspect a media file.

        Raises:
            TranscodeError: If the file cannot be probed
        """

    @abstractmethod
    def compress_mp3(self, input_path: str, output_path: str, bitrate_kbps: int) -> TranscodeOutput:
        """Encode ``input_path`` to a constant-bitrate MP3."""

    @abstractmethod
    def segment_hls(
        self,
        input_path: str,
        playlist_path: str,
        segment_pattern: str,
        bitrate_kbps: int,
        segment_seconds: int,
    ) -> TranscodeOutput:
        """Produce a single-rendition HLS playlist with MPEG-TS segments."""


class FFmpegEngine(TranscodingEngine):
    """TranscodingEngine that shells out to ffmpeg and ffprobe."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        timeout_seconds: Optional[float] = None,
    ):
        """Initialize engine.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
            timeout_seconds: Per-command timeout, None for no limit
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout_seconds = timeout_seconds or None

    def probe(self, input_path: str) -> MediaInfo:
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            input_path,
        ]

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout_seconds,
            )
            return MediaInfo.from_ffprobe(json.loads(result.stdout))
        except (subprocess.CalledProcessError, json.JSONDecodeError) as e:
            raise TranscodeError(f"ffprobe could not read {input_path}: {e}") from e
        except (OSError, subprocess.TimeoutExpired) as e:
            raise TranscodeError(f"ffprobe failed: {e}") from e

    def build_mp3_command(self, input_path: str, output_path: str, bitrate_kbps: int) -> list[str]:
        """Build FFmpeg command for MP3 compression."""
        return [
            self.ffmpeg_path,
            "-y",  # Overwrite output
            "-i", input_path,
            "-vn",  # Drop embedded cover art
            "-c:a", "libmp3lame",
            "-b:a", f"{bitrate_kbps}k",
            output_path,
        ]

    def build_hls_command(
        self,
        input_path: str,
        playlist_path: str,
        segment_pattern: str,
        bitrate_kbps: int,
        segment_seconds: int,
    ) -> list[str]:
        """Build FFmpeg command for HLS segmentation."""
        return [
            self.ffmpeg_path,
            "-y",
            "-i", input_path,
            "-vn",
            "-c:a", "aac",
            "-b:a", f"{bitrate_kbps}k",
            "-f", "hls",
            "-hls_time", str(segment_seconds),
            "-hls_list_size", "0",
            "-hls_segment_type", "mpegts",
            "-hls_segment_filename", segment_pattern,
            playlist_path,
        ]

    def _run(self, cmd: list[str], output_path: str) -> TranscodeOutput:
        try:
            process = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            return TranscodeOutput(
                success=False,
                output_path=output_path,
                error_message=f"ffmpeg timed out after {self.timeout_seconds}s",
            )
        except OSError as e:
            return TranscodeOutput(
                success=False,
                output_path=output_path,
                error_message=str(e),
            )

        if process.returncode != 0:
            return TranscodeOutput(
                success=False,
                output_path=output_path,
                error_message=_tail(process.stderr),
            )

        file_size = os.path.getsize(output_path) if os.path.exists(output_path) else 0
        return TranscodeOutput(success=True, output_path=output_path, file_size=file_size)

    def compress_mp3(self, input_path: str, output_path: str, bitrate_kbps: int) -> TranscodeOutput:
        return self._run(self.build_mp3_command(input_path, output_path, bitrate_kbps), output_path)

    def segment_hls(
        self,
        input_path: str,
        playlist_path: str,
        segment_pattern: str,
        bitrate_kbps: int,
        segment_seconds: int,
    ) -> TranscodeOutput:
        cmd = self.build_hls_command(
            input_path, playlist_path, segment_pattern, bitrate_kbps, segment_seconds
        )
        return self._run(cmd, playlist_path)


def _tail(stderr: Optional[str], lines: int = 20) -> str:
    """Keep the end of ffmpeg's stderr, where the actual error is."""
    if not stderr:
        return "ffmpeg exited with an error"
    return "\n".join(stderr.strip().splitlines()[-lines:])


def validate_audio(info: MediaInfo, file_size: int, max_duration_seconds: float) -> None:
    """Check that a probed file is usable audio.

    Args:
        info: Probe result
        file_size: Size of the file in bytes
        max_duration_seconds: Longest accepted duration

    Raises:
        AudioValidationError: If the file is empty, has no audio stream,
            or its duration is zero or too long
    """
    if file_size <= 0:
        raise AudioValidationError("downloaded file is empty")
    if not info.has_audio:
        raise AudioValidationError("no audio stream found")
    if info.duration <= 0:
        raise AudioValidationError("audio duration is zero")
    if info.duration > max_duration_seconds:
        raise AudioValidationError(
            f"audio duration {info.duration:.1f}s exceeds limit of {max_duration_seconds:.0f}s"
        )
