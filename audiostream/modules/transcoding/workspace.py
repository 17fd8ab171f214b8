"""Local working directory for pipeline runs.

All files of a run share the ``track_{post_id}`` prefix, so runs for
different posts never collide and a re-run of the same post overwrites its
previous files.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

SEGMENT_EXTENSION = ".ts"


class TempWorkspace:
    """Working directory with a nested segment directory."""

    def __init__(
        self,
        root: PathLike,
        segment_dirname: str = "segments",
        raw_extension: str = "wav",
    ):
        self.root = Path(root)
        self.segment_dir = self.root / segment_dirname
        self.raw_extension = raw_extension.lstrip(".")

    def ensure(self) -> None:
        """Create the work and segment directories if missing."""
        self.segment_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def prefix(post_id: str) -> str:
        safe_id = post_id.replace("/", "_").replace("\\", "_")
        return f"track_{safe_id}"

    def raw_path(self, post_id: str) -> Path:
        return self.root / f"{self.prefix(post_id)}.{self.raw_extension}"

    def compressed_path(self, post_id: str) -> Path:
        return self.root / f"{self.prefix(post_id)}.mp3"

    def playlist_path(self, post_id: str) -> Path:
        return self.root / f"{self.prefix(post_id)}.m3u8"

    def remote_playlist_path(self, post_id: str) -> Path:
        return self.root / f"{self.prefix(post_id)}_remote.m3u8"

    def segment_pattern(self, post_id: str) -> Path:
        """ffmpeg output pattern for HLS segments."""
        return self.segment_dir / f"{self.prefix(post_id)}_%03d{SEGMENT_EXTENSION}"

    def list_segments(self, post_id: str) -> list[Path]:
        """Return this post's segment files, sorted by name."""
        if not self.segment_dir.is_dir():
            return []
        name_pattern = re.compile(
            rf"{re.escape(self.prefix(post_id))}_\d+{re.escape(SEGMENT_EXTENSION)}"
        )
        return sorted(
            path for path in self.segment_dir.iterdir()
            if path.is_file() and name_pattern.fullmatch(path.name)
        )

    def cleanup(self, paths: Iterable[PathLike]) -> int:
        """Delete the given files, best effort.

        Missing files are skipped. Errors are logged and never raised.

        Returns:
            int: Number of files removed
        """
        removed = 0
        for raw in paths:
            path = Path(raw)
            try:
                if not path.exists():
                    continue
                path.unlink()
                removed += 1
            except OSError as e:
                logger.error(f"Failed to remove temporary file {path}: {e}")
        if removed:
            logger.debug(f"Removed {removed} temporary files")
        return removed
