"""HLS playlist parsing and segment URI rewriting.

A media playlist is line oriented: tag lines start with ``#EXT``, comments
with ``#``, and every other non-blank line is a segment URI. Rewriting only
ever replaces whole URI lines, so a segment name that happens to be a
substring of another line is never touched.
"""

import posixpath
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping, Optional


class LineKind(str, Enum):
    TAG = "tag"
    COMMENT = "comment"
    URI = "uri"
    BLANK = "blank"


@dataclass(frozen=True)
class PlaylistLine:
    """One playlist line, split from its line terminator."""
    content: str
    ending: str = ""

    @property
    def kind(self) -> LineKind:
        stripped = self.content.strip()
        if not stripped:
            return LineKind.BLANK
        if stripped.startswith("#EXT"):
            return LineKind.TAG
        if stripped.startswith("#"):
            return LineKind.COMMENT
        return LineKind.URI


@dataclass
class Playlist:
    lines: list[PlaylistLine] = field(default_factory=list)

    @property
    def uris(self) -> list[str]:
        return [line.content.strip() for line in self.lines if line.kind == LineKind.URI]


def parse_playlist(text: str) -> Playlist:
    """Split playlist text into lines, keeping each line's terminator."""
    lines = []
    for raw in text.splitlines(keepends=True):
        content = raw.rstrip("\r\n")
        lines.append(PlaylistLine(content=content, ending=raw[len(content):]))
    return Playlist(lines=lines)


def serialize_playlist(playlist: Playlist) -> str:
    return "".join(line.content + line.ending for line in playlist.lines)


def resolve_uri(uri: str, mapping: Mapping[str, str]) -> Optional[str]:
    """Find the replacement for a URI line.

    The exact URI is tried first, then its basename, since ffmpeg writes
    segment paths relative to the playlist directory.
    """
    if uri in mapping:
        return mapping[uri]
    return mapping.get(posixpath.basename(uri))


def rewrite_segment_uris(playlist: Playlist, mapping: Mapping[str, str]) -> Playlist:
    """Replace mapped segment URI lines; every other line is kept as is."""
    rewritten = []
    for line in playlist.lines:
        if line.kind == LineKind.URI:
            target = resolve_uri(line.content.strip(), mapping)
            if target is not None:
                line = replace(line, content=target)
        rewritten.append(line)
    return Playlist(lines=rewritten)


def rewrite_manifest(text: str, mapping: Mapping[str, str]) -> str:
    """Rewrite segment references in playlist text to their mapped URLs.

    Args:
        text: Playlist text as produced by ffmpeg
        mapping: Local segment filename to public URL

    Returns:
        Playlist text with mapped segment lines replaced
    """
    return serialize_playlist(rewrite_segment_uris(parse_playlist(text), mapping))
