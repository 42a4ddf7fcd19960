"""Staging — turn a local path or a network URL into a buffered MediaSource."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from .errors import MediaUnsupportedError
from .models.media import MediaSource
from .platforms import VIDEO_EXTENSION_MIME
from .resolver import Resolver

logger = logging.getLogger(__name__)

DEFAULT_NETWORK_MIME = "video/mp4"


def _video_mime_type(path: Path) -> str:
    """Return MIME type for a video file, or raise if unsupported."""
    ext = path.suffix.lower()
    mime = VIDEO_EXTENSION_MIME.get(ext)
    if not mime:
        allowed = ", ".join(sorted(VIDEO_EXTENSION_MIME))
        raise MediaUnsupportedError(f"Unsupported video extension '{ext}'. Supported: {allowed}")
    return mime


def _validate_video_path(file_path: str) -> tuple[Path, str]:
    """Validate path exists and has supported extension. Returns (path, mime)."""
    p = Path(file_path).expanduser().resolve()
    if not p.exists():
        raise FileNotFoundError(f"Video file not found: {file_path}")
    if not p.is_file():
        raise MediaUnsupportedError(f"Not a file: {file_path}")
    mime = _video_mime_type(p)
    return p, mime


def _network_mime(content_type: str) -> str:
    """Use the served type unless it is missing or obviously not media."""
    mime = content_type.split(";", 1)[0].strip().lower()
    if not mime or mime.startswith("text/") or mime == "application/octet-stream":
        return DEFAULT_NETWORK_MIME
    return mime


async def stage_local_file(file_path: str) -> MediaSource:
    """Buffer a local video file.

    Raises:
        FileNotFoundError: If the path does not exist.
        MediaUnsupportedError: If the path is not a file or has an unknown extension.
    """
    p, mime = _validate_video_path(file_path)
    data = await asyncio.to_thread(p.read_bytes)
    if not data:
        raise MediaUnsupportedError(f"Video file is empty: {file_path}")
    source = MediaSource(data=data, mime_type=mime, display_name=p.name, origin="local")
    logger.info("Staged %s (%.1f MB, %s)", p.name, source.size_mb, mime)
    return source


async def stage_network_url(url: str, resolver: Resolver) -> MediaSource:
    """Resolve *url* and buffer the resulting stream.

    Raises:
        BlockedError: If the source platform rejected resolution.
        ResolutionError: If no strategy produced media.
        MediaUnsupportedError: If the resolved stream is empty.
    """
    media = await resolver.open(url)
    data = await media.read()
    if not data:
        raise MediaUnsupportedError(f"Resolved stream for {url} contained no bytes")
    source = MediaSource(
        data=data,
        mime_type=_network_mime(media.content_type),
        display_name=media.filename or "network_stream.mp4",
        origin="network",
    )
    logger.info("Staged network stream %s (%.1f MB, %s)", url, source.size_mb, source.mime_type)
    return source
