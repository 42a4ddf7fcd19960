"""Frame capture — decode one frame with ffmpeg, annotate it with Pillow.

A ``FrameCapturer`` is the decode context for one MediaSource. It spills the
buffered bytes to a private temp file on first use, probes the duration once,
and serializes seeks with a lock. ``close()`` detaches it: the temp file is
removed, and in-flight and later captures fail with ``CaptureError``.
"""

from __future__ import annotations

import asyncio
import io
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from ..config import get_config
from ..errors import CaptureError
from ..models.media import MediaSource
from ..platforms import VIDEO_EXTENSION_MIME
from .directives import Timestamp

logger = logging.getLogger(__name__)

ZOOM_FRACTION = 0.4

STANDARD_BORDER_COLOR = "#00f0ff"
STANDARD_BORDER_WIDTH = 4
STANDARD_BORDER_INSET = 10

ZOOM_BORDER_COLOR = "red"
ZOOM_BORDER_WIDTH = 5
ZOOM_BORDER_INSET = 20
ZOOM_LABEL_POSITION = (30, 30)
ZOOM_LABEL_SIZE = 30

_MIME_SUFFIX = {mime: ext for ext, mime in VIDEO_EXTENSION_MIME.items()}


def _draw_border(img: Image.Image, color: str, width: int, inset: int) -> None:
    draw = ImageDraw.Draw(img)
    right = max(img.width - 1 - inset, inset)
    bottom = max(img.height - 1 - inset, inset)
    draw.rectangle((inset, inset, right, bottom), outline=color, width=width)


def render_standard(frame: Image.Image) -> Image.Image:
    """Full frame with a plain evidence border."""
    out = frame.convert("RGB")
    _draw_border(out, STANDARD_BORDER_COLOR, STANDARD_BORDER_WIDTH, STANDARD_BORDER_INSET)
    return out


def zoom_box(width: int, height: int) -> tuple[int, int, int, int]:
    """Centered crop box covering ZOOM_FRACTION of each dimension."""
    crop_w = max(1, round(width * ZOOM_FRACTION))
    crop_h = max(1, round(height * ZOOM_FRACTION))
    left = (width - crop_w) // 2
    top = (height - crop_h) // 2
    return left, top, left + crop_w, top + crop_h


def render_zoom(frame: Image.Image, label: str) -> Image.Image:
    """Centered crop scaled back to full size, with border and timestamp label."""
    src = frame.convert("RGB")
    out = src.crop(zoom_box(src.width, src.height)).resize(src.size, Image.Resampling.LANCZOS)
    _draw_border(out, ZOOM_BORDER_COLOR, ZOOM_BORDER_WIDTH, ZOOM_BORDER_INSET)
    font = ImageFont.load_default(size=ZOOM_LABEL_SIZE)
    ImageDraw.Draw(out).text(ZOOM_LABEL_POSITION, label, fill=ZOOM_BORDER_COLOR, font=font)
    return out


def annotate_frame(frame: Image.Image, timestamp: Timestamp, *, zoom: bool) -> Image.Image:
    if zoom:
        return render_zoom(frame, f"ZOOM TARGET // {timestamp}")
    return render_standard(frame)


def encode_jpeg(img: Image.Image, quality: int) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def render_evidence(frame: Image.Image, timestamp: Timestamp, zoom: bool, quality: int) -> bytes:
    """Annotate and encode in one step; runs off the event loop."""
    return encode_jpeg(annotate_frame(frame, timestamp, zoom=zoom), quality)


class FrameCapturer:
    """Decode context bound to a single MediaSource."""

    def __init__(self, source: MediaSource | None) -> None:
        cfg = get_config()
        self._source = source
        self._ffmpeg = cfg.ffmpeg_binary
        self._ffprobe = cfg.ffprobe_binary
        self._jpeg_quality = cfg.jpeg_quality
        self._path: Path | None = None
        self._duration: float | None = None
        self._probed = False
        self._closed = False
        self._lock = asyncio.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    async def capture(self, timestamp: Timestamp, *, zoom: bool) -> bytes:
        """Render the annotated frame at *timestamp* as JPEG bytes.

        Raises:
            CaptureError: No media buffered, decoder detached, offset beyond
                the media duration, no frame could be decoded, or an OS-level
                failure (disk full, decoder not executable) along the way.
        """
        if self._source is None or not self._source.data:
            raise CaptureError("No media buffered — stage a video before capturing evidence")
        try:
            async with self._lock:
                self._ensure_open()
                path = await self._spill()
                duration = await self._probe_duration(path)
                offset = timestamp.total_seconds
                if duration is not None and offset > duration:
                    raise CaptureError(
                        f"Timestamp {timestamp} is beyond the end of the video ({duration:.1f}s)"
                    )
                frame = await self._decode_frame(path, offset)
                self._ensure_open()
            return await asyncio.to_thread(
                render_evidence, frame, timestamp, zoom, self._jpeg_quality,
            )
        except OSError as exc:
            raise CaptureError(f"Capture at {timestamp} failed: {exc}") from exc

    def _ensure_open(self) -> None:
        if self._closed:
            raise CaptureError("Media source was replaced — capture abandoned")

    async def _spill(self) -> Path:
        """Write the buffered media to a temp file once."""
        if self._path is not None:
            return self._path
        suffix = _MIME_SUFFIX.get(self._source.mime_type, ".mp4")
        fd, name = tempfile.mkstemp(prefix="spectator-", suffix=suffix)
        os.close(fd)
        path = Path(name)
        try:
            await asyncio.to_thread(path.write_bytes, self._source.data)
        except OSError:
            path.unlink(missing_ok=True)
            raise
        if self._closed:
            path.unlink(missing_ok=True)
            self._ensure_open()
        self._path = path
        return path

    def _require(self, binary: str) -> None:
        if not shutil.which(binary):
            raise CaptureError(
                f"{binary} not found. Install ffmpeg: brew install ffmpeg (macOS) "
                "or apt install ffmpeg"
            )

    async def _probe_duration(self, path: Path) -> float | None:
        """Duration in seconds from ffprobe, or None if it cannot be determined."""
        if self._probed:
            return self._duration
        self._require(self._ffprobe)
        proc = await asyncio.create_subprocess_exec(
            self._ffprobe,
            "-v", "error",
            "-show_entries", "format=duration",
            "-print_format", "json",
            str(path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        self._probed = True
        if proc.returncode != 0:
            logger.warning("ffprobe failed for %s: %s", path.name, stderr.decode(errors="replace").strip())
            return None
        try:
            self._duration = float(json.loads(stdout)["format"]["duration"])
        except (ValueError, KeyError, TypeError):
            self._duration = None
        return self._duration

    async def _decode_frame(self, path: Path, offset: float) -> Image.Image:
        """Seek to *offset* and decode one frame at native resolution."""
        self._require(self._ffmpeg)
        proc = await asyncio.create_subprocess_exec(
            self._ffmpeg,
            "-v", "error",
            "-ss", f"{offset:.3f}",
            "-i", str(path),
            "-frames:v", "1",
            "-f", "image2pipe",
            "-vcodec", "png",
            "-",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0 or not stdout:
            detail = stderr.decode(errors="replace").strip() or "no frame decoded"
            raise CaptureError(f"Could not decode frame at {offset:.0f}s: {detail}")
        try:
            with Image.open(io.BytesIO(stdout)) as img:
                img.load()
                return img.convert("RGB")
        except OSError as exc:
            raise CaptureError(f"Decoded frame at {offset:.0f}s is unreadable: {exc}") from exc

    def close(self) -> None:
        """Detach from the media and delete the temp file.

        A decode already running keeps its open descriptor; its result is
        discarded by the post-decode check.
        """
        self._closed = True
        if self._path is not None:
            self._path.unlink(missing_ok=True)
            self._path = None
