"""Media models — staged sources, resolution results, and remote file handles.

These are in-memory state, not tool I/O, so they are plain dataclasses.
"""

from __future__ import annotations

import hashlib
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

MediaOrigin = Literal["local", "network"]


@dataclass(frozen=True)
class MediaSource:
    """The buffered video under analysis. Replaced wholesale, never mutated."""

    data: bytes = field(repr=False)
    mime_type: str
    display_name: str
    origin: MediaOrigin

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)

    @property
    def content_hash(self) -> str:
        """SHA-256 of the payload, truncated to 16 hex chars."""
        return hashlib.sha256(self.data).hexdigest()[:16]


class MediaBytes:
    """Direct resolution result: an incrementally consumable byte stream.

    ``aclose()`` is idempotent and releases the underlying connection or
    subprocess whether iteration finished, stopped early, or never started.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        content_type: str,
        *,
        content_length: int | None = None,
        filename: str = "",
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._chunks = chunks
        self.content_type = content_type
        self.content_length = content_length
        self.filename = filename
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        """Yield chunks, closing the source when the consumer stops."""
        try:
            async for chunk in self._chunks:
                yield chunk
        finally:
            await self.aclose()

    async def read(self) -> bytes:
        """Buffer the whole stream into memory."""
        buf = bytearray()
        async for chunk in self.iter_chunks():
            buf.extend(chunk)
        return bytes(buf)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            await self._on_close()


@dataclass(frozen=True)
class MediaRedirect:
    """Redirect resolution result: a direct, unauthenticated media URL."""

    url: str


ResolutionResult = MediaBytes | MediaRedirect


class FileState(str, Enum):
    """Readiness of an uploaded file on the inference service."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"

    @classmethod
    def from_service(cls, raw: object) -> FileState:
        """Normalize a service-reported state; anything in progress is PENDING."""
        value = str(getattr(raw, "value", raw) or "").upper()
        if value.startswith("FILESTATE."):
            value = value.split(".", 1)[1]
        if value == "ACTIVE":
            return cls.ACTIVE
        if value == "FAILED":
            return cls.FAILED
        return cls.PENDING


@dataclass
class RemoteFileHandle:
    """File issued by the inference service after upload."""

    name: str
    uri: str
    mime_type: str
    state: FileState = FileState.PENDING
