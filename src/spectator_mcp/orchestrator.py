"""Analysis session — staging, resumable upload, indexing poll, and conversation.

One ``AnalysisSession`` owns exactly one MediaSource, at most one remote
file handle, the conversation history, and the transcript. States::

    IDLE → STAGED → UPLOADING → INDEXING → ACTIVE ⇄ CONVERSING
    UPLOADING / INDEXING / CONVERSING → FAILED
    any → IDLE (reset)

Every reset bumps an epoch counter and wakes the indexing poll; results of
operations that finish after a reset are discarded.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum

import httpx
from google.genai import errors as genai_errors
from google.genai import types

from .client import GeminiClient, resolve_api_key
from .config import get_config
from .errors import (
    CaptureError,
    HandshakeError,
    IndexingError,
    InferenceError,
    SessionResetError,
    SessionStateError,
    SpectatorError,
    TransmissionError,
)
from .evidence import FrameCapturer, extract_directives, render_display_text
from .evidence.directives import EvidenceDirective, Timestamp
from .models.media import FileState, MediaSource, RemoteFileHandle
from .models.transcript import EvidenceImage, Transcript, TranscriptEntry
from .prompts.analysis import ANALYSIS_MODES, format_prompt
from .upload import fetch_file_state, initiate_upload, transmit_bytes

logger = logging.getLogger(__name__)

NO_RESPONSE = "No Response"


class SessionState(str, Enum):
    IDLE = "IDLE"
    STAGED = "STAGED"
    UPLOADING = "UPLOADING"
    INDEXING = "INDEXING"
    ACTIVE = "ACTIVE"
    CONVERSING = "CONVERSING"
    FAILED = "FAILED"


_STAGEABLE = {SessionState.IDLE, SessionState.STAGED, SessionState.ACTIVE, SessionState.FAILED}


def _reply_text(response: types.GenerateContentResponse) -> str:
    """User-visible text of the first candidate, thinking parts stripped."""
    candidates = response.candidates or []
    content = candidates[0].content if candidates else None
    parts = (content.parts or []) if content else []
    text_parts = [p.text for p in parts if p.text and not getattr(p, "thought", False)]
    return "\n".join(text_parts) if text_parts else NO_RESPONSE


class AnalysisSession:
    """The session aggregate: one operator, one video, one conversation."""

    def __init__(
        self,
        session_id: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.session_id = session_id
        self.state = SessionState.IDLE
        self.source: MediaSource | None = None
        self.handle: RemoteFileHandle | None = None
        self.history: list[types.Content] = []
        self.transcript = Transcript()
        self._transport = transport
        self._capturer: FrameCapturer | None = None
        self._epoch = 0
        self._reset_event = asyncio.Event()
        self.created_at = datetime.now()
        self.last_active = self.created_at

    # ── state helpers ──────────────────────────────────────────────────────

    @property
    def turn_count(self) -> int:
        return len(self.history) // 2

    def _require(self, *allowed: SessionState, action: str) -> None:
        if self.state not in allowed:
            names = "/".join(s.value for s in allowed)
            raise SessionStateError(f"Cannot {action} in state {self.state.value} (requires {names})")

    def _check_epoch(self, epoch: int) -> None:
        if epoch != self._epoch:
            raise SessionResetError("Session was reset while the operation was in flight")

    def _detach_capturer(self) -> None:
        capturer, self._capturer = self._capturer, None
        if capturer is not None:
            capturer.close()

    def _report(self, prefix: str, exc: Exception) -> None:
        self.transcript.system(f"{prefix}: {exc}")

    # ── lifecycle ──────────────────────────────────────────────────────────

    def stage(self, source: MediaSource) -> None:
        """Install *source* as the live media; clears handle and history."""
        self._require(*_STAGEABLE, action="stage media")
        self._detach_capturer()
        self.source = source
        self.handle = None
        self.history = []
        self._capturer = FrameCapturer(source)
        self.state = SessionState.STAGED
        self.transcript.system(
            f"Data buffered [{source.size_mb:.1f}MB] from {source.display_name}. Ready to ingest."
        )
        logger.info("Session %s staged %s (%s)", self.session_id, source.display_name, source.content_hash)

    def reset(self) -> None:
        """Drop media, handle and history; wake any pending poll."""
        self._epoch += 1
        self._reset_event.set()
        self._reset_event = asyncio.Event()
        self._detach_capturer()
        self.source = None
        self.handle = None
        self.history = []
        self.state = SessionState.IDLE
        self.transcript.system("--- SESSION CLEARED ---")
        logger.info("Session %s reset", self.session_id)

    # ── upload + indexing ──────────────────────────────────────────────────

    async def upload(self) -> RemoteFileHandle:
        """Run the three-phase resumable upload for the staged media.

        Raises:
            HandshakeError: Upload initiation rejected.
            TransmissionError: Byte transfer rejected.
        """
        self._require(SessionState.STAGED, action="upload")
        cfg = get_config()
        source = self.source
        epoch = self._epoch
        self.state = SessionState.UPLOADING
        self.transcript.system("Initializing resumable upload...")
        try:
            api_key = resolve_api_key()
            async with httpx.AsyncClient(
                transport=self._transport, timeout=cfg.http_timeout_seconds,
            ) as http:
                upload_url = await initiate_upload(
                    http,
                    api_key=api_key,
                    base_url=cfg.api_base_url,
                    mime_type=source.mime_type,
                    size=source.size_bytes,
                    display_name=cfg.upload_display_name,
                )
                self._check_epoch(epoch)
                handle = await transmit_bytes(http, upload_url, source.data, source.mime_type)
            self._check_epoch(epoch)
        except SessionResetError:
            raise
        except ValueError as exc:
            self.state = SessionState.FAILED
            err = HandshakeError(str(exc))
            self._report("CRITICAL FAILURE", err)
            raise err from exc
        except (HandshakeError, TransmissionError) as exc:
            if epoch == self._epoch:
                self.state = SessionState.FAILED
                self._report("CRITICAL FAILURE", exc)
            raise

        self.handle = handle
        self.state = SessionState.INDEXING
        return handle

    async def await_ready(self, handle: RemoteFileHandle | None = None) -> RemoteFileHandle:
        """Poll until the remote file is ACTIVE.

        Unbounded; a reset wakes the wait and ends the loop without another poll.

        Raises:
            IndexingError: The service reports FAILED or the status check fails.
            SessionResetError: The session was reset while waiting.
        """
        handle = handle or self.handle
        if handle is None:
            raise SessionStateError("No uploaded file to wait for — upload first")
        self._require(SessionState.INDEXING, action="wait for indexing")
        interval = get_config().poll_interval_seconds
        epoch = self._epoch
        reset_event = self._reset_event
        client = GeminiClient.get()
        self.transcript.system("Cloud processing (indexing)...")

        while True:
            try:
                state = await fetch_file_state(client, handle)
            except genai_errors.APIError as exc:
                self._check_epoch(epoch)
                self._fail_indexing(handle, IndexingError(f"Status check failed: {exc.message or exc}"))
            except httpx.HTTPError as exc:
                self._check_epoch(epoch)
                self._fail_indexing(handle, IndexingError(f"Status check failed: {exc}"))
            self._check_epoch(epoch)
            handle.state = state
            if state is FileState.ACTIVE:
                self.state = SessionState.ACTIVE
                self.transcript.system("Neural indexing complete.")
                logger.info("Session %s file %s active", self.session_id, handle.name)
                return handle
            if state is FileState.FAILED:
                self._fail_indexing(handle, IndexingError(f"Video indexing failed: {handle.name}"))
            logger.debug("Session %s file %s still %s", self.session_id, handle.name, state.value)
            try:
                await asyncio.wait_for(reset_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
            raise SessionResetError("Session was reset while waiting for indexing")

    def _fail_indexing(self, handle: RemoteFileHandle, exc: IndexingError) -> None:
        handle.state = FileState.FAILED
        self.handle = None
        self.state = SessionState.FAILED
        self._report("CRITICAL FAILURE", exc)
        raise exc

    async def prepare(self, mode: str | None = None) -> TranscriptEntry | None:
        """Upload, wait for indexing, then optionally run an analysis mode."""
        task = None
        if mode:
            task = ANALYSIS_MODES.get(mode)
            if task is None:
                allowed = ", ".join(sorted(ANALYSIS_MODES))
                raise ValueError(f"Unknown analysis mode '{mode}'. Allowed: {allowed}")
        handle = await self.upload()
        await self.await_ready(handle)
        if task is None:
            return None
        return await self.analyze(task, record_prompt=False)

    # ── conversation ───────────────────────────────────────────────────────

    def _outgoing_turn(self, text: str) -> types.Content:
        parts = [types.Part(text=format_prompt(text))]
        if not self.history:
            parts.insert(
                0,
                types.Part(
                    file_data=types.FileData(
                        file_uri=self.handle.uri, mime_type=self.handle.mime_type,
                    )
                ),
            )
        return types.Content(role="user", parts=parts)

    async def converse(self, text: str) -> str:
        """Send one operator turn and return the raw model reply.

        Raises:
            InferenceError: The service reported an error; the file stays usable
                unless the service says it no longer exists.
            SessionStateError: Not ACTIVE, or another turn is in flight.
        """
        if not text or not text.strip():
            raise ValueError("Prompt must not be empty")
        self._require(SessionState.ACTIVE, action="converse")
        epoch = self._epoch
        user_content = self._outgoing_turn(text)
        contents = list(self.history) + [user_content]
        self.state = SessionState.CONVERSING
        try:
            client = GeminiClient.get()
            response = await client.aio.models.generate_content(
                model=get_config().model,
                contents=contents,
            )
        except genai_errors.APIError as exc:
            self._check_epoch(epoch)
            err = InferenceError(exc.message or str(exc))
            gone = exc.code == 404 and await self._file_gone(client)
            self._check_epoch(epoch)
            if gone:
                self.handle = None
                self.state = SessionState.FAILED
            else:
                self.state = SessionState.ACTIVE
            raise err from exc
        except httpx.HTTPError as exc:
            self._check_epoch(epoch)
            self.state = SessionState.ACTIVE
            raise InferenceError(f"Inference request failed: {exc}") from exc
        except BaseException:
            if epoch == self._epoch:
                self.state = SessionState.ACTIVE
            raise

        self._check_epoch(epoch)
        reply = _reply_text(response)
        self.history.append(user_content)
        self.history.append(types.Content(role="model", parts=[types.Part(text=reply)]))
        self.state = SessionState.ACTIVE
        return reply

    async def _file_gone(self, client) -> bool:
        """Confirm with the file service that the handle no longer resolves.

        A 404 from generation can also mean an unknown model; only a failed
        lookup of the file itself invalidates the handle.
        """
        if self.handle is None:
            return True
        try:
            state = await fetch_file_state(client, self.handle)
        except genai_errors.APIError as exc:
            return exc.code == 404
        except httpx.HTTPError as exc:
            logger.warning("Could not verify file %s after 404: %s", self.handle.name, exc)
            return False
        return state is FileState.FAILED

    async def analyze(self, prompt: str, *, record_prompt: bool = True) -> TranscriptEntry:
        """Converse, then illustrate the reply with evidence frames.

        Directives are captured one at a time in textual order; a failed
        capture is noted on the entry and does not stop the rest.
        """
        if not prompt or not prompt.strip():
            raise ValueError("Prompt must not be empty")
        if record_prompt:
            self.transcript.add("operator", prompt)
        try:
            reply = await self.converse(prompt)
        except SpectatorError as exc:
            self._report("Inference Error", exc)
            raise

        entry = self.transcript.add("model", reply, render_display_text(reply))
        for directive in extract_directives(reply):
            try:
                image = await self._capture(entry, directive)
            except CaptureError as exc:
                logger.warning("Capture %s failed: %s", directive.timestamp, exc)
                entry.capture_errors.append(f"{directive.timestamp}: {exc}")
                continue
            entry.evidence.append(image)
        return entry

    async def _capture(self, entry: TranscriptEntry, directive: EvidenceDirective) -> EvidenceImage:
        data = await self.capture_frame(directive.timestamp, zoom=directive.zoom)
        return EvidenceImage(
            entry_id=entry.entry_id,
            index=len(entry.evidence),
            kind=directive.kind.value,
            timestamp=str(directive.timestamp),
            data=data,
        )

    async def capture_frame(self, timestamp: Timestamp, *, zoom: bool) -> bytes:
        """Annotated JPEG of the live media at *timestamp*."""
        if self._capturer is None:
            raise CaptureError("No media buffered — stage a video before capturing evidence")
        return await self._capturer.capture(timestamp, zoom=zoom)

    def close(self) -> None:
        """Release the decode context (used on eviction and shutdown)."""
        self._reset_event.set()
        self._detach_capturer()
