"""Console tools — stage, upload, ask, capture, and inspect an analysis session."""

from __future__ import annotations

import logging
from typing import Annotated

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from ..errors import SpectatorError, make_tool_error
from ..evidence import Timestamp
from ..models.console import (
    AskResult,
    EvidenceInfo,
    SessionStatus,
    StageResult,
    TranscriptLine,
    UploadResult,
)
from ..models.transcript import EvidenceImage, TranscriptEntry
from ..orchestrator import AnalysisSession
from ..resolver import build_default_resolver
from ..sessions import session_store
from ..staging import stage_local_file, stage_network_url
from ..types import AnalysisMode, MediaUrl, OperatorPrompt, SessionId, TimestampParam, VideoFilePath

logger = logging.getLogger(__name__)

console_server = FastMCP("console")


def _evidence_info(image: EvidenceImage, *, include_image: bool) -> EvidenceInfo:
    return EvidenceInfo(
        label=image.label,
        kind=image.kind,
        timestamp=image.timestamp,
        mime_type=image.mime_type,
        size_bytes=len(image.data),
        data_url=image.data_url() if include_image else "",
    )


def _ask_result(session: AnalysisSession, entry: TranscriptEntry, *, include_images: bool) -> AskResult:
    return AskResult(
        entry_id=entry.entry_id,
        response=entry.display_text,
        raw_response=entry.text,
        evidence=[_evidence_info(img, include_image=include_images) for img in entry.evidence],
        capture_errors=list(entry.capture_errors),
        turn_count=session.turn_count,
    )


def _status(session: AnalysisSession) -> SessionStatus:
    return SessionStatus(
        session_id=session.session_id,
        state=session.state.value,
        media=session.source.display_name if session.source else "",
        file_uri=session.handle.uri if session.handle else "",
        turn_count=session.turn_count,
        transcript_entries=len(session.transcript),
    )


@console_server.tool(
    annotations=ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
    )
)
async def console_stage(
    file_path: VideoFilePath | None = None,
    url: MediaUrl | None = None,
    session_id: Annotated[str | None, Field(
        description="Existing session to re-stage; omit to open a new session",
    )] = None,
) -> dict:
    """Buffer a video into a session, ready for upload.

    Provide exactly one of file_path or url. Network URLs go through the
    resolver: restricted platforms are extracted with yt-dlp, anything else
    is fetched directly. Staging replaces any previous media and clears the
    conversation.

    Args:
        file_path: Path to a local video file.
        url: Public URL of a video or a page hosting one.
        session_id: Session to re-stage instead of opening a new one.

    Returns:
        Dict with session_id, state, and the buffered media details.
    """
    try:
        sources = sum(x is not None for x in (file_path, url))
        if sources != 1:
            raise ValueError("Provide exactly one of: file_path or url")
        session = session_store.get_or_create(session_id)
    except (ValueError, SpectatorError) as exc:
        return make_tool_error(exc)

    try:
        if file_path:
            source = await stage_local_file(file_path)
        else:
            source = await stage_network_url(url, build_default_resolver())
        session.stage(source)
    except (SpectatorError, FileNotFoundError, OSError) as exc:
        session.transcript.system(f"Staging failed: {exc}")
        return make_tool_error(exc)

    return StageResult(
        session_id=session.session_id,
        state=session.state.value,
        display_name=source.display_name,
        mime_type=source.mime_type,
        origin=source.origin,
        size_bytes=source.size_bytes,
        content_hash=source.content_hash,
    ).model_dump()


@console_server.tool(
    annotations=ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
    )
)
async def console_upload(
    session_id: SessionId,
    mode: Annotated[AnalysisMode | None, Field(
        description="Analysis to run as soon as indexing completes",
    )] = None,
    include_images: Annotated[bool, Field(
        description="Inline evidence frames of the initial analysis as data: URLs",
    )] = False,
) -> dict:
    """Upload the staged video and wait until the service has indexed it.

    Waits for as long as indexing takes; console_reset on the same session
    abandons the wait.

    Args:
        session_id: Session ID from console_stage.
        mode: Optional analysis (timeline, threat, ocr, crowd) to run first.
        include_images: Embed evidence frames in the initial analysis.

    Returns:
        Dict with session state, file_uri, and the optional initial analysis.
    """
    try:
        session = session_store.get(session_id)
        entry = await session.prepare(mode)
    except (SpectatorError, ValueError) as exc:
        return make_tool_error(exc)

    return UploadResult(
        session_id=session.session_id,
        state=session.state.value,
        file_uri=session.handle.uri if session.handle else "",
        mime_type=session.handle.mime_type if session.handle else "",
        initial_analysis=(
            _ask_result(session, entry, include_images=include_images) if entry else None
        ),
    ).model_dump()


@console_server.tool(
    annotations=ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
    )
)
async def console_ask(
    session_id: SessionId,
    prompt: OperatorPrompt,
    include_images: Annotated[bool, Field(
        description="Inline evidence frames as data: URLs",
    )] = False,
) -> dict:
    """Ask the analyst about the uploaded video.

    The reply is rendered with capture markers stripped and threats
    highlighted; every [PROOF]/[ZOOM] marker the model emitted becomes an
    annotated evidence frame, captured in order.

    Args:
        session_id: Session ID from console_stage.
        prompt: Question or instruction.
        include_images: Embed evidence frames as data: URLs.

    Returns:
        Dict with response, raw_response, evidence, capture_errors, turn_count.
    """
    try:
        session = session_store.get(session_id)
        entry = await session.analyze(prompt)
    except (SpectatorError, ValueError) as exc:
        return make_tool_error(exc)
    return _ask_result(session, entry, include_images=include_images).model_dump()


@console_server.tool(
    annotations=ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def console_capture(
    session_id: SessionId,
    timestamp: TimestampParam,
    zoom: Annotated[bool, Field(description="Centered 40% crop with label")] = False,
) -> dict:
    """Capture one annotated frame from the staged video on demand.

    Args:
        session_id: Session ID from console_stage.
        timestamp: Offset as MM:SS.
        zoom: Render as a zoom capture instead of a bordered full frame.

    Returns:
        Dict with the evidence entry, including its data: URL.
    """
    try:
        session = session_store.get(session_id)
        ts = Timestamp.parse(timestamp)
        data = await session.capture_frame(ts, zoom=zoom)
    except (SpectatorError, ValueError) as exc:
        return make_tool_error(exc)

    entry = session.transcript.system(f"Manual capture at {ts}")
    image = EvidenceImage(
        entry_id=entry.entry_id,
        index=0,
        kind="zoom-capture" if zoom else "standard-capture",
        timestamp=str(ts),
        data=data,
    )
    entry.evidence.append(image)
    return _evidence_info(image, include_image=True).model_dump()


@console_server.tool(annotations=ToolAnnotations(readOnlyHint=True))
async def console_transcript(
    session_id: SessionId,
    include_images: Annotated[bool, Field(
        description="Inline evidence frames as data: URLs",
    )] = False,
) -> dict:
    """Return the full session transcript in order.

    Args:
        session_id: Session ID from console_stage.
        include_images: Embed evidence frames as data: URLs.

    Returns:
        Dict with session_id and a list of entries.
    """
    try:
        session = session_store.get(session_id)
    except SpectatorError as exc:
        return make_tool_error(exc)
    lines = [
        TranscriptLine(
            entry_id=e.entry_id,
            role=e.role,
            text=e.display_text,
            evidence=[_evidence_info(img, include_image=include_images) for img in e.evidence],
            capture_errors=list(e.capture_errors),
            created_at=e.created_at.isoformat(timespec="seconds"),
        ).model_dump()
        for e in session.transcript.entries
    ]
    return {"session_id": session.session_id, "entries": lines}


@console_server.tool(
    annotations=ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=True,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def console_reset(session_id: SessionId) -> dict:
    """Clear the session's media, uploaded file, and conversation.

    Any upload wait or question still running on the session is abandoned.
    The transcript is kept.

    Args:
        session_id: Session ID from console_stage.

    Returns:
        Dict with the session status after reset.
    """
    try:
        session = session_store.get(session_id)
    except SpectatorError as exc:
        return make_tool_error(exc)
    session.reset()
    return _status(session).model_dump()


@console_server.tool(annotations=ToolAnnotations(readOnlyHint=True))
async def console_status(session_id: SessionId) -> dict:
    """Report the session state, media, remote file, and turn count.

    Args:
        session_id: Session ID from console_stage.

    Returns:
        Dict with state, media, file_uri, turn_count, transcript_entries.
    """
    try:
        session = session_store.get(session_id)
    except SpectatorError as exc:
        return make_tool_error(exc)
    return _status(session).model_dump()
