"""Structured error handling — exception taxonomy, categories, and tool error model."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class ErrorCategory(str, Enum):
    """Categories of errors for diagnostics."""

    RESOLUTION_FAILED = "RESOLUTION_FAILED"
    SOURCE_BLOCKED = "SOURCE_BLOCKED"
    URL_INVALID = "URL_INVALID"
    MEDIA_UNSUPPORTED = "MEDIA_UNSUPPORTED"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    UPLOAD_HANDSHAKE_FAILED = "UPLOAD_HANDSHAKE_FAILED"
    UPLOAD_TRANSMISSION_FAILED = "UPLOAD_TRANSMISSION_FAILED"
    INDEXING_FAILED = "INDEXING_FAILED"
    INFERENCE_FAILED = "INFERENCE_FAILED"
    CAPTURE_FAILED = "CAPTURE_FAILED"
    SESSION_STATE = "SESSION_STATE"
    SESSION_RESET = "SESSION_RESET"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    DEPENDENCY_MISSING = "DEPENDENCY_MISSING"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN = "UNKNOWN"


class SpectatorError(Exception):
    """Base class for every failure the console reports to the operator."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    hint: str = ""


class ResolutionError(SpectatorError):
    """No resolution strategy could produce media for a URL."""

    category = ErrorCategory.RESOLUTION_FAILED
    hint = "The URL could not be resolved to playable media — check the link or stage a local file"


class BlockedError(ResolutionError):
    """The source platform actively rejected automated access (403 or bot challenge)."""

    category = ErrorCategory.SOURCE_BLOCKED
    hint = (
        "The source platform rejected the request — switching strategy will not help; "
        "download the video manually and stage it as a local file"
    )


class MediaUnsupportedError(SpectatorError):
    """Staged media has a type the inference service cannot ingest."""

    category = ErrorCategory.MEDIA_UNSUPPORTED
    hint = "Use mp4, webm, mov, avi, mkv, mpeg, wmv, or 3gpp"


class HandshakeError(SpectatorError):
    """The inference service rejected upload initiation."""

    category = ErrorCategory.UPLOAD_HANDSHAKE_FAILED
    hint = "Upload handshake failed — check GEMINI_API_KEY, then re-stage and upload again"


class TransmissionError(SpectatorError):
    """Byte transmission to the upload session endpoint failed."""

    category = ErrorCategory.UPLOAD_TRANSMISSION_FAILED
    hint = "Byte transmission failed — re-stage the media and upload again"


class IndexingError(SpectatorError):
    """The remote file entered the FAILED state while being indexed."""

    category = ErrorCategory.INDEXING_FAILED
    hint = "The service could not index this video — upload it again or try a different encoding"


class InferenceError(SpectatorError):
    """A conversation call failed; the uploaded file remains usable."""

    category = ErrorCategory.INFERENCE_FAILED
    hint = "Inference call failed — the uploaded video is still active, send the prompt again"


class CaptureError(SpectatorError):
    """A single evidence frame could not be captured."""

    category = ErrorCategory.CAPTURE_FAILED
    hint = "Frame capture failed for this timestamp — other evidence is unaffected"


class SessionStateError(SpectatorError):
    """An operation was invoked in a session state that does not allow it."""

    category = ErrorCategory.SESSION_STATE
    hint = "Check console_status — stage media, then upload, before asking questions"


class SessionResetError(SpectatorError):
    """The session was reset while an operation was in flight."""

    category = ErrorCategory.SESSION_RESET
    hint = "The session was reset — stage media again to start over"


class SessionNotFoundError(SpectatorError):
    """No live session exists for the given ID."""

    category = ErrorCategory.SESSION_NOT_FOUND
    hint = "Session not found or expired — stage media without a session_id to open a new one"


class ToolError(BaseModel):
    """Structured error returned from any tool."""

    error: str
    category: str
    hint: str
    retryable: bool = False


_OPERATOR_RETRYABLE = {
    ErrorCategory.INFERENCE_FAILED,
    ErrorCategory.NETWORK_ERROR,
    ErrorCategory.CAPTURE_FAILED,
}


def categorize_error(error: Exception) -> tuple[ErrorCategory, str]:
    """Map an exception to an ErrorCategory + human-readable hint."""
    if isinstance(error, SpectatorError):
        return error.category, error.hint or str(error)
    if isinstance(error, FileNotFoundError):
        return ErrorCategory.FILE_NOT_FOUND, "File not found — check the path"

    s = str(error).lower()
    if isinstance(error, TimeoutError) or "timeout" in s or "timed out" in s:
        return (
            ErrorCategory.NETWORK_ERROR,
            "Request timed out — try again or check connectivity",
        )
    if "connection" in s or "connect" in s:
        return ErrorCategory.NETWORK_ERROR, "Network failure — check connectivity and try again"
    if "not found" in s and ("yt-dlp" in s or "ffmpeg" in s or "ffprobe" in s):
        return (
            ErrorCategory.DEPENDENCY_MISSING,
            "Required binary missing — install yt-dlp and ffmpeg and make sure they are on PATH",
        )
    if "api key" in s:
        return ErrorCategory.UPLOAD_HANDSHAKE_FAILED, "Set GEMINI_API_KEY before uploading"

    return (ErrorCategory.UNKNOWN, str(error))


def make_tool_error(error: Exception) -> dict:
    """Create a serialisable ToolError dict from an exception.

    ``retryable`` tells the operator whether repeating the same action can
    succeed; nothing in the console retries on its own.
    """
    cat, hint = categorize_error(error)
    return ToolError(
        error=str(error) or type(error).__name__,
        category=cat.value,
        hint=hint,
        retryable=cat in _OPERATOR_RETRYABLE,
    ).model_dump(mode="json")
