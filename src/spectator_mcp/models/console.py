"""Console tool output models.

Returned directly by the MCP tools in tools/console.py; none of them are
Gemini structured-output schemas.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class StageResult(BaseModel):
    """Output schema for console_stage."""

    session_id: str
    state: str
    display_name: str
    mime_type: str
    origin: str
    size_bytes: int
    content_hash: str


class EvidenceInfo(BaseModel):
    """One evidence frame as exposed to the operator."""

    label: str
    kind: str
    timestamp: str
    mime_type: str
    size_bytes: int
    data_url: str = Field(default="", description="Inline data: URL (only when images are requested)")


class AskResult(BaseModel):
    """Output schema for console_ask — one model transcript entry."""

    entry_id: int
    response: str
    raw_response: str
    evidence: list[EvidenceInfo] = Field(default_factory=list)
    capture_errors: list[str] = Field(default_factory=list)
    turn_count: int


class UploadResult(BaseModel):
    """Output schema for console_upload."""

    session_id: str
    state: str
    file_uri: str
    mime_type: str
    initial_analysis: AskResult | None = None


class TranscriptLine(BaseModel):
    """One transcript entry as exposed by console_transcript."""

    entry_id: int
    role: str
    text: str
    evidence: list[EvidenceInfo] = Field(default_factory=list)
    capture_errors: list[str] = Field(default_factory=list)
    created_at: str


class SessionStatus(BaseModel):
    """Output schema for console_status and console_reset."""

    session_id: str
    state: str
    media: str = ""
    file_uri: str = ""
    turn_count: int = 0
    transcript_entries: int = 0
