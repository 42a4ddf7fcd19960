"""Shared type aliases for tool parameters."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import Field

# ── Literal enums ────────────────────────────────────────────────────────────

AnalysisMode = Literal["timeline", "threat", "ocr", "crowd"]

# ── Annotated aliases ────────────────────────────────────────────────────────

SessionId = Annotated[str, Field(min_length=1, description="Session ID from console_stage")]
VideoFilePath = Annotated[str, Field(
    min_length=1,
    description="Path to a local video file (mp4, webm, mov, avi, mkv, mpeg, wmv, 3gpp)",
)]
MediaUrl = Annotated[str, Field(
    min_length=8,
    description="Public http(s) URL of a video or a page hosting one",
)]
OperatorPrompt = Annotated[str, Field(
    min_length=1,
    max_length=10000,
    description="Question or instruction for the analyst",
)]
TimestampParam = Annotated[str, Field(
    pattern=r"^\d{1,2}:[0-5]\d$",
    description="Playback offset as MM:SS",
)]
