"""Evidence capture engine — directive parsing, display rendering, frame capture.

Public API:
    extract_directives() — typed directives from model text, in order
    render_display_text() — model text with directives stripped, threats highlighted
    FrameCapturer — annotated frame capture for one staged MediaSource
"""

from .capture import FrameCapturer
from .directives import DirectiveKind, EvidenceDirective, Timestamp, extract_directives
from .display import render_display_text

__all__ = [
    "DirectiveKind",
    "EvidenceDirective",
    "FrameCapturer",
    "Timestamp",
    "extract_directives",
    "render_display_text",
]
