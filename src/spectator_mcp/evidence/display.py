"""Display rendering for model text.

Runs independently of directive parsing: a malformed directive in the model
output is stripped here even when the parser ignored it.
"""

from __future__ import annotations

import re

_CAPTURE_MARKER_RE = re.compile(r"\[(?:PROOF|ZOOM):[^\]\n]*\]")
_THREAT_RE = re.compile(r"\[THREAT:\s*([^\]\n]*?)\s*\]")
_MARKUP_CHARS_RE = re.compile(r"[*_`\[\]<>]")
_TRAILING_WS_RE = re.compile(r"[ \t]+$", re.MULTILINE)
_INNER_WS_RE = re.compile(r"(?<=\S)[ \t]{2,}(?=\S)")

THREAT_MARKER = "⚠"


def _threat_marker(match: re.Match[str]) -> str:
    label = _MARKUP_CHARS_RE.sub("", match.group(1)).strip() or "Threat"
    return f"{THREAT_MARKER} **{label}**"


def render_display_text(text: str) -> str:
    """Strip capture directives and highlight ``[THREAT: ...]`` markers."""
    out = _CAPTURE_MARKER_RE.sub("", text)
    out = _THREAT_RE.sub(_threat_marker, out)
    out = _INNER_WS_RE.sub(" ", out)
    out = _TRAILING_WS_RE.sub("", out)
    return out.strip()
