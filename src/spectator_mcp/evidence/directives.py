"""Evidence directive parsing — ``[PROOF: MM:SS]`` and ``[ZOOM: MM:SS]``.

Parsing is its own pass and never touches display text; see display.py for
how model text is rendered.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

_DIRECTIVE_RE = re.compile(r"\[(PROOF|ZOOM):\s*(\d{1,2}):([0-5]\d)\s*\]")


class DirectiveKind(str, Enum):
    STANDARD = "standard-capture"
    ZOOM = "zoom-capture"


class Timestamp(NamedTuple):
    """A playback offset with whole-second precision."""

    minutes: int
    seconds: int

    @property
    def total_seconds(self) -> int:
        return self.minutes * 60 + self.seconds

    def __str__(self) -> str:
        return f"{self.minutes:02d}:{self.seconds:02d}"

    @classmethod
    def parse(cls, value: str) -> Timestamp:
        """Parse ``M:SS`` / ``MM:SS``; raises ValueError when malformed."""
        minutes, sep, seconds = value.strip().partition(":")
        if not sep or not minutes.isdigit() or not seconds.isdigit() or len(seconds) != 2:
            raise ValueError(f"Invalid timestamp '{value}', expected MM:SS")
        if int(seconds) > 59:
            raise ValueError(f"Invalid timestamp '{value}', seconds must be 00-59")
        return cls(int(minutes), int(seconds))


@dataclass(frozen=True)
class EvidenceDirective:
    """A capture instruction found in model output."""

    kind: DirectiveKind
    timestamp: Timestamp

    @property
    def zoom(self) -> bool:
        return self.kind is DirectiveKind.ZOOM


def extract_directives(text: str) -> list[EvidenceDirective]:
    """Return every well-formed directive in *text*, in order of appearance.

    Markers whose seconds are outside 00-59 never match and are dropped.
    """
    return [
        EvidenceDirective(
            kind=DirectiveKind.ZOOM if m.group(1) == "ZOOM" else DirectiveKind.STANDARD,
            timestamp=Timestamp(int(m.group(2)), int(m.group(3))),
        )
        for m in _DIRECTIVE_RE.finditer(text)
    ]
