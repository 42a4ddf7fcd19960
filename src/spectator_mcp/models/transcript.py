"""Transcript model — the ordered, presentation-side log of a session."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

EntryRole = Literal["operator", "model", "system"]
EvidenceKind = Literal["standard-capture", "zoom-capture"]


@dataclass(frozen=True)
class EvidenceImage:
    """An annotated frame attached to one transcript entry."""

    entry_id: int
    index: int
    kind: EvidenceKind
    timestamp: str
    data: bytes = field(repr=False)
    mime_type: str = "image/jpeg"

    @property
    def label(self) -> str:
        return f"EVIDENCE-{self.index + 1}"

    def data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass
class TranscriptEntry:
    """One line of the transcript, optionally carrying evidence."""

    entry_id: int
    role: EntryRole
    text: str
    display_text: str = ""
    evidence: list[EvidenceImage] = field(default_factory=list)
    capture_errors: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)


class Transcript:
    """Append-only list of entries with monotonically increasing IDs."""

    def __init__(self) -> None:
        self._entries: list[TranscriptEntry] = []
        self._next_id = 1

    def add(self, role: EntryRole, text: str, display_text: str = "") -> TranscriptEntry:
        entry = TranscriptEntry(
            entry_id=self._next_id,
            role=role,
            text=text,
            display_text=display_text or text,
        )
        self._next_id += 1
        self._entries.append(entry)
        return entry

    def system(self, text: str) -> TranscriptEntry:
        return self.add("system", text)

    @property
    def entries(self) -> list[TranscriptEntry]:
        return list(self._entries)

    def by_role(self, role: EntryRole) -> list[TranscriptEntry]:
        return [e for e in self._entries if e.role == role]

    def __len__(self) -> int:
        return len(self._entries)
