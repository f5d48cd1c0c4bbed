"""Domain models for the kindex corpus store."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class DocumentRecord:
    filename: str
    content: str
    source: str
    source_type: str
    fingerprint: str
    embedding: list[float] | None = None
    created_at: str | None = None
    rowid: int | None = None  # set after insert; None for unsaved records


@dataclass(frozen=True)
class CandidateRecord:
    """A freshly scanned record, not yet compared with the store.

    ``parent`` is the relative path of the large file a chunk was cut from,
    or None for a whole-file record.
    """

    filename: str
    content: str
    fingerprint: str
    parent: str | None = None


@dataclass
class SearchHit:
    filename: str
    content: str
    source: str
    source_type: str
    score: float

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "content": self.content,
            "source": self.source,
            "source_type": self.source_type,
            "score": self.score,
        }


@dataclass
class SourceCount:
    source: str
    source_type: str
    count: int

    def to_dict(self) -> dict:
        return {"source": self.source, "source_type": self.source_type, "count": self.count}
