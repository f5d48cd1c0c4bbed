"""Corpus store interface consumed by the sync engine and the query router.

``kindex.db.repository.Repository`` is the SQLite implementation; tests use
an in-memory fake with the same surface.
"""

from __future__ import annotations

from typing import Protocol

from kindex.db.models import DocumentRecord, SearchHit, SourceCount


class CorpusStore(Protocol):
    def upsert(self, record: DocumentRecord) -> int:
        """Insert or replace the record keyed by (filename, source)."""

    def fingerprints(self, source: str) -> dict[str, str]:
        """Return {filename: fingerprint} for every record of *source*."""

    def delete_by_prefix(self, source: str, prefix: str) -> int:
        """Delete records of *source* whose filename starts with *prefix*."""

    def delete_document(self, filename: str, source: str) -> bool:
        """Delete one record by key. Returns True if a record was removed."""

    def delete_source(self, source: str) -> int:
        """Delete every record of *source*."""

    def get_document(self, filename: str, source: str | None = None) -> DocumentRecord | None:
        """Exact key lookup."""

    def list_sources(self, source_type: str | None = None) -> list[SourceCount]:
        """Group-and-count records by (source, source_type)."""

    def search_fuzzy(
        self,
        query: str,
        source: str | None = None,
        source_type: str | None = None,
        limit: int = 5,
    ) -> list[SearchHit]:
        """Substring + full-text match, best-first."""

    def search_vector(
        self,
        embedding: list[float],
        source: str | None = None,
        source_type: str | None = None,
        limit: int = 5,
    ) -> list[SearchHit]:
        """Nearest neighbours by cosine similarity, best-first."""
