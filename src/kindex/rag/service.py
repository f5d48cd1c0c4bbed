"""Retrieval API: search, get_document, list_sources with structured errors.

Every operation returns a ``ToolResult`` holding either a payload or a
``ToolError`` (not_found / upstream_failure / malformed_input), so callers
can tell "no results" from "search failed". Input is validated before any
store or embedding call. The read path never retries.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import Any

from kindex.config import RetrievalCfg
from kindex.db.store import CorpusStore
from kindex.errors import EmbeddingError, MalformedInputError
from kindex.rag.router import QueryRouter

logger = logging.getLogger(__name__)

_UPSTREAM_ERRORS = (sqlite3.Error, EmbeddingError, RuntimeError)


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    UPSTREAM_FAILURE = "upstream_failure"
    MALFORMED_INPUT = "malformed_input"


@dataclass
class ToolError:
    kind: ErrorKind
    message: str

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}


@dataclass
class ToolResult:
    payload: Any = None
    error: ToolError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        if self.error is not None:
            return {"error": self.error.to_dict()}
        return {"result": self.payload}

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> ToolResult:
        return cls(error=ToolError(kind=kind, message=message))


class KnowledgeService:
    """The three caller-facing retrieval operations over a CorpusStore."""

    def __init__(
        self,
        store: CorpusStore,
        router: QueryRouter,
        config: RetrievalCfg | None = None,
    ) -> None:
        self._store = store
        self._router = router
        self._config = config or RetrievalCfg()

    def search(
        self,
        query: Any,
        source: Any = None,
        source_type: Any = None,
        limit: Any = None,
    ) -> ToolResult:
        """Ranked ``[{filename, content, source, source_type, score}]``."""
        try:
            query = _require_text("query", query)
            source = _optional_text("source", source)
            source_type = self._check_source_type(source_type)
            limit = self._check_limit(limit)
        except MalformedInputError as exc:
            return ToolResult.failure(ErrorKind.MALFORMED_INPUT, str(exc))

        try:
            hits = self._router.search(query, source=source, source_type=source_type, limit=limit)
        except _UPSTREAM_ERRORS as exc:
            logger.warning("search failed for %r: %s", query, exc)
            return ToolResult.failure(ErrorKind.UPSTREAM_FAILURE, f"Search failed: {exc}")
        return ToolResult(payload=[h.to_dict() for h in hits])

    def get_document(self, filename: Any, source: Any = None) -> ToolResult:
        """``{found, document}``; a missing key is ``found: False``, not an error."""
        try:
            filename = _require_text("filename", filename)
            source = _optional_text("source", source)
        except MalformedInputError as exc:
            return ToolResult.failure(ErrorKind.MALFORMED_INPUT, str(exc))

        try:
            record = self._store.get_document(filename, source)
        except _UPSTREAM_ERRORS as exc:
            logger.warning("get_document failed for %r: %s", filename, exc)
            return ToolResult.failure(ErrorKind.UPSTREAM_FAILURE, f"Lookup failed: {exc}")

        if record is None:
            return ToolResult(payload={"found": False, "document": None})
        return ToolResult(
            payload={
                "found": True,
                "document": {
                    "filename": record.filename,
                    "content": record.content,
                    "source": record.source,
                    "source_type": record.source_type,
                },
            }
        )

    def list_sources(self, source_type: Any = None) -> ToolResult:
        """``[{source, source_type, count}]`` ordered by type then source."""
        try:
            source_type = self._check_source_type(source_type)
        except MalformedInputError as exc:
            return ToolResult.failure(ErrorKind.MALFORMED_INPUT, str(exc))

        try:
            counts = self._store.list_sources(source_type)
        except _UPSTREAM_ERRORS as exc:
            logger.warning("list_sources failed: %s", exc)
            return ToolResult.failure(ErrorKind.UPSTREAM_FAILURE, f"Listing failed: {exc}")
        return ToolResult(payload=[c.to_dict() for c in counts])

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check_source_type(self, value: Any) -> str | None:
        value = _optional_text("source_type", value)
        allowed = self._config.allowed_source_types
        if value is not None and allowed and value not in allowed:
            raise MalformedInputError(
                f"Unknown source_type '{value}'. Expected one of: {', '.join(allowed)}"
            )
        return value

    def _check_limit(self, value: Any) -> int:
        if value is None:
            return self._config.default_limit
        # JSON clients may send 5.0
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, bool) or not isinstance(value, int):
            raise MalformedInputError(f"limit must be an integer, got {value!r}")
        if not 1 <= value <= self._config.max_limit:
            raise MalformedInputError(
                f"limit must be between 1 and {self._config.max_limit}, got {value}"
            )
        return value


def _require_text(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MalformedInputError(f"{name} must be a non-empty string")
    return value.strip()


def _optional_text(name: str, value: Any) -> str | None:
    """Empty strings mean "no filter"; anything else must be a string."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise MalformedInputError(f"{name} must be a string, got {type(value).__name__}")
    return value
