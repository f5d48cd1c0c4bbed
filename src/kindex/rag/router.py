"""Hybrid query router: identifier lookup vs semantic search with confident fallback.

Classification:
  identifier-like  — matches ``[A-Z]{2,}.<word>.<digits>`` (e.g. ``DP.AGENT.001``),
                     or is short and contains a dot followed by an uppercase letter
  natural-language — everything else

Execution:
  identifier-like  → fuzzy path; any hit is returned as-is (no embedding call)
  otherwise        → semantic path (cosine similarity)
  semantic top score < confidence_threshold
                   → also run the fuzzy path, merge by key keeping the max score,
                     re-sort descending, truncate to limit
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

from kindex.config import RetrievalCfg
from kindex.db.models import SearchHit
from kindex.db.store import CorpusStore
from kindex.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"[A-Z]{2,}\.\w+\.\d+")
_DOT_UPPER_RE = re.compile(r"\.[A-Z]")

PATH_FUZZY = "fuzzy"
PATH_SEMANTIC = "semantic"


class QueryKind(str, Enum):
    IDENTIFIER = "identifier"
    NATURAL_LANGUAGE = "natural_language"


@dataclass
class RoutedResult:
    """Hits plus how they were produced.

    Attributes:
        hits: Ranked results, best-first, at most ``limit`` long.
        kind: Query classification.
        paths: Search paths executed, in order.
        merged: True if the low-confidence merge was applied.
    """

    hits: list[SearchHit]
    kind: QueryKind
    paths: tuple[str, ...]
    merged: bool = False


class QueryRouter:
    """Stateless per call: safe to share between concurrent queries."""

    def __init__(
        self,
        store: CorpusStore,
        embedder: EmbeddingProvider,
        config: RetrievalCfg | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._config = config or RetrievalCfg()

    def classify(self, query: str) -> QueryKind:
        if _IDENTIFIER_RE.search(query):
            return QueryKind.IDENTIFIER
        if len(query) < self._config.identifier_max_length and _DOT_UPPER_RE.search(query):
            return QueryKind.IDENTIFIER
        return QueryKind.NATURAL_LANGUAGE

    def search(
        self,
        query: str,
        source: str | None = None,
        source_type: str | None = None,
        limit: int | None = None,
    ) -> list[SearchHit]:
        return self.route(query, source=source, source_type=source_type, limit=limit).hits

    def route(
        self,
        query: str,
        source: str | None = None,
        source_type: str | None = None,
        limit: int | None = None,
    ) -> RoutedResult:
        """Run the routing policy and report which paths were taken."""
        limit = limit or self._config.default_limit
        kind = self.classify(query)
        paths: list[str] = []
        fuzzy: list[SearchHit] | None = None

        if kind is QueryKind.IDENTIFIER:
            fuzzy = self._store.search_fuzzy(query, source, source_type, limit)
            paths.append(PATH_FUZZY)
            if fuzzy:
                logger.debug("Identifier query %r answered by fuzzy path", query)
                return RoutedResult(hits=fuzzy, kind=kind, paths=tuple(paths))

        embedding = self._embedder.embed_batch([query])[0]
        semantic = self._store.search_vector(embedding, source, source_type, limit)
        paths.append(PATH_SEMANTIC)

        top = semantic[0].score if semantic else 0.0
        if top >= self._config.confidence_threshold:
            return RoutedResult(hits=semantic, kind=kind, paths=tuple(paths))

        logger.debug(
            "Low confidence (%.3f < %.3f) for %r, merging fuzzy results",
            top,
            self._config.confidence_threshold,
            query,
        )
        if fuzzy is None:
            fuzzy = self._store.search_fuzzy(query, source, source_type, limit)
            paths.append(PATH_FUZZY)
        return RoutedResult(
            hits=merge_hits(semantic, fuzzy, limit=limit),
            kind=kind,
            paths=tuple(paths),
            merged=True,
        )


def merge_hits(*result_sets: list[SearchHit], limit: int) -> list[SearchHit]:
    """Union of *result_sets* deduplicated by (filename, source), max score wins.

    Sorted by score descending (stable for ties) and truncated to *limit*.
    """
    best: dict[tuple[str, str], SearchHit] = {}
    for hits in result_sets:
        for hit in hits:
            key = (hit.filename, hit.source)
            current = best.get(key)
            if current is None or hit.score > current.score:
                best[key] = hit
    merged = sorted(best.values(), key=lambda h: h.score, reverse=True)
    return merged[:limit]
