"""Incremental sync engine — diff scanned records against the store, then write.

Skip rule: a candidate whose (filename, fingerprint) already exists in the
store for the same source is never re-embedded.

Structural cleanup: when any chunk of a large parent file changes, or a
stored chunk of it is no longer produced, every record under ``<parent>::``
is deleted and the parent's full new chunk set is written, so renamed or
removed sections never linger as orphans. A whole-file record replaced by chunks (or chunks replaced by a
whole-file record) is cleaned up the same way.

Embeddings are requested in fixed-size batches with a pause between
batches; rate limits back off exponentially via ``RetryingEmbedder``.
A fatal error aborts the run; batches already upserted stay committed.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from kindex.config import ChunkingCfg, EmbeddingCfg
from kindex.db.models import CandidateRecord, DocumentRecord
from kindex.db.store import CorpusStore
from kindex.embeddings import EmbeddingProvider, RetryingEmbedder
from kindex.ingest.markdown import SEPARATOR

logger = logging.getLogger(__name__)


@dataclass
class SyncPlan:
    """The minimal set of writes and deletes for one source.

    Attributes:
        source: Source name the plan applies to.
        to_index: Candidates to embed and upsert, in scan order.
        unchanged: Number of candidates skipped (same fingerprint in store).
        stale_parents: Parent paths whose ``<parent>::*`` records are purged first.
        superseded: Whole-file records replaced by their own chunks.
        orphans: Stored records no candidate produces any more (removed files).
        prune: Whether ``orphans`` are deleted on apply.
    """

    source: str
    to_index: list[CandidateRecord] = field(default_factory=list)
    unchanged: int = 0
    stale_parents: list[str] = field(default_factory=list)
    superseded: list[str] = field(default_factory=list)
    orphans: list[str] = field(default_factory=list)
    prune: bool = False

    @property
    def is_empty(self) -> bool:
        return not (
            self.to_index
            or self.stale_parents
            or self.superseded
            or (self.prune and self.orphans)
        )


@dataclass
class SyncReport:
    source: str
    indexed: int = 0
    unchanged: int = 0
    cleaned_parents: int = 0
    deleted: int = 0
    batches: int = 0


class SyncEngine:
    """Plan and apply incremental updates of one source against a CorpusStore.

    Args:
        store: Corpus store to diff against and write to.
        embedder: Embedding provider; wrapped in ``RetryingEmbedder``.
        embedding: Batch size, inter-batch delay, and retry settings.
        chunking: ``chunk_char_limit`` caps the text sent for embedding.
        sleep: Injected for tests; defaults to ``time.sleep``.
    """

    def __init__(
        self,
        store: CorpusStore,
        embedder: EmbeddingProvider,
        embedding: EmbeddingCfg | None = None,
        chunking: ChunkingCfg | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._embedding = embedding or EmbeddingCfg()
        self._chunking = chunking or ChunkingCfg()
        self._sleep = sleep
        self._embedder = RetryingEmbedder(
            embedder,
            max_retries=self._embedding.max_retries,
            backoff_base=self._embedding.backoff_base,
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # Diff
    # ------------------------------------------------------------------

    def plan(
        self, source: str, candidates: list[CandidateRecord], *, prune: bool = False
    ) -> SyncPlan:
        """Compare *candidates* with the store's current state for *source*."""
        existing = self._store.fingerprints(source)
        names = {c.filename for c in candidates}

        changed = [c for c in candidates if existing.get(c.filename) != c.fingerprint]
        stale = {c.parent for c in changed if c.parent}
        # A section removed while every surviving chunk is unchanged.
        for parent in {c.parent for c in candidates if c.parent} - stale:
            if any(_is_child(name, parent) and name not in names for name in existing):
                stale.add(parent)
        # A file that used to be chunked and is now stored whole.
        for c in changed:
            if c.parent is None and _has_children(existing, c.filename):
                stale.add(c.filename)

        to_index = [
            c for c in candidates
            if existing.get(c.filename) != c.fingerprint or c.parent in stale
        ]

        leftovers = [
            name for name in existing
            if name not in names and not any(_is_child(name, p) for p in stale)
        ]
        superseded = sorted(name for name in leftovers if name in stale)
        orphans = sorted(name for name in leftovers if name not in stale)

        return SyncPlan(
            source=source,
            to_index=to_index,
            unchanged=len(candidates) - len(to_index),
            stale_parents=sorted(stale),
            superseded=superseded,
            orphans=orphans,
            prune=prune,
        )

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply(
        self,
        plan: SyncPlan,
        source_type: str,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> SyncReport:
        """Execute *plan*: purge stale records, then embed and upsert in batches.

        Args:
            plan: Result of ``plan()`` for the same store.
            source_type: Category tag written on every record.
            on_progress: Called as ``on_progress(indexed, total)`` after each batch.

        Raises:
            RateLimitExceeded: Retry ceiling hit; earlier batches stay written.
            EmbeddingError: Hard provider failure.
        """
        source = plan.source
        report = SyncReport(source=source, unchanged=plan.unchanged)

        for parent in plan.stale_parents:
            removed = self._store.delete_by_prefix(source, parent + SEPARATOR)
            report.deleted += removed
            report.cleaned_parents += 1
            logger.info("Cleaned %d old chunks for %s", removed, parent)

        doomed = plan.superseded + (plan.orphans if plan.prune else [])
        for name in doomed:
            if self._store.delete_document(name, source):
                report.deleted += 1
                logger.info("Removed %s", name)

        batch_size = self._embedding.batch_size
        limit = self._chunking.chunk_char_limit
        total = len(plan.to_index)

        for start in range(0, total, batch_size):
            batch = plan.to_index[start:start + batch_size]
            vectors = self._embedder.embed_batch([c.content[:limit] for c in batch])

            for candidate, vector in zip(batch, vectors):
                self._store.upsert(
                    DocumentRecord(
                        filename=candidate.filename,
                        content=candidate.content,
                        source=source,
                        source_type=source_type,
                        fingerprint=candidate.fingerprint,
                        embedding=vector,
                    )
                )

            report.indexed += len(batch)
            report.batches += 1
            logger.info("%d/%d indexed", report.indexed, total)
            if on_progress is not None:
                on_progress(report.indexed, total)

            if start + batch_size < total:
                self._sleep(self._embedding.batch_delay)

        return report

    def sync(
        self,
        source: str,
        source_type: str,
        candidates: list[CandidateRecord],
        *,
        prune: bool = False,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> SyncReport:
        """``plan()`` then ``apply()`` in one call."""
        return self.apply(self.plan(source, candidates, prune=prune), source_type, on_progress)


def _is_child(name: str, parent: str) -> bool:
    return name.startswith(parent + SEPARATOR)


def _has_children(existing: dict[str, str], parent: str) -> bool:
    return any(_is_child(name, parent) for name in existing)
