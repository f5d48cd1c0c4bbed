"""Repository pattern for all corpus store operations.

Single interface for: document upsert, prefix delete, substring / FTS5
search, sqlite-vec cosine search, and per-source counts.
Vec tables are model-managed (ensure_vec_table); the repository reads and
writes the one it is constructed with.
"""

from __future__ import annotations

import logging
import re
import sqlite3

import sqlite_vec

from kindex.db.models import DocumentRecord, SearchHit, SourceCount
from kindex.db.vectors import vec_table_exists

logger = logging.getLogger(__name__)

# Fuzzy-path tiers: filename substring > content substring > FTS all terms > FTS any term.
SCORE_FILENAME = 1.0
SCORE_CONTENT = 0.8
SCORE_FTS_ALL = 0.6
SCORE_FTS_ANY = 0.4

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

_SELECT_DOC = "SELECT id, filename, content, source, source_type, hash, created_at FROM documents"


class Repository:
    """Data access layer for the ``documents`` table and its search indexes.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection, vec_table: str | None = None) -> None:
        """Initialise with an open database connection.

        Args:
            conn: A connection from kindex.db.connection.Database (sqlite-vec
                and the casefold function loaded) with the schema
                initialised (see kindex.db.schema.initialize).
            vec_table: Vec table holding embeddings for the active model, or
                None for read paths that never touch vectors.
        """
        self._conn = conn
        self._vec_table = vec_table

    @property
    def vec_table(self) -> str | None:
        return self._vec_table

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, record: DocumentRecord) -> int:
        """Insert or update the record keyed by (filename, source). Returns its id.

        FTS5 and the vec table are kept in sync under the same id. The
        whole write is committed at once.
        """
        self._conn.execute(
            """
            INSERT INTO documents (filename, content, source, source_type, hash)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(filename, source) DO UPDATE SET
                content = excluded.content,
                source_type = excluded.source_type,
                hash = excluded.hash
            """,
            (
                record.filename,
                record.content,
                record.source,
                record.source_type,
                record.fingerprint,
            ),
        )
        doc_id = self._conn.execute(
            "SELECT id FROM documents WHERE filename = ? AND source = ?",
            (record.filename, record.source),
        ).fetchone()[0]

        self._conn.execute("DELETE FROM documents_fts WHERE rowid = ?", (doc_id,))
        self._conn.execute(
            "INSERT INTO documents_fts(rowid, content) VALUES (?, ?)", (doc_id, record.content)
        )

        if record.embedding is not None:
            if self._vec_table is None:
                raise RuntimeError("Repository has no vec table; cannot store embeddings.")
            self._conn.execute(f"DELETE FROM {self._vec_table} WHERE rowid = ?", (doc_id,))
            self._conn.execute(
                f"INSERT INTO {self._vec_table}(rowid, embedding) VALUES (?, ?)",
                (doc_id, sqlite_vec.serialize_float32(record.embedding)),
            )

        self._conn.commit()
        record.rowid = doc_id
        return doc_id

    def delete_by_prefix(self, source: str, prefix: str) -> int:
        """Delete every record of *source* whose filename starts with *prefix*.

        Prefix comparison is literal (no LIKE wildcards). Returns the count.
        """
        ids = [
            r[0]
            for r in self._conn.execute(
                "SELECT id FROM documents WHERE source = ? AND substr(filename, 1, ?) = ?",
                (source, len(prefix), prefix),
            ).fetchall()
        ]
        self._delete_ids(ids)
        return len(ids)

    def delete_document(self, filename: str, source: str) -> bool:
        row = self._conn.execute(
            "SELECT id FROM documents WHERE filename = ? AND source = ?", (filename, source)
        ).fetchone()
        if row is None:
            return False
        self._delete_ids([row[0]])
        return True

    def delete_source(self, source: str) -> int:
        """Delete all records (+ FTS and vec entries) of *source*. Returns the count."""
        ids = [
            r[0]
            for r in self._conn.execute(
                "SELECT id FROM documents WHERE source = ?", (source,)
            ).fetchall()
        ]
        self._delete_ids(ids)
        return len(ids)

    def _delete_ids(self, ids: list[int]) -> None:
        """Delete documents + FTS entries + embeddings in every vec table."""
        if not ids:
            return
        placeholders = ",".join("?" * len(ids))
        vec_tables = [
            r[0]
            for r in self._conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE 'vec_documents_%'"
            ).fetchall()
        ]
        for table in vec_tables:
            self._conn.execute(
                f"DELETE FROM [{table}] WHERE rowid IN ({placeholders})",  # noqa: S608
                ids,
            )
        self._conn.execute(f"DELETE FROM documents_fts WHERE rowid IN ({placeholders})", ids)
        self._conn.execute(f"DELETE FROM documents WHERE id IN ({placeholders})", ids)
        self._conn.commit()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fingerprints(self, source: str) -> dict[str, str]:
        """Return {filename: fingerprint} for every record of *source*."""
        rows = self._conn.execute(
            "SELECT filename, hash FROM documents WHERE source = ?", (source,)
        ).fetchall()
        return {r["filename"]: r["hash"] for r in rows}

    def get_document(self, filename: str, source: str | None = None) -> DocumentRecord | None:
        """Return the record for *filename* (in *source* if given), or None.

        Without *source* the first match by source name wins.
        """
        if source is not None:
            row = self._conn.execute(
                f"{_SELECT_DOC} WHERE filename = ? AND source = ?", (filename, source)
            ).fetchone()
        else:
            row = self._conn.execute(
                f"{_SELECT_DOC} WHERE filename = ? ORDER BY source LIMIT 1", (filename,)
            ).fetchone()
        return _row_to_record(row) if row else None

    def list_sources(self, source_type: str | None = None) -> list[SourceCount]:
        """Return per-(source, source_type) record counts, ordered by type then name."""
        sql = "SELECT source, source_type, COUNT(*) AS doc_count FROM documents"
        params: tuple = ()
        if source_type is not None:
            sql += " WHERE source_type = ?"
            params = (source_type,)
        sql += " GROUP BY source, source_type ORDER BY source_type, source"
        return [
            SourceCount(source=r["source"], source_type=r["source_type"], count=r["doc_count"])
            for r in self._conn.execute(sql, params).fetchall()
        ]

    def count_documents(self, source: str | None = None) -> int:
        if source is None:
            return self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM documents WHERE source = ?", (source,)
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Fuzzy path: substring + FTS5
    # ------------------------------------------------------------------

    def search_fuzzy(
        self,
        query: str,
        source: str | None = None,
        source_type: str | None = None,
        limit: int = 5,
    ) -> list[SearchHit]:
        """Unified substring / full-text search, best-first.

        Tiers: filename substring (1.0) > content substring (0.8) >
        FTS5 match on all terms (0.6) > FTS5 match on any term (0.4).
        Ties are broken by shorter content first.
        """
        needle = query.strip().casefold()
        # FTS5 MATCH rejects punctuation; quote each word token instead.
        tokens = ['"' + t + '"' for t in _TOKEN_RE.findall(query)]

        params: dict[str, object] = {
            "needle": needle,
            "limit": limit,
            "source": source,
            "source_type": source_type,
            "s_filename": SCORE_FILENAME,
            "s_content": SCORE_CONTENT,
            "s_all": SCORE_FTS_ALL,
            "s_any": SCORE_FTS_ANY,
        }
        if tokens:
            params["fts_all"] = " ".join(tokens)
            params["fts_any"] = " OR ".join(tokens)
            all_terms = "SELECT rowid FROM documents_fts WHERE documents_fts MATCH :fts_all"
            any_terms = "SELECT rowid FROM documents_fts WHERE documents_fts MATCH :fts_any"
        else:
            all_terms = any_terms = "SELECT NULL WHERE 0"

        sql = f"""
            SELECT d.filename, d.content, d.source, d.source_type,
                CASE
                    WHEN instr(casefold(d.filename), :needle) > 0 THEN :s_filename
                    WHEN instr(casefold(d.content), :needle) > 0 THEN :s_content
                    WHEN d.id IN ({all_terms}) THEN :s_all
                    ELSE :s_any
                END AS score
            FROM documents d
            WHERE (
                    instr(casefold(d.filename), :needle) > 0
                    OR instr(casefold(d.content), :needle) > 0
                    OR d.id IN ({any_terms})
                )
                AND (:source IS NULL OR d.source = :source)
                AND (:source_type IS NULL OR d.source_type = :source_type)
            ORDER BY score DESC, length(d.content) ASC, d.filename ASC
            LIMIT :limit
        """  # noqa: S608
        rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_hit(r) for r in rows]

    # ------------------------------------------------------------------
    # Semantic path: sqlite-vec cosine
    # ------------------------------------------------------------------

    def search_vector(
        self,
        embedding: list[float],
        source: str | None = None,
        source_type: str | None = None,
        limit: int = 5,
    ) -> list[SearchHit]:
        """Rank filtered records by cosine similarity (1 - cosine distance), best-first.

        Raises:
            RuntimeError: If the vec table for the active model does not exist.
        """
        if self._vec_table is None or not vec_table_exists(self._conn, self._vec_table):
            raise RuntimeError(
                "No embeddings found for the configured model. "
                "Run 'kindex ingest' first to populate the vector index."
            )
        sql = f"""
            SELECT d.filename, d.content, d.source, d.source_type,
                1.0 - vec_distance_cosine(v.embedding, :query) AS score
            FROM {self._vec_table} v
            JOIN documents d ON d.id = v.rowid
            WHERE (:source IS NULL OR d.source = :source)
                AND (:source_type IS NULL OR d.source_type = :source_type)
            ORDER BY score DESC
            LIMIT :limit
        """  # noqa: S608
        rows = self._conn.execute(
            sql,
            {
                "query": sqlite_vec.serialize_float32(embedding),
                "source": source,
                "source_type": source_type,
                "limit": limit,
            },
        ).fetchall()
        return [_row_to_hit(r) for r in rows]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_record(row: sqlite3.Row) -> DocumentRecord:
    return DocumentRecord(
        rowid=row["id"],
        filename=row["filename"],
        content=row["content"],
        source=row["source"],
        source_type=row["source_type"],
        fingerprint=row["hash"],
        created_at=row["created_at"],
    )


def _row_to_hit(row: sqlite3.Row) -> SearchHit:
    return SearchHit(
        filename=row["filename"],
        content=row["content"],
        source=row["source"],
        source_type=row["source_type"],
        score=float(row["score"]),
    )
