"""Per-model sqlite-vec tables.

Each embedding model gets its own ``vec_documents_<slug>`` vec0 table whose
rowid is ``documents.id``, so switching models never mixes vector spaces in
one table. The vector width is fixed when the table is created; a config
that later asks for a different width is rejected instead of failing on the
first insert.
"""

from __future__ import annotations

import re
import sqlite3

from kindex.errors import ConfigError

_WIDTH_RE = re.compile(r"float\[(\d+)\]")


def model_to_slug(model: str) -> str:
    """``"cohere/embed-english-v3.0"`` -> ``"cohere_embed_english_v3_0"``."""
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_for(model: str) -> str:
    """Name of the vec table holding *model*'s embeddings."""
    return f"vec_documents_{model_to_slug(model)}"


def vec_table_exists(conn: sqlite3.Connection, table: str) -> bool:
    return vec_table_dimensions(conn, table) is not None


def vec_table_dimensions(conn: sqlite3.Connection, table: str) -> int | None:
    """Vector width declared by *table*, or None when the table is missing."""
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    if row is None:
        return None
    match = _WIDTH_RE.search(row[0] or "")
    return int(match.group(1)) if match else 0


def ensure_vec_table(conn: sqlite3.Connection, model: str, dimensions: int) -> str:
    """Create *model*'s vec table on first use and return its name.

    Raises:
        ValueError: If *dimensions* is not positive.
        ConfigError: If the table exists with a different vector width.
    """
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_for(model)
    existing = vec_table_dimensions(conn, table)
    if existing is None:
        conn.execute(f"CREATE VIRTUAL TABLE {table} USING vec0(embedding float[{dimensions}])")
        conn.commit()
    elif existing != dimensions:
        raise ConfigError(
            f"embedding.dimensions is {dimensions} but the index for '{model}' "
            f"stores {existing}-dim vectors. Restore the original setting or "
            f"re-ingest into a new database."
        )
    return table
