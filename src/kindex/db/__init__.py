"""kindex corpus store (SQLite + FTS5 + sqlite-vec)."""

from kindex.db.connection import Database
from kindex.db.migrations import MIGRATIONS, run_migrations
from kindex.db.repository import Repository
from kindex.db.schema import initialize
from kindex.db.vectors import ensure_vec_table, model_to_slug, vec_table_for

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_for",
]
