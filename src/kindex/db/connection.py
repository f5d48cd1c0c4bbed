"""Corpus store connection: SQLite + sqlite-vec, WAL, and the ``casefold`` UDF.

One connection per CLI invocation or server process. ``kindex serve`` may
read the file while ``kindex ingest`` writes it, so a locked database is
waited on for ``busy_timeout_ms`` instead of failing at once.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

DEFAULT_BUSY_TIMEOUT_MS = 5_000


def casefold(value: str | None) -> str | None:
    """Unicode case folding for SQL; SQLite's lower() only folds ASCII."""
    return value.casefold() if value is not None else None


class Database:
    """One corpus store file.

    Args:
        db_path: SQLite file; ``~`` is expanded and missing parent
            directories are created on connect.
        busy_timeout_ms: How long a statement waits on another process's lock.
    """

    def __init__(
        self, db_path: Path | str, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
    ) -> None:
        self.db_path = Path(db_path).expanduser()
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Return a connection ready for ``Repository``: rows as ``sqlite3.Row``,
        vec0 tables available, ``casefold(text)`` registered."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout_ms / 1000)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        try:
            sqlite_vec.load(conn)
        finally:
            conn.enable_load_extension(False)
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
        conn.create_function("casefold", 1, casefold, deterministic=True)
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
