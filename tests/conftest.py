"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from kindex.db.connection import Database
from kindex.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".kindex.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """No global config, CWD = tmp_path, no KINDEX_* env overrides."""
    monkeypatch.setattr("kindex.config._GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml")
    monkeypatch.delenv("KINDEX_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("KINDEX_DB", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
