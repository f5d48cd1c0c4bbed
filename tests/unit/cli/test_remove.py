"""Tests for the kindex remove command."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from kindex.cli.main import app
from kindex.db.connection import Database
from kindex.db.repository import Repository

runner = CliRunner()


def _count(db: Path, source: str) -> int:
    conn = Database(db).connect()
    try:
        return Repository(conn).count_documents(source)
    finally:
        conn.close()


@pytest.fixture
def indexed(project, corpus, embedder):
    for name in ("docs", "mirror"):
        result = runner.invoke(
            app, ["ingest", "--source", name, "--type", "manual", "--path", str(corpus)]
        )
        assert result.exit_code == 0, result.output
    return project / ".kindex.db"


# ---------------------------------------------------------------------------
# kindex remove
# ---------------------------------------------------------------------------


def test_remove_no_db_exits_1(project, tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["remove", "--source", "docs", "--db", str(tmp_path / "missing.db"), "--yes"]
    )
    assert result.exit_code == 1
    assert "No database" in result.output


def test_remove_unknown_source_exits_0(indexed) -> None:
    result = runner.invoke(app, ["remove", "--source", "nope", "--yes"])
    assert result.exit_code == 0
    assert "Source not found" in result.output


def test_remove_with_yes_deletes_only_that_source(indexed) -> None:
    result = runner.invoke(app, ["remove", "--source", "docs", "--yes"])

    assert result.exit_code == 0, result.output
    assert "Removed: docs" in result.output
    assert "2 documents deleted" in result.output
    assert _count(indexed, "docs") == 0
    assert _count(indexed, "mirror") == 2


def test_remove_confirm_declined(indexed) -> None:
    result = runner.invoke(app, ["remove", "--source", "docs"], input="n\n")

    assert result.exit_code == 0
    assert "Cancelled" in result.output
    assert _count(indexed, "docs") == 2


def test_remove_confirm_accepted(indexed) -> None:
    result = runner.invoke(app, ["remove", "--source", "docs"], input="y\n")

    assert result.exit_code == 0
    assert _count(indexed, "docs") == 0


def test_removed_source_vectors_are_gone(indexed) -> None:
    runner.invoke(app, ["remove", "--source", "docs", "--yes"])
    conn = Database(indexed).connect()
    try:
        tables = [
            r[0] for r in conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE 'vec_documents_%'"
            )
        ]
        total = sum(conn.execute(f"SELECT COUNT(*) FROM {t}").fetchone()[0] for t in tables)
    finally:
        conn.close()
    assert total == 2
