"""Tests for kindex version, logging, init and serve."""

from __future__ import annotations

import json
import logging
import stat

from typer.testing import CliRunner

from kindex.cli.main import app

runner = CliRunner()


def test_version_flag():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("kindex ")


def test_version_command():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "kindex" in result.output


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("ingest", "search", "get", "sources", "remove", "serve", "init"):
        assert command in result.output


def test_verbose_flag_enables_debug_logging(monkeypatch):
    levels = []
    monkeypatch.setattr("logging.basicConfig", lambda **kwargs: levels.append(kwargs["level"]))

    runner.invoke(app, ["--verbose", "version"])
    runner.invoke(app, ["version"])

    assert levels == [logging.DEBUG, logging.WARNING]


# ---------------------------------------------------------------------------
# kindex init
# ---------------------------------------------------------------------------


def test_init_writes_private_global_config(tmp_path):
    target = tmp_path / "home" / ".kindex" / "config.yaml"

    result = runner.invoke(app, ["init", "--path", str(target)])

    assert result.exit_code == 0
    assert target.exists()
    assert stat.S_IMODE(target.stat().st_mode) == 0o600


def test_init_keeps_existing_file(tmp_path):
    target = tmp_path / "config.yaml"
    target.write_text("retrieval:\n  default_limit: 3\n", encoding="utf-8")

    result = runner.invoke(app, ["init", "--path", str(target)])

    assert "Already exists" in result.output
    assert "default_limit: 3" in target.read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# kindex serve
# ---------------------------------------------------------------------------


def test_serve_without_db_exits_1(project):
    result = runner.invoke(app, ["serve"])
    assert result.exit_code == 1


def test_serve_answers_tool_calls(project, corpus, embedder):
    runner.invoke(app, ["ingest", "--source", "docs", "--type", "manual", "--path", str(corpus)])
    requests = [
        {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {
            "jsonrpc": "2.0",
            "id": 2,
            "method": "tools/call",
            "params": {"name": "get_document", "arguments": {"filename": "install.md"}},
        },
    ]
    stdin = "".join(json.dumps(r) + "\n" for r in requests)

    result = runner.invoke(app, ["serve"], input=stdin)

    assert result.exit_code == 0, result.output
    responses = [json.loads(line) for line in result.stdout.splitlines() if line.strip()]
    assert [r["id"] for r in responses] == [1, 2]
    assert "Run the installer" in responses[1]["result"]["content"][0]["text"]
