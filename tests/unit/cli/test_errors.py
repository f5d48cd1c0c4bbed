"""Tests for kindex rich error messages."""

from __future__ import annotations

import pytest

from kindex.cli.errors import (
    err_config,
    err_ingest_aborted,
    err_no_api_key,
    err_no_db,
    err_no_sources,
    err_source_not_found,
    err_source_path,
    err_tool_failure,
    err_unknown_sources,
)


def _has_action(msg: str) -> bool:
    """Every error must contain a cause AND an actionable instruction."""
    lower = msg.lower()
    return any(kw in lower for kw in ["run:", "set:", "use:", "check", "re-run", "kindex "])


@pytest.mark.parametrize("msg", [
    err_no_api_key("openai"),
    err_no_db(".kindex.db"),
    err_no_sources(),
    err_unknown_sources(["x"], ["a", "b"]),
    err_source_path("/missing"),
    err_ingest_aborted("docs", "rate limited", 20),
    err_source_not_found("docs"),
])
def test_errors_are_actionable(msg):
    assert _has_action(msg)


def test_no_api_key_names_env_var():
    assert "OPENAI_API_KEY" in err_no_api_key("openai")
    assert "VOYAGE_API_KEY" in err_no_api_key("voyage")
    assert "ACME_API_KEY" in err_no_api_key("acme")


def test_ollama_has_no_key_but_message_still_renders():
    assert "OLLAMA_API_KEY" in err_no_api_key("ollama")


def test_unknown_sources_lists_known():
    msg = err_unknown_sources(["x"], ["a", "b"])
    assert "x" in msg
    assert "a, b" in msg
    assert "(none)" in err_unknown_sources(["x"], [])


def test_ingest_aborted_reports_committed_count():
    assert "20 records were committed" in err_ingest_aborted("docs", "boom", 20)


def test_config_and_tool_failure_include_message():
    assert "bad value" in err_config("bad value")
    assert "upstream_failure" in err_tool_failure("upstream_failure", "down")
