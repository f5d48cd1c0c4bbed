"""Tests for source scanning and candidate building."""

from __future__ import annotations

import pytest

from kindex.config import ChunkingCfg
from kindex.ingest.fingerprint import fingerprint
from kindex.ingest.markdown import MarkdownChunker
from kindex.ingest.scanner import build_candidates, scan_markdown_files, should_skip


def _write(root, relative, content="# Doc\n\nSome useful content here."):
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def corpus(tmp_path):
    root = tmp_path / "corpus"
    _write(root, "b.md")
    _write(root, "a.md")
    _write(root, "guides/setup.md")
    _write(root, "guides/notes.txt")
    _write(root, "node_modules/pkg/readme.md")
    _write(root, ".git/info.md")
    _write(root, "build/out.md")
    _write(root, "drafts/wip.md")
    (root / "empty.md").write_text("", encoding="utf-8")
    return root


# ------------------------------------------------------------------
# should_skip
# ------------------------------------------------------------------


@pytest.mark.parametrize("relative", [
    "node_modules/x/readme.md",
    ".git/HEAD",
    ".obsidian/workspace.md",
    "dist/index.md",
    "site/build/page.md",
    "__pycache__/x.md",
    ".env",
])
def test_builtin_skip_patterns(relative):
    assert should_skip(relative)


def test_builtin_patterns_are_segment_aware():
    assert not should_skip("building-blocks.md")
    assert not should_skip("distance.md")


def test_user_exclude_substring_and_glob():
    assert should_skip("drafts/wip.md", ["drafts/"])
    assert should_skip("notes/2024-01.md", ["notes/2024-*"])
    assert not should_skip("notes/2023-01.md", ["notes/2024-*"])


# ------------------------------------------------------------------
# scan_markdown_files
# ------------------------------------------------------------------


def test_scan_returns_sorted_nonempty_markdown(corpus):
    files = scan_markdown_files(corpus)
    assert [f.relative for f in files] == ["a.md", "b.md", "drafts/wip.md", "guides/setup.md"]


def test_scan_applies_excludes(corpus):
    files = scan_markdown_files(corpus, exclude=["drafts"])
    assert "drafts/wip.md" not in [f.relative for f in files]


def test_scan_missing_root_raises(tmp_path):
    with pytest.raises(FileNotFoundError, match="not found"):
        scan_markdown_files(tmp_path / "missing")


def test_scan_relative_paths_are_posix(corpus):
    files = scan_markdown_files(corpus)
    assert all("\\" not in f.relative for f in files)
    assert files[0].path == corpus / "a.md"


# ------------------------------------------------------------------
# build_candidates
# ------------------------------------------------------------------


def test_small_files_become_whole_records(corpus):
    candidates = build_candidates(scan_markdown_files(corpus), MarkdownChunker())
    first = candidates[0]
    assert first.filename == "a.md"
    assert first.parent is None
    assert first.fingerprint == fingerprint(first.content)


def test_near_empty_files_are_skipped(tmp_path):
    _write(tmp_path, "tiny.md", "# Hi\n")
    _write(tmp_path, "real.md")
    candidates = build_candidates(scan_markdown_files(tmp_path), MarkdownChunker())
    assert [c.filename for c in candidates] == ["real.md"]


def test_large_files_are_chunked_with_parent(tmp_path):
    body = "".join(f"## Part {i}\n\n" + "text " * 100 + "\n\n" for i in range(4))
    _write(tmp_path, "big.md", "# Big\n\n" + body)
    chunker = MarkdownChunker(ChunkingCfg(large_file_threshold=1500, chunk_char_limit=1000))

    candidates = build_candidates(scan_markdown_files(tmp_path), chunker)

    assert [c.filename for c in candidates] == [f"big.md::Part {i}" for i in range(4)]
    assert all(c.parent == "big.md" for c in candidates)
    assert all(c.fingerprint == fingerprint(c.content) for c in candidates)
