"""Source scanning — walk a corpus root and build candidate records.

Markdown files are read as UTF-8; files above the chunker's large-file
threshold are split by ``MarkdownChunker`` and every resulting chunk keeps
the relative path of its parent file.
"""

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from kindex.db.models import CandidateRecord
from kindex.ingest.fingerprint import fingerprint
from kindex.ingest.markdown import MarkdownChunker

logger = logging.getLogger(__name__)

_MD_EXTS = {".md"}

_SKIP_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"node_modules"),
    re.compile(r"\.git(/|$)"),
    re.compile(r"\.obsidian"),
    re.compile(r"(^|/)dist(/|$)"),
    re.compile(r"(^|/)build(/|$)"),
    re.compile(r"__pycache__"),
    re.compile(r"\.env"),
)


@dataclass(frozen=True)
class ScannedFile:
    path: Path
    relative: str  # POSIX path relative to the source root


def should_skip(relative: str, exclude: list[str] | None = None) -> bool:
    """True if *relative* matches a built-in skip pattern or a user exclude.

    User patterns match as plain substrings or as fnmatch globs.
    """
    if any(p.search(relative) for p in _SKIP_PATTERNS):
        return True
    for pattern in exclude or []:
        if pattern in relative or fnmatch.fnmatch(relative, pattern):
            return True
    return False


def scan_markdown_files(root: Path, exclude: list[str] | None = None) -> list[ScannedFile]:
    """Return non-empty ``.md`` files under *root*, sorted by relative path.

    Raises:
        FileNotFoundError: If *root* does not exist or is not a directory.
    """
    if not root.is_dir():
        raise FileNotFoundError(f"Source path not found: {root}")

    results: list[ScannedFile] = []
    _walk(root, root, exclude or [], results)
    return results


def _walk(base: Path, directory: Path, exclude: list[str], out: list[ScannedFile]) -> None:
    try:
        entries = sorted(directory.iterdir())
    except PermissionError:
        logger.warning("Permission denied, skipping %s", directory)
        return
    for entry in entries:
        relative = entry.relative_to(base).as_posix()
        if should_skip(relative, exclude):
            continue
        if entry.is_dir():
            _walk(base, entry, exclude, out)
        elif entry.suffix.lower() in _MD_EXTS and entry.stat().st_size > 0:
            out.append(ScannedFile(path=entry, relative=relative))


def build_candidates(files: list[ScannedFile], chunker: MarkdownChunker) -> list[CandidateRecord]:
    """Read, chunk, and fingerprint *files* into candidate records.

    Near-empty files (fewer than ``min_section_chars`` trimmed characters)
    are skipped.
    """
    min_chars = chunker.config.min_section_chars
    candidates: list[CandidateRecord] = []
    for file in files:
        content = file.path.read_text(encoding="utf-8", errors="replace")
        if len(content.strip()) < min_chars:
            continue

        if not chunker.needs_chunking(content):
            candidates.append(
                CandidateRecord(
                    filename=file.relative,
                    content=content,
                    fingerprint=fingerprint(content),
                )
            )
            continue

        pieces = chunker.chunk(file.relative, content)
        logger.info(
            "%s: large file (%dKB) → %d chunks",
            file.relative,
            len(content) // 1024,
            len(pieces),
        )
        candidates.extend(
            CandidateRecord(
                filename=piece.filename,
                content=piece.content,
                fingerprint=fingerprint(piece.content),
                parent=file.relative,
            )
            for piece in pieces
        )
    return candidates
