"""Markdown chunker — hierarchical H2 → H3 → paragraph splits with breadcrumbs.

Strategy:
- Documents at or below ``large_file_threshold`` characters are kept whole.
- Larger documents are split on H2 headings; each section becomes
  ``<doc>::<section>`` (leading material before the first H2 is ``_intro``).
- A section over ``chunk_char_limit`` is split on H3 headings into
  ``<doc>::<section>::<subsection>``.
- A subsection still over budget is cut on blank lines with a greedy
  paragraph accumulator into ``<doc>::<section>::<subsection>::partN``.
- A name repeated within one document (two identical headings) gets a
  ``::2``, ``::3``, ... suffix so every chunk name is unique.
- When the document has an H1 title, every chunk starts with a breadcrumb
  line ``> <title> > <section> > <subsection>``.

Heading detection is line-anchored, not a markdown parse: heading-like lines
inside fenced code blocks also split.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from kindex.config import ChunkingCfg

_TITLE_RE = re.compile(r"^#[ \t]+(.+)$", re.MULTILINE)
_H2_SPLIT_RE = re.compile(r"^(?=## )", re.MULTILINE)
_H3_SPLIT_RE = re.compile(r"^(?=### )", re.MULTILINE)
_H2_RE = re.compile(r"## +(.+)")
_H3_RE = re.compile(r"### +(.+)")
_PARAGRAPH_RE = re.compile(r"\n\n+")

INTRO_NAME = "_intro"
SEPARATOR = "::"


class ChunkPiece(NamedTuple):
    filename: str
    content: str


class MarkdownChunker:
    """Split one markdown document into bounded, breadcrumb-prefixed chunks.

    Output is deterministic: identical input always yields identical
    ``(filename, content)`` pairs in the same order.
    """

    def __init__(self, config: ChunkingCfg | None = None) -> None:
        self.config = config or ChunkingCfg()
        if self.config.chunk_char_limit < 1:
            raise ValueError("chunk_char_limit must be >= 1")
        if self.config.large_file_threshold < self.config.chunk_char_limit:
            raise ValueError("large_file_threshold must be >= chunk_char_limit")

    def needs_chunking(self, content: str) -> bool:
        return len(content) > self.config.large_file_threshold

    def chunk(self, filename: str, content: str) -> list[ChunkPiece]:
        """Split *content* of the file *filename* into ChunkPieces.

        Args:
            filename: Relative path of the document; chunk names extend it.
            content: Full decoded text of the document.

        Returns:
            A single piece equal to the input when the document is not over
            the large-file threshold, otherwise the ordered chunk list.
        """
        if not self.needs_chunking(content):
            return [ChunkPiece(filename, content)]

        title_match = _TITLE_RE.search(content)
        title = title_match.group(1).strip() if title_match else ""

        pieces: list[ChunkPiece] = []
        for section in _H2_SPLIT_RE.split(content):
            if self._is_noise(section):
                continue
            heading = _H2_RE.match(section)
            name = heading.group(1).strip() if heading else INTRO_NAME

            if self._fits(section, title, [name]):
                pieces.append(self._piece(filename, title, [name], section))
            else:
                pieces.extend(self._split_subsections(filename, title, name, section))
        return _unique_names(pieces)

    # ------------------------------------------------------------------
    # Levels
    # ------------------------------------------------------------------

    def _split_subsections(
        self, filename: str, title: str, section_name: str, section: str
    ) -> list[ChunkPiece]:
        pieces: list[ChunkPiece] = []
        for subsection in _H3_SPLIT_RE.split(section):
            if self._is_noise(subsection):
                continue
            heading = _H3_RE.match(subsection)
            path = [section_name, heading.group(1).strip()] if heading else [section_name]

            if self._fits(subsection, title, path):
                pieces.append(self._piece(filename, title, path, subsection))
            else:
                pieces.extend(self._split_paragraphs(filename, title, path, subsection))
        return pieces

    def _split_paragraphs(
        self, filename: str, title: str, path: list[str], text: str
    ) -> list[ChunkPiece]:
        """Greedy accumulator over blank-line-delimited paragraphs.

        The budget covers the breadcrumb of the part being filled, so every
        flushed part fits unless a single paragraph alone exceeds it.
        """
        limit = self.config.chunk_char_limit
        pieces: list[ChunkPiece] = []
        accumulator = ""
        part = 0

        for para in _PARAGRAPH_RE.split(text):
            header = _breadcrumb(title, path, part + 1)
            if accumulator and len(header) + len(accumulator) + 2 + len(para) > limit:
                part += 1
                pieces.append(self._part(filename, title, path, part, accumulator))
                accumulator = ""
            accumulator = f"{accumulator}\n\n{para}" if accumulator else para

        if not self._is_noise(accumulator):
            if part > 0:
                part += 1
                pieces.append(self._part(filename, title, path, part, accumulator))
            else:
                pieces.append(self._piece(filename, title, path, accumulator.strip()))
        return pieces

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_noise(self, text: str) -> bool:
        return len(text.strip()) < self.config.min_section_chars

    def _fits(self, text: str, title: str, path: list[str]) -> bool:
        return len(_breadcrumb(title, path)) + len(text) <= self.config.chunk_char_limit

    @staticmethod
    def _piece(filename: str, title: str, path: list[str], body: str) -> ChunkPiece:
        return ChunkPiece(
            SEPARATOR.join([filename, *path]),
            _breadcrumb(title, path) + body,
        )

    @staticmethod
    def _part(filename: str, title: str, path: list[str], part: int, body: str) -> ChunkPiece:
        return ChunkPiece(
            SEPARATOR.join([filename, *path, f"part{part}"]),
            _breadcrumb(title, path, part) + body.strip(),
        )


def _breadcrumb(title: str, path: list[str], part: int | None = None) -> str:
    """``> title > a > b`` plus a blank line; empty for untitled documents."""
    if not title:
        return ""
    trail = " > ".join([title, *path])
    if part is not None:
        trail += f" (part {part})"
    return f"> {trail}\n\n"


def _unique_names(pieces: list[ChunkPiece]) -> list[ChunkPiece]:
    """Suffix repeated chunk names with ``::2``, ``::3``, ... in document order."""
    seen = {piece.filename for piece in pieces}
    if len(seen) == len(pieces):
        return pieces

    used: set[str] = set()
    result: list[ChunkPiece] = []
    for piece in pieces:
        name = piece.filename
        n = 1
        while name in used:
            n += 1
            name = f"{piece.filename}{SEPARATOR}{n}"
        used.add(name)
        result.append(ChunkPiece(name, piece.content))
    return result


def parent_of(filename: str) -> str:
    """Return the parent document path of a chunk filename (itself for whole files)."""
    return filename.split(SEPARATOR, 1)[0]
