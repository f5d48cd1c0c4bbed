"""kindex ingest pipeline — fingerprinting, chunking, scanning, incremental sync."""

from kindex.ingest.fingerprint import fingerprint
from kindex.ingest.markdown import ChunkPiece, MarkdownChunker
from kindex.ingest.scanner import build_candidates, scan_markdown_files
from kindex.ingest.sync import SyncEngine, SyncPlan, SyncReport

__all__ = [
    "ChunkPiece",
    "MarkdownChunker",
    "SyncEngine",
    "SyncPlan",
    "SyncReport",
    "build_candidates",
    "fingerprint",
    "scan_markdown_files",
]
