"""kindex — incremental markdown knowledge index with hybrid retrieval."""

__version__ = "0.1.0"
