"""kindex retrieval — hybrid query router and caller-facing service."""

from kindex.rag.router import QueryKind, QueryRouter, RoutedResult, merge_hits
from kindex.rag.service import ErrorKind, KnowledgeService, ToolError, ToolResult

__all__ = [
    "ErrorKind",
    "KnowledgeService",
    "QueryKind",
    "QueryRouter",
    "RoutedResult",
    "ToolError",
    "ToolResult",
    "merge_hits",
]
