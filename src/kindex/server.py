"""JSON-RPC 2.0 tool server exposing the retrieval API (MCP-style).

Methods: ``initialize``, ``tools/list``, ``tools/call``, ``ping``.
Transport: one JSON request per line on stdin, one response per line on stdout.

Tool-level failures (malformed input, upstream failure) come back as a
result with ``isError: true``; protocol-level failures as JSON-RPC errors.
"""

from __future__ import annotations

import json
import logging
from typing import IO, Any

from kindex import __version__
from kindex.rag.service import KnowledgeService, ToolResult

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "kindex"

ERR_PARSE = -32700
ERR_INVALID_REQUEST = -32600
ERR_METHOD_NOT_FOUND = -32601
ERR_INTERNAL = -32000


def tool_definitions(source_types: list[str] | None = None) -> list[dict]:
    """Tool schemas advertised by ``tools/list``."""
    source_type_schema: dict[str, Any] = {
        "type": "string",
        "description": "Filter by source category",
    }
    if source_types:
        source_type_schema["enum"] = list(source_types)

    return [
        {
            "name": "search",
            "description": (
                "Search the knowledge base. Identifier-like queries (e.g. DP.AGENT.001) "
                "use exact matching; other queries use semantic search."
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search query text"},
                    "source": {"type": "string", "description": "Filter by source name"},
                    "source_type": source_type_schema,
                    "limit": {"type": "number", "description": "Maximum results (default: 5)"},
                },
                "required": ["query"],
            },
        },
        {
            "name": "get_document",
            "description": "Get a specific document by filename",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "filename": {
                        "type": "string",
                        "description": "Document filename (relative path, chunks use ::)",
                    },
                    "source": {
                        "type": "string",
                        "description": "Source name to disambiguate if filename exists in several sources",
                    },
                },
                "required": ["filename"],
            },
        },
        {
            "name": "list_sources",
            "description": "List all knowledge sources with document counts",
            "inputSchema": {
                "type": "object",
                "properties": {"source_type": source_type_schema},
            },
        },
    ]


class ToolServer:
    """Dispatch JSON-RPC requests to a KnowledgeService."""

    def __init__(self, service: KnowledgeService, source_types: list[str] | None = None) -> None:
        self._service = service
        self._tools = tool_definitions(source_types)

    def handle(self, request: Any) -> dict | None:
        """Handle one decoded request. Returns None for notifications."""
        if not isinstance(request, dict) or request.get("jsonrpc") != "2.0":
            return _error(None, ERR_INVALID_REQUEST, "Invalid Request")

        req_id = request.get("id")
        method = request.get("method")
        params = request.get("params") or {}

        if req_id is None:
            return None

        try:
            if method == "initialize":
                return _result(
                    req_id,
                    {
                        "protocolVersion": PROTOCOL_VERSION,
                        "capabilities": {"tools": {}},
                        "serverInfo": {"name": SERVER_NAME, "version": __version__},
                    },
                )
            if method == "tools/list":
                return _result(req_id, {"tools": self._tools})
            if method == "ping":
                return _result(req_id, {})
            if method == "tools/call":
                return self._call_tool(req_id, params)
            return _error(req_id, ERR_METHOD_NOT_FOUND, f"Method not found: {method}")
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in %s", method)
            return _error(req_id, ERR_INTERNAL, str(exc) or "Unknown error")

    def _call_tool(self, req_id: Any, params: dict) -> dict:
        name = params.get("name")
        args = params.get("arguments") or {}

        if name == "search":
            outcome = self._service.search(
                args.get("query"),
                source=args.get("source"),
                source_type=args.get("source_type"),
                limit=args.get("limit"),
            )
            return _result(req_id, _tool_content(outcome))

        if name == "get_document":
            outcome = self._service.get_document(args.get("filename"), source=args.get("source"))
            if outcome.ok and not outcome.payload["found"]:
                return _result(req_id, {"content": [{"type": "text", "text": "Document not found"}]})
            if outcome.ok:
                text = outcome.payload["document"]["content"]
                return _result(req_id, {"content": [{"type": "text", "text": text}]})
            return _result(req_id, _tool_content(outcome))

        if name == "list_sources":
            outcome = self._service.list_sources(args.get("source_type"))
            return _result(req_id, _tool_content(outcome))

        return _error(req_id, ERR_METHOD_NOT_FOUND, f"Unknown tool: {name}")

    def serve(self, stdin: IO[str], stdout: IO[str]) -> None:
        """Read line-delimited requests until EOF, writing one response per line."""
        for line in stdin:
            line = line.strip()
            if not line:
                continue
            try:
                request = json.loads(line)
            except json.JSONDecodeError as exc:
                response: dict | None = _error(None, ERR_PARSE, f"Parse error: {exc}")
            else:
                response = self.handle(request)
            if response is not None:
                stdout.write(json.dumps(response, ensure_ascii=False) + "\n")
                stdout.flush()


def _tool_content(outcome: ToolResult) -> dict:
    if outcome.ok:
        text = json.dumps(outcome.payload, indent=2, ensure_ascii=False)
        return {"content": [{"type": "text", "text": text}]}
    return {
        "content": [{"type": "text", "text": outcome.error.message}],
        "isError": True,
        "errorKind": outcome.error.kind.value,
    }


def _result(req_id: Any, result: dict) -> dict:
    return {"jsonrpc": "2.0", "id": req_id, "result": result}


def _error(req_id: Any, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "id": req_id, "error": {"code": code, "message": message}}
