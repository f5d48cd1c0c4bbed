"""kindex serve — JSON-RPC tool server on stdin/stdout.

stdout carries protocol messages only; logs go to stderr.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from kindex.cli.common import build_service, load_config_or_exit, open_repository, resolve_db
from kindex.cli.errors import err_no_db
from kindex.server import ToolServer

logger = logging.getLogger(__name__)

console = Console(stderr=True)


def serve_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .kindex.db."),
    ] = None,
) -> None:
    """Serve search / get_document / list_sources over stdio."""
    cfg = load_config_or_exit(console)
    db_path = resolve_db(db, cfg)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    conn, repo = open_repository(db_path, cfg)
    server = ToolServer(build_service(repo, cfg), cfg.retrieval.allowed_source_types)
    logger.info("kindex tool server ready (db=%s)", db_path)
    try:
        server.serve(sys.stdin, sys.stdout)
    finally:
        conn.close()
