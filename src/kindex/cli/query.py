"""kindex search / get / sources — the retrieval API from the command line."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from kindex.cli.common import open_service
from kindex.cli.errors import err_tool_failure
from kindex.rag.service import ToolResult

console = Console()

_PREVIEW_CHARS = 160


def search_cmd(
    query: Annotated[str, typer.Argument(help="Identifier (e.g. DP.AGENT.001) or question.")],
    source: Annotated[
        str | None, typer.Option("--source", "-s", help="Restrict to one source.")
    ] = None,
    source_type: Annotated[
        str | None, typer.Option("--type", "-t", help="Restrict to one source category.")
    ] = None,
    limit: Annotated[
        int | None, typer.Option("--limit", "-n", help="Maximum results.")
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print raw JSON.")] = False,
    db: Annotated[Path | None, typer.Option("--db", help="Path to .kindex.db.")] = None,
) -> None:
    """Search the knowledge base."""
    service, conn = open_service(console, db)
    try:
        outcome = service.search(query, source=source, source_type=source_type, limit=limit)
    finally:
        conn.close()
    _exit_on_error(outcome)

    if as_json:
        typer.echo(json.dumps(outcome.payload, indent=2, ensure_ascii=False))
        return
    if not outcome.payload:
        console.print("[yellow]No results.[/]")
        return

    table = Table(title=f"Results for {query!r}")
    table.add_column("Score", justify="right")
    table.add_column("Document", style="bold")
    table.add_column("Source")
    table.add_column("Preview", style="dim")
    for hit in outcome.payload:
        preview = " ".join(hit["content"].split())[:_PREVIEW_CHARS]
        table.add_row(
            f"{hit['score']:.3f}",
            hit["filename"],
            f"{hit['source']} ({hit['source_type']})",
            preview,
        )
    console.print(table)


def get_cmd(
    filename: Annotated[str, typer.Argument(help="Document filename (chunks use ::).")],
    source: Annotated[
        str | None, typer.Option("--source", "-s", help="Source to disambiguate.")
    ] = None,
    raw: Annotated[bool, typer.Option("--raw", help="Print content without rendering.")] = False,
    db: Annotated[Path | None, typer.Option("--db", help="Path to .kindex.db.")] = None,
) -> None:
    """Print one document by filename."""
    service, conn = open_service(console, db)
    try:
        outcome = service.get_document(filename, source=source)
    finally:
        conn.close()
    _exit_on_error(outcome)

    if not outcome.payload["found"]:
        console.print(f"[yellow]Document not found:[/] {filename}")
        return

    document = outcome.payload["document"]
    if raw:
        typer.echo(document["content"])
        return
    console.print(f"[dim]{document['source']} ({document['source_type']})[/]")
    console.print(Markdown(document["content"]))


def sources_cmd(
    source_type: Annotated[
        str | None, typer.Option("--type", "-t", help="Only this source category.")
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print raw JSON.")] = False,
    db: Annotated[Path | None, typer.Option("--db", help="Path to .kindex.db.")] = None,
) -> None:
    """List sources with document counts."""
    service, conn = open_service(console, db)
    try:
        outcome = service.list_sources(source_type)
    finally:
        conn.close()
    _exit_on_error(outcome)

    if as_json:
        typer.echo(json.dumps(outcome.payload, indent=2, ensure_ascii=False))
        return
    if not outcome.payload:
        console.print("[dim]No sources ingested yet.[/]")
        return

    table = Table(title="Sources")
    table.add_column("Type")
    table.add_column("Source", style="bold")
    table.add_column("Documents", justify="right")
    for row in outcome.payload:
        table.add_row(row["source_type"], row["source"], str(row["count"]))
    console.print(table)


def _exit_on_error(outcome: ToolResult) -> None:
    if not outcome.ok:
        console.print(err_tool_failure(outcome.error.kind.value, outcome.error.message))
        raise typer.Exit(1)
