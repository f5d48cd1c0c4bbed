"""kindex remove — delete every record of a source.

Removes documents, their FTS5 index entries, and embeddings in all vec tables.

Usage:
  kindex remove --source handbook
  kindex remove --source handbook --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from kindex.cli.common import load_config_or_exit, open_repository, resolve_db
from kindex.cli.errors import err_no_db, err_source_not_found

console = Console()


def remove_cmd(
    source: Annotated[
        str,
        typer.Option("--source", "-s", help="Source name to remove."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .kindex.db."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a source and all its documents from the knowledge base."""
    cfg = load_config_or_exit(console)
    db_path = resolve_db(db, cfg)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    conn, repo = open_repository(db_path, cfg)
    try:
        count = repo.count_documents(source)
        if count == 0:
            console.print(err_source_not_found(source))
            raise typer.Exit(0)

        console.print(f"\nRemove source: [bold]{source}[/]  ({count} documents)")

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        deleted = repo.delete_source(source)
        console.print(f"\n[green]✓[/] Removed: {source}")
        console.print(f"  {deleted} documents deleted")
    finally:
        conn.close()
