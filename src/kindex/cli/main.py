"""kindex CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from kindex.cli.common import setup_logging
from kindex.cli.ingest import ingest_cmd
from kindex.cli.init import init_cmd
from kindex.cli.query import get_cmd, search_cmd, sources_cmd
from kindex.cli.remove import remove_cmd
from kindex.cli.serve import serve_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("kindex")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"kindex {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="kindex",
    help=(
        "kindex — incremental Markdown knowledge index with hybrid search.\n\n"
        "  kindex ingest   Sync Markdown sources into the index (skips unchanged).\n"
        "  kindex search   Identifier lookup or semantic search.\n"
        "  kindex serve    Expose search / get_document / list_sources over stdio."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging on stderr."),
    ] = False,
) -> None:
    """kindex — incremental Markdown knowledge index."""
    setup_logging(verbose)


app.command("init")(init_cmd)
app.command("ingest")(ingest_cmd)
app.command("search")(search_cmd)
app.command("get")(get_cmd)
app.command("sources")(sources_cmd)
app.command("remove")(remove_cmd)
app.command("serve")(serve_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed kindex version."""
    typer.echo(f"kindex {_installed_version()}")


if __name__ == "__main__":
    app()
