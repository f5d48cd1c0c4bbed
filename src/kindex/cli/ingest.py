"""kindex ingest — sync Markdown sources into .kindex.db.

Source selection (first match wins):
  --config FILE            → every source listed in FILE (YAML or JSON)
  --source/--type/--path   → exactly one source
  (nothing)                → the ``sources:`` list of kindex.yaml

``--only NAME`` (repeatable) narrows a multi-source run to selected sources.
Unchanged records are skipped, so re-running after a failure resumes cheaply.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from kindex.cli.common import load_config_or_exit, open_repository, resolve_db
from kindex.cli.errors import (
    err_config,
    err_ingest_aborted,
    err_no_api_key,
    err_no_sources,
    err_source_path,
    err_unknown_sources,
)
from kindex.config import KindexConfig, SourceDescriptor, load_sources_file
from kindex.db.repository import Repository
from kindex.embeddings import LiteLLMEmbedder, provider_of, validate_api_key
from kindex.errors import ConfigError, EmbeddingError
from kindex.ingest.markdown import MarkdownChunker
from kindex.ingest.scanner import build_candidates, scan_markdown_files
from kindex.ingest.sync import SyncEngine

console = Console()


def ingest_cmd(
    source: Annotated[
        str | None,
        typer.Option("--source", "-s", help="Source name (requires --type and --path)."),
    ] = None,
    source_type: Annotated[
        str | None,
        typer.Option("--type", "-t", help="Source category, e.g. 'docs' or 'notes'."),
    ] = None,
    path: Annotated[
        Path | None,
        typer.Option("--path", "-p", help="Root directory of the source."),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="YAML/JSON file listing sources."),
    ] = None,
    only: Annotated[
        list[str] | None,
        typer.Option("--only", help="Ingest only this configured source (repeatable)."),
    ] = None,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", help="Path pattern to exclude (repeatable)."),
    ] = None,
    prune: Annotated[
        bool,
        typer.Option("--prune", help="Delete records whose files no longer exist."),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show what would change without writing."),
    ] = False,
    list_only: Annotated[
        bool,
        typer.Option("--list", help="List the selected sources and exit."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .kindex.db (created if missing)."),
    ] = None,
) -> None:
    """Ingest Markdown sources into the knowledge base."""
    cfg = load_config_or_exit(console)
    descriptors = _select_sources(cfg, source, source_type, path, config_file, exclude or [])

    if only:
        known = [d.source for d in descriptors]
        unknown = [name for name in only if name not in known]
        if unknown:
            console.print(err_unknown_sources(unknown, known))
            raise typer.Exit(1)
        descriptors = [d for d in descriptors if d.source in only]

    if list_only:
        _show_sources(descriptors)
        raise typer.Exit(0)

    db_path = resolve_db(db, cfg)

    if dry_run and not db_path.exists():
        for descriptor in descriptors:
            _preview_source(descriptor, cfg)
        return

    try:
        conn, repo = open_repository(db_path, cfg, create_vec=not dry_run)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    total = 0
    try:
        for descriptor in descriptors:
            total += _process_source(descriptor, repo, cfg, prune=prune, dry_run=dry_run)
    finally:
        conn.close()

    if not dry_run:
        console.print(f"\n[bold green]Done.[/] Total indexed: {total}")


# ------------------------------------------------------------------
# Source selection
# ------------------------------------------------------------------


def _select_sources(
    cfg: KindexConfig,
    source: str | None,
    source_type: str | None,
    path: Path | None,
    config_file: Path | None,
    exclude: list[str],
) -> list[SourceDescriptor]:
    if config_file is not None:
        if not config_file.exists():
            console.print(f"[red]Error:[/] Sources file not found: {config_file}")
            raise typer.Exit(1)
        try:
            descriptors = load_sources_file(config_file)
        except ConfigError as exc:
            console.print(err_config(str(exc)))
            raise typer.Exit(1)
    elif source or source_type or path:
        if not (source and source_type and path):
            console.print("[red]Error:[/] --source, --type and --path must be given together.")
            raise typer.Exit(1)
        descriptors = [SourceDescriptor(source=source, source_type=source_type, path=str(path))]
    else:
        descriptors = list(cfg.sources)

    if not descriptors:
        console.print(err_no_sources())
        raise typer.Exit(1)

    if exclude:
        for descriptor in descriptors:
            descriptor.exclude = [*descriptor.exclude, *exclude]
    return descriptors


def _show_sources(descriptors: list[SourceDescriptor]) -> None:
    table = Table(title="Sources")
    table.add_column("Source", style="bold")
    table.add_column("Type")
    table.add_column("Path")
    table.add_column("Exclude", style="dim")
    for d in descriptors:
        table.add_row(d.source, d.source_type, d.path, ", ".join(d.exclude))
    console.print(table)


# ------------------------------------------------------------------
# Per-source pipeline
# ------------------------------------------------------------------


def _scan(descriptor: SourceDescriptor, cfg: KindexConfig) -> tuple[int, list] | None:
    try:
        files = scan_markdown_files(descriptor.root, descriptor.exclude)
    except FileNotFoundError:
        console.print(err_source_path(str(descriptor.root)))
        return None
    candidates = build_candidates(files, MarkdownChunker(cfg.chunking))
    return len(files), candidates


def _preview_source(descriptor: SourceDescriptor, cfg: KindexConfig) -> None:
    console.print(f"\n[bold]→ {descriptor.source}[/] ({descriptor.source_type})")
    scanned = _scan(descriptor, cfg)
    if scanned is None:
        return
    n_files, candidates = scanned
    console.print(f"  Files: {n_files}  |  Records: {len(candidates)}")
    console.print("  [dim]Dry run — no database yet, every record would be indexed[/]")


def _process_source(
    descriptor: SourceDescriptor,
    repo: Repository,
    cfg: KindexConfig,
    *,
    prune: bool,
    dry_run: bool,
) -> int:
    """Scan, diff, embed, and store one source. Returns records indexed."""
    console.print(f"\n[bold]→ {descriptor.source}[/] ({descriptor.source_type})")

    scanned = _scan(descriptor, cfg)
    if scanned is None:
        return 0
    n_files, candidates = scanned

    engine = SyncEngine(repo, LiteLLMEmbedder(cfg.embedding), cfg.embedding, cfg.chunking)
    plan = engine.plan(descriptor.source, candidates, prune=prune)

    console.print(
        f"  Files: {n_files}  |  Records: {len(candidates)}  |  "
        f"Unchanged: {plan.unchanged}  |  To index: {len(plan.to_index)}"
    )
    if plan.stale_parents:
        console.print(f"  [yellow]↻ {len(plan.stale_parents)} chunked file(s) changed[/]")
    if plan.orphans:
        verb = "removing" if prune else "use --prune to remove"
        console.print(f"  [yellow]{len(plan.orphans)} stale record(s) ({verb})[/]")

    if dry_run:
        console.print("  [dim]Dry run — nothing written to DB[/]")
        return 0

    if plan.is_empty:
        console.print("  [dim]↷ Up to date[/]")
        return 0

    if plan.to_index:
        try:
            validate_api_key(cfg.embedding.model)
        except EnvironmentError:
            console.print(err_no_api_key(provider_of(cfg.embedding.model)))
            raise typer.Exit(1)

    indexed = 0
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
    ) as prog:
        task = prog.add_task("Embedding…", total=len(plan.to_index))

        def _on_batch(done: int, total: int) -> None:
            nonlocal indexed
            indexed = done
            prog.update(task, completed=done)

        try:
            report = engine.apply(plan, descriptor.source_type, on_progress=_on_batch)
        except EmbeddingError as exc:
            console.print(err_ingest_aborted(descriptor.source, str(exc), indexed))
            raise typer.Exit(1)

    console.print(
        f"  [green]✓[/] Indexed: {report.indexed}  |  "
        f"Cleaned parents: {report.cleaned_parents}  |  Deleted: {report.deleted}"
    )
    return report.indexed
