"""Rich error messages — what went wrong plus the action that fixes it.

Usage:
    from kindex.cli.errors import err_no_db
    console.print(err_no_db(".kindex.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from kindex.embeddings import _PROVIDER_ENV


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = _PROVIDER_ENV.get(provider.lower()) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".kindex.db") -> str:
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  kindex ingest --source NAME --type TYPE --path DIR"
    )


def err_config(message: str) -> str:
    return f"[red]Error:[/] Invalid configuration.\n  {message}"


def err_no_sources() -> str:
    return (
        "[red]Error:[/] No sources to ingest.\n"
        "  Use:  kindex ingest --source NAME --type TYPE --path DIR\n"
        "   or:  kindex ingest --config sources.yaml\n"
        "   or:  add a 'sources:' list to kindex.yaml"
    )


def err_unknown_sources(unknown: list[str], known: list[str]) -> str:
    known_list = ", ".join(known) if known else "(none)"
    return (
        f"[red]Error:[/] Unknown source(s): {', '.join(unknown)}\n"
        f"  Configured sources: {known_list}\n"
        "  Run:  kindex ingest --config <file> --list"
    )


def err_source_path(path: str) -> str:
    return (
        f"[red]✗ Path not found:[/] {path}\n"
        "  Check the source 'path' entry (~ is expanded)."
    )


def err_ingest_aborted(source: str, message: str, indexed_before: int) -> str:
    return (
        f"[red]Error:[/] Ingestion of '{source}' aborted: {message}\n"
        f"  {indexed_before} records were committed before the failure.\n"
        "  Re-run the same command — unchanged records are skipped."
    )


def err_source_not_found(source: str) -> str:
    return (
        f"[yellow]Source not found:[/] '{source}' is not in the knowledge base.\n"
        "  Run:  kindex sources  to see all ingested sources."
    )


def err_tool_failure(kind: str, message: str) -> str:
    return f"[red]Error ({kind}):[/] {message}"
