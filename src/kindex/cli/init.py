"""kindex init — write the global defaults file."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from kindex.config import _GLOBAL_CONFIG_PATH, ensure_global_config

console = Console()


def init_cmd(
    config_path: Annotated[
        Path | None,
        typer.Option("--path", help="Where to write the global config (default ~/.kindex/config.yaml)."),
    ] = None,
) -> None:
    """Create the global config with defaults (never overwrites)."""
    existed = (config_path or _GLOBAL_CONFIG_PATH).exists()
    target = ensure_global_config(config_path)
    if existed:
        console.print(f"[dim]Already exists:[/] {target}")
    else:
        console.print(f"[green]✓[/] Global config: {target}")
    console.print("  API keys belong in environment variables, e.g. export OPENAI_API_KEY=sk-...")
