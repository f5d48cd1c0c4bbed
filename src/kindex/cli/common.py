"""Shared CLI plumbing: config loading, logging setup, DB opening."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from kindex.cli.errors import err_config, err_no_db
from kindex.config import KindexConfig, load_config
from kindex.db.connection import Database
from kindex.db.repository import Repository
from kindex.db.schema import initialize
from kindex.db.vectors import ensure_vec_table, vec_table_for
from kindex.embeddings import LiteLLMEmbedder
from kindex.errors import ConfigError
from kindex.rag.router import QueryRouter
from kindex.rag.service import KnowledgeService

_LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format=_LOG_FORMAT)


def load_config_or_exit(console: Console) -> KindexConfig:
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def resolve_db(db: Path | None, cfg: KindexConfig) -> Path:
    return db if db is not None else Path(cfg.database.path)


def open_repository(
    db_path: Path, cfg: KindexConfig, *, create_vec: bool = False
) -> tuple[sqlite3.Connection, Repository]:
    """Open (or create) the database, run migrations, bind the model's vec table."""
    conn = Database(db_path).connect()
    try:
        initialize(conn)
        if create_vec:
            table = ensure_vec_table(conn, cfg.embedding.model, cfg.embedding.dimensions)
        else:
            table = vec_table_for(cfg.embedding.model)
    except Exception:
        conn.close()
        raise
    return conn, Repository(conn, table)


def build_service(repo: Repository, cfg: KindexConfig) -> KnowledgeService:
    """Wire store, embedder, and router into a KnowledgeService."""
    router = QueryRouter(repo, LiteLLMEmbedder(cfg.embedding), cfg.retrieval)
    return KnowledgeService(repo, router, cfg.retrieval)


def open_service(
    console: Console, db: Path | None
) -> tuple[KnowledgeService, sqlite3.Connection]:
    """Load config and open an existing database; exit 1 if there is none."""
    cfg = load_config_or_exit(console)
    db_path = resolve_db(db, cfg)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    conn, repo = open_repository(db_path, cfg)
    return build_service(repo, cfg), conn
