"""kindex configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (KINDEX_EMBEDDING_MODEL, KINDEX_DB)
  3. Per-project kindex.yaml
  4. Global ~/.kindex/config.yaml  (defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import json
import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from kindex.errors import ConfigError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".kindex"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "kindex.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate keys like max_retries or chunk_char_limit.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "chunking", "retrieval", "database", "sources"]
)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding provider configuration (kindex.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Vector width; must match the model's output.
        batch_size: Number of texts sent per embedding request.
        batch_delay: Seconds to pause between batches.
        max_retries: Rate-limit retry ceiling per batch.
        backoff_base: Base delay in seconds; attempt N waits base * 2**(N+1).
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 10
    batch_delay: float = 0.3
    max_retries: int = 5
    backoff_base: float = 1.0


@dataclass
class ChunkingCfg:
    """Hierarchical chunker limits (kindex.yaml: chunking:)."""

    large_file_threshold: int = 100_000
    chunk_char_limit: int = 10_000
    min_section_chars: int = 10


@dataclass
class RetrievalCfg:
    """Query router configuration (kindex.yaml: retrieval:).

    Attributes:
        default_limit: Result count when the caller does not pass one.
        max_limit: Largest accepted result count.
        confidence_threshold: Top semantic score below which the fuzzy path
            is merged in.
        identifier_max_length: Queries shorter than this containing ``.X``
            (dot + uppercase) are treated as identifiers.
        allowed_source_types: When non-empty, ``source_type`` filters must be
            one of these values.
    """

    default_limit: int = 5
    max_limit: int = 50
    confidence_threshold: float = 0.6
    identifier_max_length: int = 30
    allowed_source_types: list[str] = field(default_factory=list)


@dataclass
class DatabaseCfg:
    """Corpus store location (kindex.yaml: database:)."""

    path: str = ".kindex.db"


@dataclass
class SourceDescriptor:
    """A corpus to scan (kindex.yaml: sources[]).

    Attributes:
        source: Unique source name (e.g. ``PACK-digital-platform``).
        source_type: Category used for filtering (e.g. ``pack``, ``guides``).
        path: Filesystem root of the markdown files.
        exclude: Extra substring / glob patterns to skip.
    """

    source: str
    source_type: str
    path: str
    exclude: list[str] = field(default_factory=list)

    @property
    def root(self) -> Path:
        return Path(self.path).expanduser()


@dataclass
class KindexConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    sources: list[SourceDescriptor] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse config file '{path}': {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file '{path}' must be a mapping, got {type(raw).__name__}")
    return raw


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: KindexConfig) -> None:
    """Raise ConfigError for values no component can work with."""
    ch = cfg.chunking
    if ch.chunk_char_limit < 1:
        raise ConfigError("chunking.chunk_char_limit must be >= 1")
    if ch.large_file_threshold <= ch.chunk_char_limit:
        raise ConfigError(
            "chunking.large_file_threshold must be larger than chunking.chunk_char_limit "
            f"(got {ch.large_file_threshold} <= {ch.chunk_char_limit})"
        )
    if ch.min_section_chars < 0:
        raise ConfigError("chunking.min_section_chars must be >= 0")

    e = cfg.embedding
    if e.dimensions < 1:
        raise ConfigError("embedding.dimensions must be >= 1")
    if e.batch_size < 1:
        raise ConfigError("embedding.batch_size must be >= 1")
    if e.max_retries < 1:
        raise ConfigError("embedding.max_retries must be >= 1")
    if e.batch_delay < 0 or e.backoff_base < 0:
        raise ConfigError("embedding.batch_delay and embedding.backoff_base must be >= 0")

    r = cfg.retrieval
    if not 0.0 <= r.confidence_threshold <= 1.0:
        raise ConfigError(
            f"retrieval.confidence_threshold must be in [0, 1], got {r.confidence_threshold}"
        )
    if not 1 <= r.default_limit <= r.max_limit:
        raise ConfigError("retrieval.default_limit must be in [1, retrieval.max_limit]")

    names = [s.source for s in cfg.sources]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ConfigError(f"Duplicate source names in config: {', '.join(dupes)}")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _parse_source(raw: Any) -> SourceDescriptor:
    if not isinstance(raw, dict):
        raise ConfigError(f"Source entry must be a mapping, got {type(raw).__name__}")
    missing = [k for k in ("source", "source_type", "path") if not raw.get(k)]
    if missing:
        raise ConfigError(f"Source entry {raw!r} is missing: {', '.join(missing)}")
    exclude = raw.get("exclude") or []
    if isinstance(exclude, str):
        exclude = [exclude]
    return SourceDescriptor(
        source=str(raw["source"]),
        source_type=str(raw["source_type"]),
        path=str(raw["path"]),
        exclude=[str(p) for p in exclude],
    )


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    raw = data[name] or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(raw).__name__}")
    return raw


def _number(section: dict[str, Any], name: str, key: str, default: Any, cast: type) -> Any:
    raw = section.get(key, default)
    try:
        return cast(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{name}.{key} must be a number, got {raw!r}") from None


def _cfg_from_dict(data: dict[str, Any]) -> KindexConfig:
    """Build a *KindexConfig* from a merged raw YAML dict."""
    cfg = KindexConfig()

    if "embedding" in data:
        e = _section(data, "embedding")
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=_number(e, "embedding", "dimensions", cfg.embedding.dimensions, int),
            batch_size=_number(e, "embedding", "batch_size", cfg.embedding.batch_size, int),
            batch_delay=_number(e, "embedding", "batch_delay", cfg.embedding.batch_delay, float),
            max_retries=_number(e, "embedding", "max_retries", cfg.embedding.max_retries, int),
            backoff_base=_number(
                e, "embedding", "backoff_base", cfg.embedding.backoff_base, float
            ),
        )

    if "chunking" in data:
        c = _section(data, "chunking")
        defaults = cfg.chunking
        cfg.chunking = ChunkingCfg(
            large_file_threshold=_number(
                c, "chunking", "large_file_threshold", defaults.large_file_threshold, int
            ),
            chunk_char_limit=_number(
                c, "chunking", "chunk_char_limit", defaults.chunk_char_limit, int
            ),
            min_section_chars=_number(
                c, "chunking", "min_section_chars", defaults.min_section_chars, int
            ),
        )

    if "retrieval" in data:
        r = _section(data, "retrieval")
        defaults = cfg.retrieval
        allowed = r.get("allowed_source_types") or []
        if isinstance(allowed, str):
            allowed = [allowed]
        cfg.retrieval = RetrievalCfg(
            default_limit=_number(r, "retrieval", "default_limit", defaults.default_limit, int),
            max_limit=_number(r, "retrieval", "max_limit", defaults.max_limit, int),
            confidence_threshold=_number(
                r, "retrieval", "confidence_threshold", defaults.confidence_threshold, float
            ),
            identifier_max_length=_number(
                r, "retrieval", "identifier_max_length", defaults.identifier_max_length, int
            ),
            allowed_source_types=[str(t) for t in allowed],
        )

    if "database" in data:
        d = _section(data, "database")
        cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

    if "sources" in data:
        sources = data["sources"] or []
        if not isinstance(sources, list):
            raise ConfigError(f"'sources' must be a list, got {type(sources).__name__}")
        cfg.sources = [_parse_source(s) for s in sources]

    return cfg


def _apply_env_overrides(cfg: KindexConfig) -> KindexConfig:
    """Apply KINDEX_* environment variable overrides (layer 2)."""
    if model := os.environ.get("KINDEX_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db := os.environ.get("KINDEX_DB"):
        cfg.database.path = db
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> KindexConfig:
    """Load and return a merged *KindexConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *kindex.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or any
            value fails validation.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg


def load_sources_file(path: Path) -> list[SourceDescriptor]:
    """Read a standalone list of source descriptors (``.json`` or YAML).

    Raises:
        ConfigError: If the file is not a list of valid source mappings.
    """
    text = path.read_text(encoding="utf-8")
    try:
        raw = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot parse sources file '{path}': {exc}") from exc
    if isinstance(raw, dict) and "sources" in raw:
        raw = raw["sources"]
    if not isinstance(raw, list):
        raise ConfigError(f"Sources file '{path}' must contain a list of sources")
    return [_parse_source(s) for s in raw]


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.kindex/config.yaml`` with defaults if it does not exist.

    Creates the parent directory with mode 0o700 and the file with mode 0o600.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# kindex global configuration — defaults only.\n"
            "# NEVER store API keys here — use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
            "\n"
            "retrieval:\n"
            "  default_limit: 5\n"
            "  confidence_threshold: 0.6\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
