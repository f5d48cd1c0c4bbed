"""Tests for the kindex config loader."""

from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest
import yaml

from kindex.config import (
    ChunkingCfg,
    ConfigError,
    KindexConfig,
    ensure_global_config,
    load_config,
    load_sources_file,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


@pytest.fixture(autouse=True)
def _no_env_overrides(monkeypatch):
    monkeypatch.delenv("KINDEX_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("KINDEX_DB", raising=False)


@pytest.fixture
def missing_global(tmp_path: Path) -> Path:
    return tmp_path / "nonexistent" / "config.yaml"


# ---------------------------------------------------------------------------
# Defaults — no config files present
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path, missing_global: Path) -> None:
    """No config files → all hardcoded defaults."""
    cfg = load_config(project_dir=tmp_path, global_config_path=missing_global)

    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.embedding.dimensions == 1536
    assert cfg.embedding.batch_size == 10
    assert cfg.embedding.batch_delay == 0.3
    assert cfg.embedding.max_retries == 5
    assert cfg.chunking == ChunkingCfg()
    assert cfg.retrieval.default_limit == 5
    assert cfg.retrieval.confidence_threshold == 0.6
    assert cfg.retrieval.identifier_max_length == 30
    assert cfg.database.path == ".kindex.db"
    assert cfg.sources == []


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_global_overrides_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"retrieval": {"confidence_threshold": 0.5}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)

    assert cfg.retrieval.confidence_threshold == 0.5
    assert cfg.retrieval.default_limit == 5


def test_project_overrides_global(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"embedding": {"model": "cohere/embed-english-v3.0", "dimensions": 1024}})
    project = tmp_path / "proj"
    project.mkdir()
    _write_yaml(project / "kindex.yaml", {"embedding": {"dimensions": 512}})

    cfg = load_config(project_dir=project, global_config_path=global_cfg)

    assert cfg.embedding.model == "cohere/embed-english-v3.0"
    assert cfg.embedding.dimensions == 512


def test_env_overrides_files(tmp_path: Path, missing_global: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / "kindex.yaml", {"database": {"path": "from-file.db"}})
    monkeypatch.setenv("KINDEX_DB", "from-env.db")
    monkeypatch.setenv("KINDEX_EMBEDDING_MODEL", "openai/text-embedding-3-large")

    cfg = load_config(project_dir=tmp_path, global_config_path=missing_global)

    assert cfg.database.path == "from-env.db"
    assert cfg.embedding.model == "openai/text-embedding-3-large"


def test_empty_files_give_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("", encoding="utf-8")
    (tmp_path / "kindex.yaml").write_text("", encoding="utf-8")

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)

    assert cfg == KindexConfig()


def test_sources_from_project_file(tmp_path: Path, missing_global: Path) -> None:
    _write_yaml(tmp_path / "kindex.yaml", {"sources": [
        {"source": "handbook", "source_type": "manual", "path": "~/docs", "exclude": "drafts"},
    ]})

    cfg = load_config(project_dir=tmp_path, global_config_path=missing_global)

    [src] = cfg.sources
    assert src.source == "handbook"
    assert src.exclude == ["drafts"]
    assert src.root == Path.home() / "docs"


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("key", ["api_key", "openai_api_key", "token", "password"])
def test_global_config_rejects_api_keys(tmp_path: Path, key: str) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"embedding": {key: "sk-123"}})

    with pytest.raises(ConfigError, match="forbidden key"):
        load_config(project_dir=tmp_path, global_config_path=global_cfg)


def test_legit_keys_not_mistaken_for_secrets(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"embedding": {"max_retries": 3}, "chunking": {"chunk_char_limit": 5000}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)

    assert cfg.embedding.max_retries == 3


def test_unknown_top_level_key_warns(tmp_path: Path, missing_global: Path) -> None:
    _write_yaml(tmp_path / "kindex.yaml", {"generation": {"model": "x"}})

    with pytest.warns(UserWarning, match="generation"):
        load_config(project_dir=tmp_path, global_config_path=missing_global)


@pytest.mark.parametrize("data,match", [
    ({"chunking": {"chunk_char_limit": 0}}, "chunk_char_limit"),
    ({"chunking": {"large_file_threshold": 5000, "chunk_char_limit": 5000}}, "large_file_threshold"),
    ({"embedding": {"batch_size": 0}}, "batch_size"),
    ({"embedding": {"max_retries": 0}}, "max_retries"),
    ({"embedding": {"batch_delay": -1}}, "batch_delay"),
    ({"retrieval": {"confidence_threshold": 1.5}}, "confidence_threshold"),
    ({"retrieval": {"default_limit": 100, "max_limit": 50}}, "default_limit"),
])
def test_invalid_values_rejected(tmp_path: Path, missing_global: Path, data, match) -> None:
    _write_yaml(tmp_path / "kindex.yaml", data)

    with pytest.raises(ConfigError, match=match):
        load_config(project_dir=tmp_path, global_config_path=missing_global)


@pytest.mark.parametrize("data,match", [
    ({"embedding": {"batch_size": "ten"}}, "embedding.batch_size"),
    ({"retrieval": {"confidence_threshold": "high"}}, "retrieval.confidence_threshold"),
    ({"chunking": {"chunk_char_limit": [1, 2]}}, "chunking.chunk_char_limit"),
    ({"retrieval": "strict"}, "'retrieval' must be a mapping"),
    ({"sources": {"source": "x"}}, "'sources' must be a list"),
])
def test_malformed_values_raise_config_error(tmp_path: Path, missing_global: Path, data, match) -> None:
    _write_yaml(tmp_path / "kindex.yaml", data)

    with pytest.raises(ConfigError, match=match):
        load_config(project_dir=tmp_path, global_config_path=missing_global)


@pytest.mark.parametrize("text,match", [
    ("embedding: [unclosed\n", "Cannot parse"),
    ("- just\n- a list\n", "must be a mapping"),
])
def test_unreadable_config_file_raises_config_error(
    tmp_path: Path, missing_global: Path, text: str, match: str
) -> None:
    (tmp_path / "kindex.yaml").write_text(text, encoding="utf-8")

    with pytest.raises(ConfigError, match=match):
        load_config(project_dir=tmp_path, global_config_path=missing_global)


def test_duplicate_source_names_rejected(tmp_path: Path, missing_global: Path) -> None:
    entry = {"source": "dup", "source_type": "notes", "path": "."}
    _write_yaml(tmp_path / "kindex.yaml", {"sources": [entry, entry]})

    with pytest.raises(ConfigError, match="Duplicate"):
        load_config(project_dir=tmp_path, global_config_path=missing_global)


def test_source_missing_fields_rejected(tmp_path: Path, missing_global: Path) -> None:
    _write_yaml(tmp_path / "kindex.yaml", {"sources": [{"source": "x"}]})

    with pytest.raises(ConfigError, match="source_type, path"):
        load_config(project_dir=tmp_path, global_config_path=missing_global)


# ---------------------------------------------------------------------------
# load_sources_file
# ---------------------------------------------------------------------------


def test_load_sources_file_yaml_list(tmp_path: Path) -> None:
    path = tmp_path / "sources.yaml"
    _write_yaml(path, [{"source": "a", "source_type": "notes", "path": "/a"}])  # type: ignore[arg-type]

    assert [s.source for s in load_sources_file(path)] == ["a"]


def test_load_sources_file_json_mapping(tmp_path: Path) -> None:
    path = tmp_path / "sources.json"
    path.write_text(json.dumps({"sources": [
        {"source": "a", "source_type": "notes", "path": "/a"},
        {"source": "b", "source_type": "manual", "path": "/b", "exclude": ["x"]},
    ]}), encoding="utf-8")

    sources = load_sources_file(path)

    assert [(s.source, s.exclude) for s in sources] == [("a", []), ("b", ["x"])]


def test_load_sources_file_rejects_scalar(tmp_path: Path) -> None:
    path = tmp_path / "sources.yaml"
    path.write_text("just a string\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="list of sources"):
        load_sources_file(path)


def test_load_sources_file_bad_json(tmp_path: Path) -> None:
    path = tmp_path / "sources.json"
    path.write_text("{oops", encoding="utf-8")

    with pytest.raises(ConfigError, match="Cannot parse"):
        load_sources_file(path)


# ---------------------------------------------------------------------------
# ensure_global_config
# ---------------------------------------------------------------------------


def test_ensure_global_config_creates_private_file(tmp_path: Path) -> None:
    target = tmp_path / ".kindex" / "config.yaml"

    result = ensure_global_config(target)

    assert result == target
    assert stat.S_IMODE(target.stat().st_mode) == 0o600
    data = yaml.safe_load(target.read_text(encoding="utf-8"))
    assert data["embedding"]["model"] == "openai/text-embedding-3-small"


def test_ensure_global_config_never_overwrites(tmp_path: Path) -> None:
    target = tmp_path / "config.yaml"
    target.write_text("retrieval:\n  default_limit: 7\n", encoding="utf-8")

    ensure_global_config(target)

    assert "default_limit: 7" in target.read_text(encoding="utf-8")


def test_generated_global_config_loads_cleanly(tmp_path: Path) -> None:
    target = ensure_global_config(tmp_path / "config.yaml")
    cfg = load_config(project_dir=tmp_path, global_config_path=target)
    assert cfg.retrieval.confidence_threshold == 0.6
