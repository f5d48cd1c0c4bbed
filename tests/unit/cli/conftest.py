"""Fixtures for CLI tests: isolated project dir and a fake embedding provider."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from fakes import FakeEmbedder


@pytest.fixture
def project(isolated_config: Path, monkeypatch) -> Path:
    """CWD with a kindex.yaml sized for 4-dim fake vectors and no batch delay."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    (isolated_config / "kindex.yaml").write_text(
        yaml.dump({
            "embedding": {"dimensions": 4, "batch_delay": 0, "max_retries": 2, "backoff_base": 0},
        }),
        encoding="utf-8",
    )
    return isolated_config


@pytest.fixture
def embedder():
    """Patch every CLI construction of LiteLLMEmbedder with one FakeEmbedder."""
    fake = FakeEmbedder()
    with patch("kindex.cli.ingest.LiteLLMEmbedder", lambda cfg=None: fake), \
            patch("kindex.cli.common.LiteLLMEmbedder", lambda cfg=None: fake):
        yield fake


@pytest.fixture
def corpus(project: Path) -> Path:
    root = project / "corpus"
    (root / "agents").mkdir(parents=True)
    (root / "agents" / "DP.AGENT.001.md").write_text(
        "# DP.AGENT.001\n\nThe planning agent coordinates work.", encoding="utf-8"
    )
    (root / "install.md").write_text(
        "# Install\n\nRun the installer and follow the prompts.", encoding="utf-8"
    )
    return root
