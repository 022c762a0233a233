"""Shared fixtures for CLI tests: isolated config, fake LLM collaborators."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

DIMS = 3


def fake_embed(model: str, texts: list[str]) -> list[list[float]]:
    """Deterministic 3-dim vectors; texts mentioning 'warranty' cluster together."""
    return [
        [1.0, 0.1, 0.0] if "warranty" in t.lower() else [0.0, 1.0, float(len(t) % 5)]
        for t in texts
    ]


@pytest.fixture(autouse=True)
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run every CLI test from tmp_path with a 3-dim embedding config and no global config."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("vraagbaak.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for name in (
        "VRAAGBAAK_DB",
        "VRAAGBAAK_EMBEDDING_MODEL",
        "VRAAGBAAK_GENERATION_MODEL",
        "VRAAGBAAK_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    # Wide enough that rich tables never wrap ids or filenames.
    monkeypatch.setenv("COLUMNS", "200")
    (tmp_path / "vraagbaak.yaml").write_text(
        yaml.dump({"embedding": {"dimensions": DIMS}}), encoding="utf-8"
    )
    return tmp_path


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / ".vraagbaak.db"


@pytest.fixture
def fake_llm():
    """Patch litellm-backed calls: embeddings, streaming generation, token counting."""
    with (
        patch("vraagbaak.rag.llm_client.embed_batch", side_effect=fake_embed) as embed,
        patch(
            "vraagbaak.rag.llm_client.stream_complete",
            side_effect=lambda **kwargs: iter(["Two ", "years."]),
        ) as stream,
        patch("vraagbaak.rag.assembler.count_tokens", side_effect=lambda m, t: len(t) // 4),
    ):
        yield embed, stream
