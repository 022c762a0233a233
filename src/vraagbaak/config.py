"""vraagbaak configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (VRAAGBAAK_DB, VRAAGBAAK_EMBEDDING_MODEL,
                             VRAAGBAAK_GENERATION_MODEL, VRAAGBAAK_LOG_LEVEL)
  3. Per-project vraagbaak.yaml  (current directory)
  4. Global ~/.vraagbaak/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from vraagbaak.errors import VraagbaakError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".vraagbaak"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "vraagbaak.yaml"

# Key names that look like credentials. Forbidden in global config.
# Does NOT match legitimate keys like token_budget or max_tokens.
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
    [
        "database",
        "embedding",
        "generation",
        "retrieval",
        "chunking",
        "ingest",
        "sessions",
        "logging",
    ]
)

METRICS: frozenset[str] = frozenset(["cosine", "l2"])
NO_CONTEXT_POLICIES: frozenset[str] = frozenset(["fallback", "generate"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(VraagbaakError, ValueError):
    """Raised when a config file contains an invalid or forbidden value."""

    kind = "config_error"


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """Store location (vraagbaak.yaml: database:)."""

    path: str = ".vraagbaak.db"


@dataclass
class EmbeddingCfg:
    """Embedding collaborator (vraagbaak.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 96


@dataclass
class GenerationCfg:
    """Generation collaborator (vraagbaak.yaml: generation:)."""

    model: str = "openai/gpt-4o"
    max_tokens: int = 1024
    temperature: float = 0.2
    timeout: float = 30.0
    history_turns: int = 6


@dataclass
class RetrievalCfg:
    """Retrieval and context assembly (vraagbaak.yaml: retrieval:).

    Attributes:
        top_k: Number of hits handed to the context assembler.
        metric: Distance metric, ``cosine`` or ``l2``.
        max_distance: Hits farther than this are dropped before assembly.
            ``None`` keeps every hit.
        token_budget: Upper bound on context tokens sent to generation.
        no_context_policy: ``fallback`` answers with a fixed phrase when no
            hit survives; ``generate`` still calls generation with an
            explicit no-context instruction.
    """

    top_k: int = 8
    metric: str = "cosine"
    max_distance: float | None = None
    token_budget: int = 8_192
    no_context_policy: str = "fallback"


@dataclass
class ChunkingCfg:
    """Character window for the chunker (vraagbaak.yaml: chunking:)."""

    chunk_size: int = 800
    overlap: int = 100


@dataclass
class IngestCfg:
    """Ingestion orchestration (vraagbaak.yaml: ingest:).

    Attributes:
        workers: Threads used for extraction + embedding across files.
            Persistence is always serialized.
        fail_fast: Abort the whole request on the first embedding mismatch
            instead of isolating the failing file.
    """

    workers: int = 1
    fail_fast: bool = False


@dataclass
class SessionsCfg:
    """Chat session defaults (vraagbaak.yaml: sessions:)."""

    list_limit: int = 50
    title_max_chars: int = 50
    preview_max_chars: int = 100


@dataclass
class LoggingCfg:
    """structlog output (vraagbaak.yaml: logging:)."""

    level: str = "INFO"
    json: bool = False


@dataclass
class VraagbaakConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    sessions: SessionsCfg = field(default_factory=SessionsCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


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


def _validate(cfg: VraagbaakConfig) -> None:
    if cfg.chunking.chunk_size < 1:
        raise ConfigError(f"chunking.chunk_size must be >= 1, got {cfg.chunking.chunk_size}")
    if cfg.chunking.overlap < 0:
        raise ConfigError(f"chunking.overlap must be >= 0, got {cfg.chunking.overlap}")
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.embedding.batch_size < 1:
        raise ConfigError(f"embedding.batch_size must be >= 1, got {cfg.embedding.batch_size}")
    if cfg.retrieval.metric not in METRICS:
        raise ConfigError(
            f"retrieval.metric must be one of {sorted(METRICS)}, got '{cfg.retrieval.metric}'"
        )
    if cfg.retrieval.no_context_policy not in NO_CONTEXT_POLICIES:
        raise ConfigError(
            "retrieval.no_context_policy must be one of "
            f"{sorted(NO_CONTEXT_POLICIES)}, got '{cfg.retrieval.no_context_policy}'"
        )
    if cfg.retrieval.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {cfg.retrieval.top_k}")
    if cfg.ingest.workers < 1:
        raise ConfigError(f"ingest.workers must be >= 1, got {cfg.ingest.workers}")


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


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


def _cfg_from_dict(data: dict[str, Any]) -> VraagbaakConfig:
    """Build a *VraagbaakConfig* from a merged raw YAML dict."""
    cfg = VraagbaakConfig()

    if "database" in data:
        d = data["database"] or {}
        cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
            temperature=float(g.get("temperature", cfg.generation.temperature)),
            timeout=float(g.get("timeout", cfg.generation.timeout)),
            history_turns=int(g.get("history_turns", cfg.generation.history_turns)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            metric=str(r.get("metric", cfg.retrieval.metric)),
            max_distance=_optional_float(r.get("max_distance", cfg.retrieval.max_distance)),
            token_budget=int(r.get("token_budget", cfg.retrieval.token_budget)),
            no_context_policy=str(
                r.get("no_context_policy", cfg.retrieval.no_context_policy)
            ),
        )

    if "chunking" in data:
        c = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            chunk_size=int(c.get("chunk_size", cfg.chunking.chunk_size)),
            overlap=int(c.get("overlap", cfg.chunking.overlap)),
        )

    if "ingest" in data:
        i = data["ingest"] or {}
        cfg.ingest = IngestCfg(
            workers=int(i.get("workers", cfg.ingest.workers)),
            fail_fast=bool(i.get("fail_fast", cfg.ingest.fail_fast)),
        )

    if "sessions" in data:
        s = data["sessions"] or {}
        cfg.sessions = SessionsCfg(
            list_limit=int(s.get("list_limit", cfg.sessions.list_limit)),
            title_max_chars=int(s.get("title_max_chars", cfg.sessions.title_max_chars)),
            preview_max_chars=int(
                s.get("preview_max_chars", cfg.sessions.preview_max_chars)
            ),
        )

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(
            level=str(lg.get("level", cfg.logging.level)),
            json=bool(lg.get("json", cfg.logging.json)),
        )

    return cfg


def _apply_env_overrides(cfg: VraagbaakConfig) -> VraagbaakConfig:
    """Apply VRAAGBAAK_* environment variable overrides."""
    if path := os.environ.get("VRAAGBAAK_DB"):
        cfg.database.path = path
    if model := os.environ.get("VRAAGBAAK_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("VRAAGBAAK_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if level := os.environ.get("VRAAGBAAK_LOG_LEVEL"):
        cfg.logging.level = level
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> VraagbaakConfig:
    """Load and return a merged *VraagbaakConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *vraagbaak.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields or a
            value fails validation.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg
