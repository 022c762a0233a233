"""Tests for the CLI error message helpers."""

from __future__ import annotations

from vraagbaak.cli.errors import (
    err_config,
    err_domain,
    err_no_api_key,
    err_no_db,
)
from vraagbaak.errors import (
    ClientSideFallback,
    EmbeddingMismatch,
    NotFound,
    PersistenceError,
    ValidationError,
)


def test_err_no_api_key_names_env_var() -> None:
    msg = err_no_api_key("openai", "OPENAI_API_KEY")
    assert "'openai'" in msg
    assert "export OPENAI_API_KEY=" in msg


def test_err_no_db_points_at_ingest() -> None:
    msg = err_no_db("kb.db")
    assert "kb.db" in msg
    assert "vraagbaak ingest" in msg


def test_err_config_escapes_markup() -> None:
    assert "\\[bad]" in err_config("value [bad] rejected")


def test_err_domain_embedding_mismatch() -> None:
    msg = err_domain(EmbeddingMismatch("wrong size", expected=1536, actual=768))
    assert "Expected: 1536" in msg
    assert "Got: 768" in msg
    assert "resources clear" in msg


def test_err_domain_not_found_hints() -> None:
    assert "vraagbaak resources list" in err_domain(NotFound("Resource", "r1"))
    assert "vraagbaak sessions list" in err_domain(NotFound("Session", "s1"))


def test_err_domain_persistence() -> None:
    assert "locked" in err_domain(PersistenceError("database is locked"))


def test_err_domain_client_fallback() -> None:
    exc = ClientSideFallback("chat-1", PersistenceError("disk full"))
    msg = err_domain(exc)
    assert "chat-1" in msg
    assert "not saved" in msg


def test_err_domain_generic_shows_kind() -> None:
    msg = err_domain(ValidationError("No files provided."))
    assert "validation_error" in msg
    assert "No files provided." in msg
