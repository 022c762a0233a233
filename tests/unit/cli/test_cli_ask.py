"""Tests for the vraagbaak ask command."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from vraagbaak.cli.main import app
from vraagbaak.db.schema import open_database
from vraagbaak.db.sessions import SessionStore
from vraagbaak.rag.assembler import NO_CONTEXT_ANSWER

runner = CliRunner()


def _run(*args: str):
    return runner.invoke(app, ["--log-level", "ERROR", *args])


def _seed(tmp_path: Path) -> None:
    (tmp_path / "warranty.txt").write_text("The warranty lasts two years.", encoding="utf-8")
    (tmp_path / "recipes.txt").write_text("Stir the soup slowly.", encoding="utf-8")
    result = _run("ingest", str(tmp_path / "warranty.txt"), str(tmp_path / "recipes.txt"))
    assert result.exit_code == 0, result.output


def _sessions(db_path: Path):
    conn = open_database(db_path)
    try:
        store = SessionStore(conn)
        return [store.get_session(s.id) for s in store.list_sessions()]
    finally:
        conn.close()


# ------------------------------------------------------------------
# Answering
# ------------------------------------------------------------------


def test_ask_streams_answer_and_sources(tmp_path: Path, fake_llm) -> None:
    _seed(tmp_path)
    result = _run("ask", "How long is the warranty?")
    assert result.exit_code == 0, result.output
    assert "Two years." in result.output
    assert "Sources" in result.output
    assert "warranty.txt" in result.output


def test_ask_nearest_chunk_comes_first(tmp_path: Path, fake_llm) -> None:
    _seed(tmp_path)
    _, stream = fake_llm
    result = _run("ask", "warranty period?", "--top-k", "1")
    assert result.exit_code == 0, result.output
    prompt = stream.call_args.kwargs["messages"][-1]["content"]
    assert "The warranty lasts two years." in prompt
    assert "Stir the soup" not in prompt


def test_ask_empty_corpus_answers_without_generation(fake_llm) -> None:
    _, stream = fake_llm
    result = _run("ask", "Anything?")
    assert result.exit_code == 0, result.output
    assert NO_CONTEXT_ANSWER in result.output
    stream.assert_not_called()


def test_ask_without_generation_key_exits_1(monkeypatch, fake_llm) -> None:
    monkeypatch.delenv("OPENAI_API_KEY")
    result = _run("ask", "Q?")
    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output


# ------------------------------------------------------------------
# Sessions
# ------------------------------------------------------------------


def test_ask_without_save_stores_nothing(tmp_path: Path, db_path: Path, fake_llm) -> None:
    _seed(tmp_path)
    assert _run("ask", "warranty?").exit_code == 0
    assert _sessions(db_path) == []


def test_ask_save_creates_session(tmp_path: Path, db_path: Path, fake_llm) -> None:
    _seed(tmp_path)
    result = _run("ask", "How long is the warranty?", "--save")
    assert result.exit_code == 0, result.output
    assert "Session:" in result.output

    [session] = _sessions(db_path)
    assert session.title == "How long is the warranty?"
    assert session.message_count == 2
    assert [m.content for m in session.messages] == ["How long is the warranty?", "Two years."]
    assert session.messages[1].sources


def test_ask_session_continues_with_history(tmp_path: Path, db_path: Path, fake_llm) -> None:
    _seed(tmp_path)
    _, stream = fake_llm
    assert _run("ask", "warranty?", "--session", "chat-1").exit_code == 0
    result = _run("ask", "And after that?", "--session", "chat-1")
    assert result.exit_code == 0, result.output

    messages = stream.call_args.kwargs["messages"]
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[1]["content"] == "warranty?"

    [session] = _sessions(db_path)
    assert session.id == "chat-1"
    assert session.title == "warranty?"
    assert session.message_count == 4
