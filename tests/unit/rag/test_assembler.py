"""Tests for the context assembler."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from vraagbaak.db.models import Hit
from vraagbaak.rag.assembler import (
    CHUNK_SEPARATOR,
    NO_CONTEXT_ANSWER,
    NO_CONTEXT_INSTRUCTION,
    SYSTEM_INSTRUCTION,
    AssemblerConfig,
    assemble,
    render_hit,
)


def _hit(content="text", score=0.1, filename="doc.pdf", rid="r1"):
    return Hit(resource_id=rid, filename=filename, content=content, score=score)


@pytest.fixture(autouse=True)
def _char_token_counter():
    """One token per character keeps budgets easy to reason about."""
    with patch("vraagbaak.rag.assembler.count_tokens", side_effect=lambda m, t: len(t)):
        yield


def test_render_hit_format():
    assert render_hit(1, _hit("body", 0.12345, "a.pdf")) == (
        "# Chunk 1 [score=0.1235] [file=a.pdf]\nbody"
    )


def test_render_hit_unknown_filename():
    assert "[file=unknown]" in render_hit(2, _hit(filename=None))


def test_assemble_joins_hits_in_rank_order():
    hits = [_hit("first", 0.1), _hit("second", 0.2)]
    prompt = assemble(hits)
    assert prompt.system == SYSTEM_INSTRUCTION
    assert prompt.fallback_answer is None
    assert prompt.hits == hits
    assert prompt.context == render_hit(1, hits[0]) + CHUNK_SEPARATOR + render_hit(2, hits[1])


def test_user_prompt_contains_question_and_context():
    prompt = assemble([_hit("fact")])
    text = prompt.user_prompt("What?")
    assert text.startswith("Question: What?\n\nContext:\n# Chunk 1")
    assert text.endswith("fact")


def test_no_hits_fallback_policy():
    prompt = assemble([])
    assert prompt.fallback_answer == NO_CONTEXT_ANSWER == "Sorry, I don't know."
    assert not prompt.has_context


def test_no_hits_generate_policy():
    prompt = assemble([], AssemblerConfig(no_context_policy="generate"))
    assert prompt.fallback_answer is None
    assert prompt.system == NO_CONTEXT_INSTRUCTION
    assert prompt.user_prompt("Q") == "Question: Q"


def test_max_distance_drops_weak_hits():
    hits = [_hit("close", 0.2), _hit("far", 0.9)]
    prompt = assemble(hits, AssemblerConfig(max_distance=0.5))
    assert [h.content for h in prompt.hits] == ["close"]


def test_max_distance_drops_everything_then_fallback():
    prompt = assemble([_hit(score=0.9)], AssemblerConfig(max_distance=0.5))
    assert prompt.fallback_answer == NO_CONTEXT_ANSWER


def test_token_budget_keeps_rank_order_prefix():
    hits = [_hit("a" * 50, 0.1), _hit("b" * 50, 0.2), _hit("c" * 50, 0.3)]
    one = len(render_hit(1, hits[0]))
    prompt = assemble(hits, AssemblerConfig(token_budget=2 * one + 5))
    assert [h.content[0] for h in prompt.hits] == ["a", "b"]
    assert prompt.total_tokens <= 2 * one + 5


def test_token_budget_always_keeps_best_hit():
    prompt = assemble([_hit("x" * 500)], AssemblerConfig(token_budget=10))
    assert len(prompt.hits) == 1
