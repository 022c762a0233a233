"""Tests for the fixed-window TextChunker."""

from __future__ import annotations

import math

import pytest

from vraagbaak.ingest.chunker import DEFAULT_CHUNK_SIZE, DEFAULT_OVERLAP, TextChunker, chunk


def test_defaults():
    chunker = TextChunker()
    assert chunker.chunk_size == DEFAULT_CHUNK_SIZE == 800
    assert chunker.overlap == DEFAULT_OVERLAP == 100
    assert chunker.step == 700


def test_empty_text_yields_no_spans():
    assert chunk("") == []


def test_short_text_is_one_span():
    assert chunk("hello", size=800, overlap=100) == ["hello"]


def test_text_of_exactly_chunk_size_is_one_span():
    assert len(chunk("x" * 800)) == 1


def test_1700_chars_gives_three_spans():
    text = "".join(chr(ord("a") + i % 26) for i in range(1700))
    chunker = TextChunker(800, 100)
    assert chunker.offsets(text) == [0, 700, 1400]
    spans = chunker.split(text)
    assert [len(s) for s in spans] == [800, 800, 300]
    assert spans[2] == text[1400:]


def test_consecutive_spans_share_overlap():
    text = "".join(str(i % 10) for i in range(2000))
    spans = chunk(text, size=800, overlap=100)
    for prev, nxt in zip(spans, spans[1:]):
        assert prev[-100:] == nxt[:100]


@pytest.mark.parametrize("length", [1, 99, 100, 101, 799, 800, 801, 1500, 1501, 5000])
def test_span_count_formula(length):
    spans = chunk("x" * length, size=800, overlap=100)
    assert len(spans) == max(1, math.ceil((length - 100) / 700))


def test_spans_reconstruct_text():
    text = "The quick brown fox jumps over the lazy dog. " * 60
    chunker = TextChunker(200, 50)
    offsets = chunker.offsets(text)
    rebuilt = "".join(
        span[: chunker.step] if i < len(offsets) - 1 else span
        for i, span in enumerate(chunker.split(text))
    )
    assert rebuilt == text


def test_deterministic():
    text = "lorem ipsum " * 300
    assert chunk(text) == chunk(text)


def test_overlap_not_smaller_than_size_still_progresses():
    chunker = TextChunker(chunk_size=5, overlap=10)
    assert chunker.step == 1
    assert chunker.split("abcdefg") == ["abcde", "bcdef", "cdefg"]


@pytest.mark.parametrize("size,overlap", [(0, 0), (-1, 0), (10, -1)])
def test_invalid_parameters(size, overlap):
    with pytest.raises(ValueError):
        TextChunker(size, overlap)
