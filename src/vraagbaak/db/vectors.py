"""Embedding encoding and corpus-wide dimension bookkeeping.

Embeddings live in ``chunks.embedding`` as float32 BLOBs. Ranking uses the
sqlite-vec scalar distance functions, so any column written with
:func:`encode_embedding` can appear in an ``ORDER BY`` clause.
"""

from __future__ import annotations

import math
import sqlite3
from collections.abc import Sequence

import sqlite_vec

from vraagbaak.errors import EmbeddingMismatch, ValidationError

_DISTANCE_FUNCTIONS: dict[str, str] = {
    "cosine": "vec_distance_cosine",
    "l2": "vec_distance_l2",
}

_DIMENSIONS_KEY = "embedding_dimensions"
_MODEL_KEY = "embedding_model"


def encode_embedding(embedding: Sequence[float]) -> bytes:
    """Serialize *embedding* to the float32 BLOB layout sqlite-vec reads."""
    return sqlite_vec.serialize_float32(list(embedding))


def distance_function(metric: str) -> str:
    """Return the sqlite-vec SQL function name for *metric*.

    Raises:
        ValidationError: If *metric* is not ``cosine`` or ``l2``.
    """
    try:
        return _DISTANCE_FUNCTIONS[metric]
    except KeyError:
        raise ValidationError(
            f"Unknown distance metric '{metric}' (expected one of {sorted(_DISTANCE_FUNCTIONS)})"
        ) from None


def check_vector(embedding: Sequence[float], dimensions: int) -> None:
    """Raise EmbeddingMismatch unless *embedding* has *dimensions* finite floats."""
    if len(embedding) != dimensions:
        raise EmbeddingMismatch(
            f"Embedding has {len(embedding)} dimensions, corpus uses {dimensions}",
            expected=dimensions,
            actual=len(embedding),
        )
    if not all(math.isfinite(v) for v in embedding):
        raise EmbeddingMismatch(
            "Embedding contains non-finite values",
            expected=dimensions,
            actual=len(embedding),
        )


def corpus_dimensions(conn: sqlite3.Connection) -> int | None:
    """Return the recorded corpus-wide embedding dimension, or None if unset."""
    row = conn.execute(
        "SELECT value FROM corpus_meta WHERE key = ?", (_DIMENSIONS_KEY,)
    ).fetchone()
    return int(row["value"]) if row else None


def corpus_model(conn: sqlite3.Connection) -> str | None:
    """Return the embedding model recorded with the first ingest, or None."""
    row = conn.execute(
        "SELECT value FROM corpus_meta WHERE key = ?", (_MODEL_KEY,)
    ).fetchone()
    return row["value"] if row else None


def ensure_dimensions(
    conn: sqlite3.Connection, dimensions: int, model: str | None = None
) -> int:
    """Record *dimensions* as the corpus dimension, or verify it matches.

    Does not commit; callers run this inside their own transaction.

    Returns:
        The corpus-wide dimension.

    Raises:
        EmbeddingMismatch: If a different dimension is already recorded.
    """
    if dimensions < 1:
        raise ValidationError(f"dimensions must be >= 1, got {dimensions}")
    existing = corpus_dimensions(conn)
    if existing is None:
        conn.execute(
            "INSERT INTO corpus_meta (key, value) VALUES (?, ?)",
            (_DIMENSIONS_KEY, str(dimensions)),
        )
        if model:
            conn.execute(
                "INSERT OR REPLACE INTO corpus_meta (key, value) VALUES (?, ?)",
                (_MODEL_KEY, model),
            )
        return dimensions
    if existing != dimensions:
        raise EmbeddingMismatch(
            f"Corpus embeddings have {existing} dimensions, got {dimensions}",
            expected=existing,
            actual=dimensions,
        )
    return existing
