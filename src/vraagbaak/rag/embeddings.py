"""Embedding gateway: batches texts to the embedding collaborator.

The collaborator must return exactly one vector per input, in input order,
each with the corpus dimension. Anything else raises EmbeddingMismatch;
the gateway never pads or truncates.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from vraagbaak.db.vectors import check_vector
from vraagbaak.errors import EmbeddingMismatch
from vraagbaak.log import get_logger
from vraagbaak.rag import llm_client

logger = get_logger(__name__)

EmbedBatchFn = Callable[[str, list[str]], list[list[float]]]


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 96


class EmbeddingGateway:
    """Turn texts into fixed-dimension vectors via LiteLLM.

    Args:
        config: Model, expected dimension and request batch size.
        embed_batch: Collaborator override (defaults to
            :func:`vraagbaak.rag.llm_client.embed_batch`).
    """

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        embed_batch: EmbedBatchFn | None = None,
    ) -> None:
        self.config = config or EmbeddingConfig()
        self._embed_batch = embed_batch or llm_client.embed_batch

    @property
    def dimensions(self) -> int:
        return self.config.dimensions

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts*; returns one vector per text, in order.

        Raises:
            EmbeddingMismatch: If any batch comes back with a different
                count, or a vector has the wrong dimension.
        """
        texts = list(texts)
        if not texts:
            return []
        vectors: list[list[float]] = []
        size = self.config.batch_size
        for start in range(0, len(texts), size):
            batch = texts[start : start + size]
            result = self._embed_batch(self.config.model, batch)
            if len(result) != len(batch):
                logger.error(
                    "embedding_count_mismatch",
                    model=self.config.model,
                    expected=len(batch),
                    actual=len(result),
                )
                raise EmbeddingMismatch(
                    f"Embedding count mismatch: {len(result)} vectors for {len(batch)} texts",
                    expected=len(batch),
                    actual=len(result),
                )
            for vector in result:
                check_vector(vector, self.config.dimensions)
            vectors.extend(result)
        logger.debug("texts_embedded", model=self.config.model, count=len(vectors))
        return vectors

    def embed_one(self, text: str) -> list[float]:
        """Embed a single text (used for queries)."""
        return self.embed([text])[0]
