"""Dense retriever: embed the query, rank stored chunks by vector distance.

Ranking sits behind the :class:`Ranker` interface. :class:`LinearScanRanker`
does an exact scan in SQL (``vec_distance_cosine`` / ``vec_distance_l2`` in
``ORDER BY``); an index-backed ranker can replace it without changing
:meth:`Retriever.retrieve`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from vraagbaak.db.corpus import CorpusStore
from vraagbaak.db.models import Hit
from vraagbaak.log import get_logger
from vraagbaak.rag.embeddings import EmbeddingGateway

logger = get_logger(__name__)


@dataclass
class RetrieverConfig:
    """Configuration for the retriever.

    Attributes:
        top_k: Default number of hits when ``retrieve`` gets no explicit k.
        metric: Distance metric, ``cosine`` or ``l2`` (smaller = closer).
    """

    top_k: int = 8
    metric: str = "cosine"


class Ranker(ABC):
    """Orders stored chunks by distance to a query vector."""

    @abstractmethod
    def rank(self, embedding: Sequence[float], k: int) -> list[Hit]:
        """Return at most *k* hits, non-decreasing in ``score``."""


class LinearScanRanker(Ranker):
    """Exact ranking over every chunk in the corpus store."""

    def __init__(self, store: CorpusStore, metric: str = "cosine") -> None:
        self._store = store
        self.metric = metric

    def rank(self, embedding: Sequence[float], k: int) -> list[Hit]:
        return self._store.search_nearest(embedding, k, metric=self.metric)


class Retriever:
    """Embed a query and return the closest chunks with their provenance.

    An empty corpus yields an empty list, never an error.
    """

    def __init__(
        self,
        gateway: EmbeddingGateway,
        ranker: Ranker,
        config: RetrieverConfig | None = None,
    ) -> None:
        self._gateway = gateway
        self._ranker = ranker
        self.config = config or RetrieverConfig()

    def retrieve(self, query: str, k: int | None = None) -> list[Hit]:
        """Return up to *k* hits for *query*, closest first.

        Args:
            query: Free-text question. Blank queries return no hits and
                make no embedding call.
            k: Number of hits; defaults to ``config.top_k``. Capped at the
                corpus size by the ranker.
        """
        k = self.config.top_k if k is None else k
        if not query.strip() or k < 1:
            return []
        embedding = self._gateway.embed_one(query)
        hits = self._ranker.rank(embedding, k)
        logger.info(
            "chunks_retrieved",
            k=k,
            hits=len(hits),
            best_score=hits[0].score if hits else None,
        )
        return hits
