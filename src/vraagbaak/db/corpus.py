"""Corpus store: resources, their chunks, and vector-distance search.

Resource rows and their chunk rows are written inside one transaction
(:meth:`CorpusStore.transaction`), so a failed chunk insert never leaves a
resource behind that has no chunks. Uncommitted rows are invisible to
other connections.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from vraagbaak.db.models import Hit, Resource, ResourceSummary
from vraagbaak.db.vectors import (
    check_vector,
    distance_function,
    encode_embedding,
    ensure_dimensions,
)
from vraagbaak.errors import EmbeddingMismatch, NotFound, PersistenceError, ValidationError
from vraagbaak.log import get_logger

logger = get_logger(__name__)

_RECENT_DEFAULT = 12
_RECENT_MAX = 50


class CorpusStore:
    """Data access layer for Resource and Chunk entities.

    Wraps an open sqlite3.Connection (sqlite-vec loaded, schema initialised).
    The connection is owned by the caller and must be closed after use.

    Args:
        conn: Open connection (see :func:`vraagbaak.db.schema.open_database`).
        dimensions: Corpus-wide embedding dimension. Recorded on the first
            chunk insert and enforced afterwards.
        model: Embedding model name recorded alongside the dimension.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        dimensions: int = 1536,
        model: str | None = None,
    ) -> None:
        self._conn = conn
        self.dimensions = dimensions
        self.model = model
        self._tx_depth = 0

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[CorpusStore]:
        """Group several writes into one atomic unit.

        Nested calls join the outermost transaction. Any exception rolls
        back everything written inside the outermost block.
        """
        self._tx_depth += 1
        try:
            yield self
        except BaseException:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self._conn.rollback()
            raise
        else:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                try:
                    self._conn.commit()
                except sqlite3.Error as exc:
                    self._conn.rollback()
                    raise PersistenceError(f"Commit failed: {exc}") from exc

    def _commit(self) -> None:
        if self._tx_depth == 0:
            self._conn.commit()

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        """Translate sqlite3 errors into PersistenceError for *operation*."""
        try:
            yield
        except sqlite3.Error as exc:
            if self._tx_depth == 0:
                self._conn.rollback()
            logger.error("corpus_store_failed", operation=operation, error=str(exc))
            raise PersistenceError(f"{operation} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def create_resource(self, filename: str | None, content: str) -> str:
        """Insert a Resource row and return its id.

        Args:
            filename: Original file name (may be None).
            content: Full extracted text of the document.
        """
        if not content:
            raise ValidationError("Resource content must not be empty")
        resource_id = uuid.uuid4().hex
        with self._guard("create_resource"):
            self._conn.execute(
                "INSERT INTO resources (id, filename, content) VALUES (?, ?, ?)",
                (resource_id, filename, content),
            )
            self._commit()
        return resource_id

    def get_resource(self, resource_id: str) -> Resource:
        """Return a Resource by id.

        Raises:
            NotFound: If no resource has *resource_id*.
        """
        with self._guard("get_resource"):
            row = self._conn.execute(
                "SELECT id, filename, content, created_at FROM resources WHERE id = ?",
                (resource_id,),
            ).fetchone()
        if row is None:
            raise NotFound("Resource", resource_id)
        return Resource(
            id=row["id"],
            filename=row["filename"],
            content=row["content"],
            created_at=row["created_at"],
        )

    def delete_resource(self, resource_id: str) -> int:
        """Delete a resource; its chunks go with it (ON DELETE CASCADE).

        Returns:
            Number of chunks removed with the resource.

        Raises:
            NotFound: If no resource has *resource_id*.
        """
        with self._guard("delete_resource"):
            exists = self._conn.execute(
                "SELECT 1 FROM resources WHERE id = ?", (resource_id,)
            ).fetchone()
            if exists is None:
                raise NotFound("Resource", resource_id)
            chunk_count = self.count_chunks(resource_id)
            self._conn.execute("DELETE FROM resources WHERE id = ?", (resource_id,))
            self._commit()
        logger.info("resource_deleted", resource_id=resource_id, chunks=chunk_count)
        return chunk_count

    def clear_all(self) -> int:
        """Delete every resource and chunk. Returns the number of resources removed.

        The recorded corpus dimension is reset too, so the next ingest may
        use a different embedding model.
        """
        with self._guard("clear_all"):
            cur = self._conn.execute("DELETE FROM resources")
            removed = cur.rowcount
            # Cascade covers chunks; this also catches rows written with FKs off.
            self._conn.execute("DELETE FROM chunks")
            self._conn.execute("DELETE FROM corpus_meta")
            self._commit()
        logger.info("corpus_cleared", resources=removed)
        return removed

    def list_recent(self, limit: int = _RECENT_DEFAULT) -> list[ResourceSummary]:
        """Return resources newest first, each with its live chunk count.

        *limit* is clamped to 1..50.
        """
        limit = max(1, min(int(limit), _RECENT_MAX))
        with self._guard("list_recent"):
            rows = self._conn.execute(
                """
                SELECT r.id AS resource_id, r.filename, r.created_at,
                       COUNT(c.id) AS chunks
                FROM resources r
                LEFT JOIN chunks c ON c.resource_id = r.id
                GROUP BY r.id
                ORDER BY r.created_at DESC, r.rowid DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [
            ResourceSummary(
                resource_id=r["resource_id"],
                filename=r["filename"],
                created_at=r["created_at"],
                chunks=r["chunks"],
            )
            for r in rows
        ]

    def count_resources(self) -> int:
        with self._guard("count_resources"):
            return self._conn.execute("SELECT COUNT(*) FROM resources").fetchone()[0]

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunks(
        self,
        resource_id: str,
        spans: Sequence[str],
        vectors: Sequence[Sequence[float]],
    ) -> list[int]:
        """Insert one chunk per (span, vector) pair for *resource_id*.

        All rows are written or none are. Returns the new chunk ids in span
        order.

        Raises:
            EmbeddingMismatch: If counts differ or a vector has the wrong
                dimension. Nothing is written.
        """
        if len(spans) != len(vectors):
            raise EmbeddingMismatch(
                f"{len(vectors)} vectors for {len(spans)} spans",
                expected=len(spans),
                actual=len(vectors),
            )
        for vector in vectors:
            check_vector(vector, self.dimensions)

        ids: list[int] = []
        with self.transaction(), self._guard("add_chunks"):
            ensure_dimensions(self._conn, self.dimensions, self.model)
            for index, (span, vector) in enumerate(zip(spans, vectors)):
                cur = self._conn.execute(
                    """
                    INSERT INTO chunks (resource_id, chunk_index, content, embedding)
                    VALUES (?, ?, ?, ?)
                    """,
                    (resource_id, index, span, encode_embedding(vector)),
                )
                ids.append(cur.lastrowid)
        return ids

    def ingest_document(
        self,
        filename: str | None,
        content: str,
        spans: Sequence[str],
        vectors: Sequence[Sequence[float]],
    ) -> str:
        """Create a resource and its chunks as one atomic unit. Returns the resource id."""
        with self.transaction():
            resource_id = self.create_resource(filename, content)
            self.add_chunks(resource_id, spans, vectors)
        logger.info(
            "resource_ingested",
            resource_id=resource_id,
            filename=filename,
            chunks=len(spans),
        )
        return resource_id

    def count_chunks(self, resource_id: str | None = None) -> int:
        """Return the chunk count for *resource_id*, or for the whole corpus."""
        with self._guard("count_chunks"):
            if resource_id is None:
                return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
            return self._conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE resource_id = ?", (resource_id,)
            ).fetchone()[0]

    # ------------------------------------------------------------------
    # Vector search
    # ------------------------------------------------------------------

    def search_nearest(
        self,
        embedding: Sequence[float],
        k: int,
        metric: str = "cosine",
    ) -> list[Hit]:
        """Exact nearest-neighbour scan over every chunk, closest first.

        Ties on distance are broken by chunk id, so the same query against
        the same corpus always yields the same order.
        """
        if k < 1:
            return []
        fn = distance_function(metric)
        check_vector(embedding, self.dimensions)
        with self._guard("search_nearest"):
            rows = self._conn.execute(
                f"""
                SELECT c.id AS chunk_id, c.resource_id, r.filename, c.content,
                       {fn}(c.embedding, ?) AS score
                FROM chunks c
                JOIN resources r ON r.id = c.resource_id
                ORDER BY score ASC, c.id ASC
                LIMIT ?
                """,  # noqa: S608
                (encode_embedding(embedding), k),
            ).fetchall()
        return [
            Hit(
                resource_id=r["resource_id"],
                filename=r["filename"],
                content=r["content"],
                score=float(r["score"]),
                chunk_id=r["chunk_id"],
            )
            for r in rows
        ]
