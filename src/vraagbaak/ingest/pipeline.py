"""Ingestion orchestrator: extract → chunk → embed → persist, per file.

Each file moves through ``received → extracted → chunked → embedded →
persisted``; ``error`` is reachable from any step. Empty or failed
extraction records the file with 0 chunks and moves on.

Extraction, chunking and embedding touch no store state, so with
``workers > 1`` they run on a thread pool across files. Persistence always
happens on the caller's thread, one file at a time, in input order, and
each file's resource + chunks commit as one transaction.

By default every file has its own error boundary. With ``fail_fast`` the
first embedding mismatch aborts the whole request.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum

from vraagbaak.db.corpus import CorpusStore
from vraagbaak.errors import (
    EmbeddingMismatch,
    ExtractionError,
    UnsupportedMediaType,
    ValidationError,
    VraagbaakError,
)
from vraagbaak.ingest.chunker import TextChunker
from vraagbaak.ingest.extract import extract_text
from vraagbaak.log import get_logger
from vraagbaak.rag.embeddings import EmbeddingGateway

logger = get_logger(__name__)

ExtractFn = Callable[[bytes | str, str | None], str]


class FileState(str, Enum):
    RECEIVED = "received"
    EXTRACTED = "extracted"
    CHUNKED = "chunked"
    EMBEDDED = "embedded"
    PERSISTED = "persisted"
    SKIPPED = "skipped"      # extraction produced no text
    CANCELLED = "cancelled"  # request cancelled before this file committed
    ERROR = "error"


@dataclass
class UploadedFile:
    """One named blob submitted for ingestion."""

    filename: str
    data: bytes | str


@dataclass
class FileSummary:
    filename: str
    chunks: int = 0
    state: FileState = FileState.RECEIVED
    resource_id: str | None = None
    error: dict[str, str] | None = None

    def to_dict(self) -> dict:
        out: dict = {"filename": self.filename, "chunks": self.chunks, "state": self.state.value}
        if self.resource_id:
            out["resource_id"] = self.resource_id
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class IngestReport:
    inserted_total: int = 0
    files: list[FileSummary] = field(default_factory=list)

    @property
    def failed(self) -> list[FileSummary]:
        return [f for f in self.files if f.state is FileState.ERROR]

    def to_dict(self) -> dict:
        return {
            "inserted_total": self.inserted_total,
            "per_file_summary": [f.to_dict() for f in self.files],
        }


@dataclass
class _Prepared:
    """Output of the store-free half of the pipeline for one file."""

    summary: FileSummary
    text: str = ""
    spans: list[str] = field(default_factory=list)
    vectors: list[list[float]] = field(default_factory=list)
    exc: Exception | None = None


class IngestOrchestrator:
    """Drive uploaded files into the corpus store.

    Args:
        store: Corpus store that receives resources and chunks.
        gateway: Embedding gateway for chunk texts.
        chunker: Span splitter (defaults to 800 / 100 characters).
        extractor: Extraction collaborator (defaults to
            :func:`vraagbaak.ingest.extract.extract_text`).
        workers: Threads for extraction + embedding across files.
        fail_fast: Abort the whole request on the first embedding mismatch.
    """

    def __init__(
        self,
        store: CorpusStore,
        gateway: EmbeddingGateway,
        chunker: TextChunker | None = None,
        extractor: ExtractFn | None = None,
        workers: int = 1,
        fail_fast: bool = False,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._store = store
        self._gateway = gateway
        self._chunker = chunker or TextChunker()
        self._extract = extractor or extract_text
        self.workers = workers
        self.fail_fast = fail_fast

    def ingest(
        self,
        files: Sequence[UploadedFile],
        cancel: threading.Event | None = None,
    ) -> IngestReport:
        """Ingest *files* and return the aggregate report.

        Args:
            files: Named blobs, processed and reported in this order.
            cancel: When set, files not yet committed are reported as
                ``cancelled`` and nothing more is written.

        Raises:
            ValidationError: If *files* is empty.
            EmbeddingMismatch: Only with ``fail_fast``; files committed
                before the failing one stay committed.
        """
        if not files:
            raise ValidationError("No files provided.")

        report = IngestReport()
        logger.info("ingest_started", files=len(files), workers=self.workers)

        for upload, prepared in zip(files, self._prepare_all(files, cancel)):
            summary = prepared.summary
            if cancel is not None and cancel.is_set():
                summary.state = FileState.CANCELLED
                summary.chunks = 0
                report.files.append(summary)
                continue
            if prepared.exc is not None:
                if self.fail_fast and isinstance(prepared.exc, EmbeddingMismatch):
                    logger.error(
                        "ingest_aborted",
                        filename=upload.filename,
                        error=str(prepared.exc),
                    )
                    raise prepared.exc
                report.files.append(summary)
                continue
            if summary.state is FileState.EMBEDDED:
                self._persist(prepared)
                if summary.state is FileState.PERSISTED:
                    report.inserted_total += summary.chunks
            report.files.append(summary)

        logger.info(
            "ingest_finished",
            inserted_total=report.inserted_total,
            files=len(report.files),
            failed=len(report.failed),
        )
        return report

    # ------------------------------------------------------------------
    # Store-free stages
    # ------------------------------------------------------------------

    def _prepare_all(
        self,
        files: Sequence[UploadedFile],
        cancel: threading.Event | None,
    ) -> Iterator[_Prepared]:
        """Yield prepared files in input order."""
        if self.workers == 1 or len(files) == 1:
            for upload in files:
                if cancel is not None and cancel.is_set():
                    yield _Prepared(summary=FileSummary(filename=upload.filename or "unknown"))
                    continue
                yield self._prepare(upload)
            return

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [(upload, pool.submit(self._prepare, upload)) for upload in files]
            try:
                for upload, future in futures:
                    if cancel is not None and cancel.is_set() and future.cancel():
                        yield _Prepared(summary=FileSummary(filename=upload.filename or "unknown"))
                        continue
                    yield future.result()
            finally:
                # Reached early when the caller stops consuming (fail_fast).
                for _, future in futures:
                    future.cancel()

    def _prepare(self, upload: UploadedFile) -> _Prepared:
        """Run extraction, chunking and embedding for one file."""
        summary = FileSummary(filename=upload.filename or "unknown")
        log = logger.bind(filename=summary.filename)

        try:
            text = self._extract(upload.data, upload.filename)
        except (ExtractionError, UnsupportedMediaType) as exc:
            log.warning("extraction_failed", error=str(exc))
            return _failed(summary, exc)
        except Exception as exc:
            log.error("extraction_crashed", error=str(exc))
            return _failed(summary, exc)
        summary.state = FileState.EXTRACTED

        if not text:
            log.info("extraction_empty")
            summary.state = FileState.SKIPPED
            return _Prepared(summary=summary)

        spans = self._chunker.split(text)
        summary.state = FileState.CHUNKED
        if not spans:
            summary.state = FileState.SKIPPED
            return _Prepared(summary=summary)

        try:
            vectors = self._gateway.embed(spans)
        except EmbeddingMismatch as exc:
            log.error("embedding_mismatch", expected=exc.expected, actual=exc.actual)
            return _failed(summary, exc)
        except Exception as exc:
            log.error("embedding_failed", error=str(exc))
            return _failed(summary, exc)
        summary.state = FileState.EMBEDDED
        log.debug("file_embedded", chunks=len(spans))
        return _Prepared(summary=summary, text=text, spans=spans, vectors=vectors)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self, prepared: _Prepared) -> None:
        summary = prepared.summary
        try:
            summary.resource_id = self._store.ingest_document(
                summary.filename, prepared.text, prepared.spans, prepared.vectors
            )
        except VraagbaakError as exc:
            logger.error("persist_failed", filename=summary.filename, error=str(exc))
            summary.state = FileState.ERROR
            summary.error = exc.to_dict()
            if self.fail_fast:
                raise
            return
        summary.chunks = len(prepared.spans)
        summary.state = FileState.PERSISTED


def _failed(summary: FileSummary, exc: Exception) -> _Prepared:
    summary.state = FileState.ERROR
    summary.chunks = 0
    if isinstance(exc, VraagbaakError):
        summary.error = exc.to_dict()
    else:
        summary.error = {"kind": type(exc).__name__, "message": str(exc)}
    return _Prepared(summary=summary, exc=exc)
