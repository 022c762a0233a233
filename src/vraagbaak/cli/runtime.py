"""Wire stores and services from a VraagbaakConfig for one CLI invocation."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console

from vraagbaak.chat.recorder import ConversationRecorder
from vraagbaak.cli.errors import err_no_db
from vraagbaak.config import VraagbaakConfig
from vraagbaak.db.corpus import CorpusStore
from vraagbaak.db.schema import open_database
from vraagbaak.db.sessions import SessionStore
from vraagbaak.ingest.chunker import TextChunker
from vraagbaak.ingest.pipeline import IngestOrchestrator
from vraagbaak.rag.answer import AnswerService, GenerationConfig
from vraagbaak.rag.assembler import AssemblerConfig
from vraagbaak.rag.embeddings import EmbeddingConfig, EmbeddingGateway
from vraagbaak.rag.retriever import LinearScanRanker, Retriever, RetrieverConfig


@dataclass
class Runtime:
    """Open connection plus the components built on top of it."""

    cfg: VraagbaakConfig
    conn: sqlite3.Connection
    corpus: CorpusStore
    sessions: SessionStore
    gateway: EmbeddingGateway

    def orchestrator(self) -> IngestOrchestrator:
        return IngestOrchestrator(
            self.corpus,
            self.gateway,
            chunker=TextChunker(self.cfg.chunking.chunk_size, self.cfg.chunking.overlap),
            workers=self.cfg.ingest.workers,
            fail_fast=self.cfg.ingest.fail_fast,
        )

    def answer_service(self) -> AnswerService:
        r = self.cfg.retrieval
        g = self.cfg.generation
        retriever = Retriever(
            self.gateway,
            LinearScanRanker(self.corpus, metric=r.metric),
            RetrieverConfig(top_k=r.top_k, metric=r.metric),
        )
        return AnswerService(
            retriever,
            AssemblerConfig(
                max_distance=r.max_distance,
                token_budget=r.token_budget,
                no_context_policy=r.no_context_policy,
                generation_model=g.model,
            ),
            GenerationConfig(
                model=g.model,
                max_tokens=g.max_tokens,
                temperature=g.temperature,
                timeout=g.timeout,
                history_turns=g.history_turns,
            ),
        )

    def recorder(self) -> ConversationRecorder:
        return ConversationRecorder(
            self.sessions, preview_max_chars=self.cfg.sessions.preview_max_chars
        )


def resolve_db(cfg: VraagbaakConfig, db: Path | None) -> Path:
    """``--db`` wins over the configured path."""
    return db if db is not None else Path(cfg.database.path)


def require_db(cfg: VraagbaakConfig, db: Path | None, console: Console) -> Path:
    """Return the database path, or exit 1 if it does not exist yet."""
    path = resolve_db(cfg, db)
    if not path.exists():
        console.print(err_no_db(str(path)))
        raise typer.Exit(1)
    return path


@contextmanager
def open_runtime(cfg: VraagbaakConfig, db: Path | None = None) -> Iterator[Runtime]:
    """Open (or create) the database and yield a Runtime; closes on exit."""
    conn = open_database(resolve_db(cfg, db))
    try:
        embedding = EmbeddingConfig(
            model=cfg.embedding.model,
            dimensions=cfg.embedding.dimensions,
            batch_size=cfg.embedding.batch_size,
        )
        yield Runtime(
            cfg=cfg,
            conn=conn,
            corpus=CorpusStore(conn, dimensions=embedding.dimensions, model=embedding.model),
            sessions=SessionStore(conn),
            gateway=EmbeddingGateway(embedding),
        )
    finally:
        conn.close()
