"""vraagbaak status: database location, corpus and session counts."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from vraagbaak.cli.errors import err_domain
from vraagbaak.cli.runtime import open_runtime, resolve_db
from vraagbaak.config import VraagbaakConfig
from vraagbaak.db.migrations import schema_version
from vraagbaak.db.vectors import corpus_dimensions, corpus_model
from vraagbaak.errors import VraagbaakError

console = Console()


def status_cmd(
    ctx: typer.Context,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database."),
    ] = None,
) -> None:
    """Show the database, the knowledge base and the configured models."""
    cfg: VraagbaakConfig = ctx.obj
    path = resolve_db(cfg, db)

    db_info = escape(str(path))
    if path.exists():
        size_mb = path.stat().st_size / (1024 * 1024)
        db_info += f" ({size_mb:.1f} MB)"
    console.print(
        Panel(
            f"Database:   {db_info}\n"
            f"Embedding:  {escape(cfg.embedding.model)} ({cfg.embedding.dimensions} dims)\n"
            f"Generation: {escape(cfg.generation.model)}",
            title="[bold]Project[/]",
            expand=False,
        )
    )

    if not path.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  vraagbaak ingest FILE...",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        return

    try:
        with open_runtime(cfg, db) as rt:
            resources = rt.corpus.count_resources()
            chunks = rt.corpus.count_chunks()
            dims = corpus_dimensions(rt.conn)
            model = corpus_model(rt.conn)
            sessions = len(rt.sessions.list_sessions(cfg.sessions.list_limit))
            version = schema_version(rt.conn)
    except VraagbaakError as exc:
        console.print(err_domain(exc))
        raise typer.Exit(1)

    lines = [
        f"Documents: [bold]{resources}[/]  |  Chunks: [bold]{chunks:,}[/]  |  "
        f"Sessions: [bold]{sessions}[/]",
        f"Schema version: {version}",
    ]
    if dims is not None:
        lines.append(f"Stored vectors: {dims} dims ({escape(model or 'unknown model')})")
        if dims != cfg.embedding.dimensions:
            lines.append(
                "[yellow]⚠ Config dimension differs from the stored corpus.[/]\n"
                "  Run:  vraagbaak resources clear --yes  before re-ingesting."
            )
    else:
        lines.append("[dim]No documents ingested yet.[/]")
    console.print(Panel("\n".join(lines), title="[bold]Knowledge Base[/]", expand=False))
