"""vraagbaak ingest: extract, chunk, embed and store uploaded files.

Each file gets its own error boundary; one bad file is reported in the
summary table and the rest still commit. ``--fail-fast`` aborts the whole
run on the first embedding mismatch instead.

Usage:
  vraagbaak ingest notes.txt handbook.pdf
  vraagbaak ingest docs/*.md --workers 4 --json
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from vraagbaak.cli.errors import err_domain, err_no_api_key
from vraagbaak.cli.runtime import open_runtime
from vraagbaak.config import VraagbaakConfig
from vraagbaak.errors import VraagbaakError
from vraagbaak.ingest.pipeline import FileState, IngestReport, UploadedFile
from vraagbaak.rag import llm_client

console = Console()

_STATE_STYLE = {
    FileState.PERSISTED: "[green]✓ stored[/]",
    FileState.SKIPPED: "[yellow]↷ empty[/]",
    FileState.CANCELLED: "[dim]cancelled[/]",
    FileState.ERROR: "[red]✗ error[/]",
}


def ingest_cmd(
    ctx: typer.Context,
    files: Annotated[
        list[Path],
        typer.Argument(help="Files to ingest (PDF or UTF-8 text)."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database (created if missing)."),
    ] = None,
    workers: Annotated[
        int | None,
        typer.Option("--workers", min=1, help="Threads for extraction + embedding."),
    ] = None,
    fail_fast: Annotated[
        bool,
        typer.Option("--fail-fast", help="Abort on the first embedding mismatch."),
    ] = False,
    json_out: Annotated[
        bool,
        typer.Option("--json", help="Print the report as JSON."),
    ] = False,
) -> None:
    """Ingest one or more files into the knowledge base."""
    cfg: VraagbaakConfig = ctx.obj
    if workers is not None:
        cfg.ingest.workers = workers
    if fail_fast:
        cfg.ingest.fail_fast = True

    uploads = _read_files(files)

    try:
        llm_client.validate_api_key(cfg.embedding.model)
    except EnvironmentError:
        console.print(
            err_no_api_key(
                llm_client.provider_of(cfg.embedding.model),
                llm_client.api_key_env(cfg.embedding.model) or "",
            )
        )
        raise typer.Exit(1)

    try:
        with open_runtime(cfg, db) as rt:
            report = rt.orchestrator().ingest(uploads)
    except VraagbaakError as exc:
        console.print(err_domain(exc))
        raise typer.Exit(1)

    if json_out:
        console.print_json(data=report.to_dict())
    else:
        _print_report(report)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _read_files(paths: list[Path]) -> list[UploadedFile]:
    """Read every path up front so a missing file fails before any write."""
    uploads: list[UploadedFile] = []
    for path in paths:
        if not path.is_file():
            console.print(f"[red]Error:[/] File not found: '{escape(str(path))}'")
            raise typer.Exit(1)
        uploads.append(UploadedFile(filename=path.name, data=path.read_bytes()))
    return uploads


def _print_report(report: IngestReport) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")
    table.add_column("Detail", style="dim")

    for f in report.files:
        detail = f.error["message"] if f.error else (f.resource_id or "")
        table.add_row(
            escape(f.filename),
            _STATE_STYLE.get(f.state, f.state.value),
            str(f.chunks),
            escape(detail),
        )

    console.print(table)
    console.print(f"\n[bold]{report.inserted_total}[/] chunks stored")
    if report.failed:
        console.print(f"[yellow]{len(report.failed)} file(s) failed[/]")
