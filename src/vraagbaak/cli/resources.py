"""vraagbaak resources: inspect and remove ingested documents.

Commands:
  vraagbaak resources list [--limit N]   most recent first (default 12, max 50)
  vraagbaak resources show ID            metadata plus the start of the text
  vraagbaak resources delete ID [--yes]  remove a document and its chunks
  vraagbaak resources clear [--yes]      remove every document and chunk
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from vraagbaak.cli.errors import err_domain
from vraagbaak.cli.runtime import open_runtime, require_db
from vraagbaak.config import VraagbaakConfig
from vraagbaak.errors import VraagbaakError

console = Console()

resources_app = typer.Typer(
    name="resources",
    help="Inspect and remove ingested documents.",
    add_completion=False,
)

_DbOption = Annotated[Path | None, typer.Option("--db", help="Path to the database.")]
_YesOption = Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")]


@resources_app.command("list")
def resources_list_cmd(
    ctx: typer.Context,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="How many to show (clamped to 1..50)."),
    ] = 12,
    db: _DbOption = None,
) -> None:
    """List the most recently ingested documents."""
    cfg: VraagbaakConfig = ctx.obj
    require_db(cfg, db, console)
    try:
        with open_runtime(cfg, db) as rt:
            recent = rt.corpus.list_recent(limit)
            total = rt.corpus.count_resources()
    except VraagbaakError as exc:
        console.print(err_domain(exc))
        raise typer.Exit(1)

    if not recent:
        console.print("[dim]No documents ingested yet.[/]")
        return

    table = Table(title="Documents", show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("File", style="bold")
    table.add_column("Chunks", justify="right")
    table.add_column("Ingested")
    for r in recent:
        table.add_row(r.resource_id, escape(r.filename or "unknown"), str(r.chunks), r.created_at)
    console.print(table)
    console.print(f"\n  {len(recent)}/{total} shown")


@resources_app.command("show")
def resources_show_cmd(
    ctx: typer.Context,
    resource_id: Annotated[str, typer.Argument(help="Document id.")],
    chars: Annotated[
        int,
        typer.Option("--chars", help="How much of the text to show."),
    ] = 500,
    db: _DbOption = None,
) -> None:
    """Show one document's metadata and the start of its text."""
    cfg: VraagbaakConfig = ctx.obj
    require_db(cfg, db, console)
    try:
        with open_runtime(cfg, db) as rt:
            resource = rt.corpus.get_resource(resource_id)
            chunks = rt.corpus.count_chunks(resource_id)
    except VraagbaakError as exc:
        console.print(err_domain(exc))
        raise typer.Exit(1)

    body = resource.content[:chars]
    if len(resource.content) > chars:
        body += " …"
    console.print(
        Panel(
            f"File:     [bold]{escape(resource.filename or 'unknown')}[/]\n"
            f"Ingested: {resource.created_at}\n"
            f"Chunks:   {chunks}\n\n"
            f"{escape(body)}",
            title=f"[bold]{resource.id}[/]",
            expand=False,
        )
    )


@resources_app.command("delete")
def resources_delete_cmd(
    ctx: typer.Context,
    resource_id: Annotated[str, typer.Argument(help="Document id.")],
    yes: _YesOption = False,
    db: _DbOption = None,
) -> None:
    """Remove a document and all its chunks."""
    cfg: VraagbaakConfig = ctx.obj
    require_db(cfg, db, console)
    try:
        with open_runtime(cfg, db) as rt:
            resource = rt.corpus.get_resource(resource_id)
            if not yes:
                console.print(
                    f"\nRemove document: [bold]{escape(resource.filename or resource.id)}[/]"
                    f"  ({rt.corpus.count_chunks(resource_id)} chunks)"
                )
                if not typer.confirm("Confirm removal?", default=False):
                    console.print("[dim]Cancelled.[/]")
                    raise typer.Exit(0)
            removed = rt.corpus.delete_resource(resource_id)
    except VraagbaakError as exc:
        console.print(err_domain(exc))
        raise typer.Exit(1)

    console.print(f"[green]✓[/] Removed {resource_id} ({removed} chunks)")


@resources_app.command("clear")
def resources_clear_cmd(
    ctx: typer.Context,
    yes: _YesOption = False,
    db: _DbOption = None,
) -> None:
    """Remove every document and chunk; the next ingest may use a new embedding size."""
    cfg: VraagbaakConfig = ctx.obj
    require_db(cfg, db, console)
    if not yes and not typer.confirm("Remove ALL documents?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)
    try:
        with open_runtime(cfg, db) as rt:
            removed = rt.corpus.clear_all()
    except VraagbaakError as exc:
        console.print(err_domain(exc))
        raise typer.Exit(1)

    console.print(f"[green]✓[/] Removed {removed} document(s)")
