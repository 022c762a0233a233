"""vraagbaak sessions: browse and manage stored chat sessions.

Commands:
  vraagbaak sessions list [--limit N]
  vraagbaak sessions show ID
  vraagbaak sessions rename ID TITLE
  vraagbaak sessions delete ID [--hard] [--yes]
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from vraagbaak.cli.errors import err_domain
from vraagbaak.cli.runtime import open_runtime, require_db
from vraagbaak.config import VraagbaakConfig
from vraagbaak.db.models import Role
from vraagbaak.errors import VraagbaakError

console = Console()

sessions_app = typer.Typer(
    name="sessions",
    help="Browse and manage chat sessions.",
    add_completion=False,
)

_DbOption = Annotated[Path | None, typer.Option("--db", help="Path to the database.")]


@sessions_app.command("list")
def sessions_list_cmd(
    ctx: typer.Context,
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, help="How many to show."),
    ] = None,
    db: _DbOption = None,
) -> None:
    """List chat sessions, most recently updated first."""
    cfg: VraagbaakConfig = ctx.obj
    require_db(cfg, db, console)
    try:
        with open_runtime(cfg, db) as rt:
            sessions = rt.recorder().list_sessions(limit or cfg.sessions.list_limit)
    except VraagbaakError as exc:
        console.print(err_domain(exc))
        raise typer.Exit(1)

    if not sessions:
        console.print("[dim]No chat sessions yet.[/]")
        return

    table = Table(title="Chat sessions", show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Messages", justify="right")
    table.add_column("Updated")
    table.add_column("Preview", style="dim")
    for s in sessions:
        table.add_row(
            s.id,
            escape(s.title),
            str(s.message_count),
            s.updated_at or "",
            escape(s.preview or ""),
        )
    console.print(table)


@sessions_app.command("show")
def sessions_show_cmd(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session id.")],
    db: _DbOption = None,
) -> None:
    """Print a session's messages in order."""
    cfg: VraagbaakConfig = ctx.obj
    require_db(cfg, db, console)
    try:
        with open_runtime(cfg, db) as rt:
            session = rt.sessions.get_session(session_id)
    except VraagbaakError as exc:
        console.print(err_domain(exc))
        raise typer.Exit(1)

    flag = " [red](deleted)[/]" if session.is_deleted else ""
    console.print(f"[bold]{escape(session.title)}[/]{flag}  [dim]{session.id}[/]\n")
    for m in session.messages:
        who = "[cyan]you[/]" if m.role is Role.USER else "[green]assistant[/]"
        console.print(f"{who} [dim]{m.created_at}[/]")
        console.print(escape(m.content))
        if m.sources:
            names = ", ".join(escape(s.filename or "unknown") for s in m.sources)
            console.print(f"[dim]sources: {names}[/]")
        console.print()


@sessions_app.command("rename")
def sessions_rename_cmd(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session id.")],
    title: Annotated[str, typer.Argument(help="New title.")],
    db: _DbOption = None,
) -> None:
    """Change a session's title."""
    cfg: VraagbaakConfig = ctx.obj
    require_db(cfg, db, console)
    try:
        with open_runtime(cfg, db) as rt:
            rt.sessions.update_session_meta(session_id, title=title)
    except VraagbaakError as exc:
        console.print(err_domain(exc))
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Renamed {session_id}")


@sessions_app.command("delete")
def sessions_delete_cmd(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session id.")],
    hard: Annotated[
        bool,
        typer.Option("--hard", help="Remove the session and its messages permanently."),
    ] = False,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: _DbOption = None,
) -> None:
    """Hide a session from listings (or remove it with --hard)."""
    cfg: VraagbaakConfig = ctx.obj
    require_db(cfg, db, console)
    if hard and not yes and not typer.confirm(
        f"Permanently delete session {session_id}?", default=False
    ):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)
    try:
        with open_runtime(cfg, db) as rt:
            if hard:
                removed = rt.sessions.delete_session(session_id)
            else:
                rt.sessions.soft_delete_session(session_id)
    except VraagbaakError as exc:
        console.print(err_domain(exc))
        raise typer.Exit(1)

    if hard:
        console.print(f"[green]✓[/] Deleted {session_id} ({removed} messages)")
    else:
        console.print(f"[green]✓[/] Deleted {session_id}")
