"""vraagbaak rich error messages: actionable feedback.

Every error shown to the user states what went wrong and, where there is
one, the action that fixes it.

Usage:
    from vraagbaak.cli.errors import err_domain
    console.print(err_domain(exc))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from vraagbaak.errors import (
    ClientSideFallback,
    EmbeddingMismatch,
    NotFound,
    PersistenceError,
    VraagbaakError,
)


def err_no_api_key(provider: str, env_var: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".vraagbaak.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{escape(db_path)}'.\n"
        "  Run:  vraagbaak ingest FILE...  to create it."
    )


def err_config(message: str) -> str:
    return f"[red]Config error:[/] {escape(message)}"


def err_embedding_mismatch(exc: EmbeddingMismatch) -> str:
    """Vector size or count disagrees with the corpus."""
    return (
        f"[red]Error:[/] Embedding mismatch: {escape(exc.message)}\n"
        f"  Expected: {exc.expected}  |  Got: {exc.actual}\n"
        "  Check embedding.model / embedding.dimensions, or clear the corpus:\n"
        "    vraagbaak resources clear --yes"
    )


def err_not_found(exc: NotFound) -> str:
    hint = {
        "Resource": "vraagbaak resources list",
        "Session": "vraagbaak sessions list",
    }.get(exc.entity)
    msg = f"[yellow]Not found:[/] {escape(exc.message)}"
    if hint:
        msg += f"\n  Run:  {hint}  to see what exists."
    return msg


def err_persistence(exc: PersistenceError) -> str:
    return (
        f"[red]Error:[/] Database write failed: {escape(exc.message)}\n"
        "  Check that the database file is writable and not locked by another process."
    )


def warn_client_fallback(exc: ClientSideFallback) -> str:
    """Session could not be stored; only the in-process copy exists."""
    return (
        f"[yellow]⚠[/] Session '{escape(exc.session_id)}' was not saved to the database.\n"
        "  The conversation is kept in memory only and is lost when this command exits."
    )


def err_domain(exc: VraagbaakError) -> str:
    """Pick the message for any domain error."""
    if isinstance(exc, EmbeddingMismatch):
        return err_embedding_mismatch(exc)
    if isinstance(exc, NotFound):
        return err_not_found(exc)
    if isinstance(exc, ClientSideFallback):
        return warn_client_fallback(exc)
    if isinstance(exc, PersistenceError):
        return err_persistence(exc)
    return f"[red]Error ({exc.kind}):[/] {escape(exc.message)}"
