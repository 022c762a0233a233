"""vraagbaak CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer
from rich.console import Console

from vraagbaak.cli.ask import ask_cmd
from vraagbaak.cli.errors import err_config
from vraagbaak.cli.ingest import ingest_cmd
from vraagbaak.cli.resources import resources_app
from vraagbaak.cli.sessions import sessions_app
from vraagbaak.cli.status import status_cmd
from vraagbaak.config import ConfigError, load_config
from vraagbaak.log import configure_logging

console = Console()


def _version() -> str:
    try:
        return importlib.metadata.version("vraagbaak")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"vraagbaak {_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="vraagbaak",
    help=(
        "vraagbaak: ask questions about your own documents.\n\n"
        "  vraagbaak ingest  Store PDFs and text files as searchable chunks.\n"
        "  vraagbaak ask     Answer a question from the stored chunks."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR (overrides config)."),
    ] = None,
) -> None:
    """vraagbaak: ask questions about your own documents."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(exc.message))
        raise typer.Exit(1)
    if log_level:
        cfg.logging.level = log_level
    configure_logging(cfg.logging.level, json_output=cfg.logging.json)
    ctx.obj = cfg


app.command("ingest")(ingest_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)
app.add_typer(resources_app, name="resources")
app.add_typer(sessions_app, name="sessions")


@app.command("version")
def version_cmd() -> None:
    """Show the installed vraagbaak version."""
    typer.echo(f"vraagbaak {_version()}")


if __name__ == "__main__":
    app()
