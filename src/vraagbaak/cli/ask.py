"""vraagbaak ask: answer a question from the knowledge base.

The answer streams to the console as it is generated; the documents it
was grounded on are listed afterwards. With ``--session`` the question
and answer are appended to that chat session (created if missing) and
earlier turns of the session are passed to generation as history.

Usage:
  vraagbaak ask "What is the warranty period?"
  vraagbaak ask "And for refurbished units?" --session 3f2a…
  vraagbaak ask "Who signed the lease?" --save
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from vraagbaak.chat.recorder import Conversation, ConversationRecorder, generate_title
from vraagbaak.cli.errors import err_domain, err_no_api_key
from vraagbaak.cli.runtime import open_runtime
from vraagbaak.config import VraagbaakConfig
from vraagbaak.db.models import Role, SourceRef
from vraagbaak.errors import ClientSideFallback, NotFound, VraagbaakError
from vraagbaak.rag import llm_client
from vraagbaak.rag.answer import Turn

console = Console()


def ask_cmd(
    ctx: typer.Context,
    question: Annotated[str, typer.Argument(help="The question to answer.")],
    session: Annotated[
        str | None,
        typer.Option("--session", "-s", help="Chat session id to continue (created if missing)."),
    ] = None,
    save: Annotated[
        bool,
        typer.Option("--save", help="Store the exchange in a new chat session."),
    ] = False,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", min=1, help="Number of chunks to retrieve."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database."),
    ] = None,
) -> None:
    """Ask a question; the answer is grounded on the ingested documents."""
    cfg: VraagbaakConfig = ctx.obj

    for model in (cfg.embedding.model, cfg.generation.model):
        try:
            llm_client.validate_api_key(model)
        except EnvironmentError:
            console.print(
                err_no_api_key(llm_client.provider_of(model), llm_client.api_key_env(model) or "")
            )
            raise typer.Exit(1)

    try:
        with open_runtime(cfg, db) as rt:
            recorder = rt.recorder()
            conversation: Conversation | None = None
            if session is not None:
                try:
                    conversation = recorder.load(session)
                except NotFound:
                    conversation = Conversation(id=session)
            elif save:
                conversation = Conversation(id=uuid.uuid4().hex)

            history = [Turn(t.role, t.content) for t in conversation.turns] if conversation else []
            history.append(Turn(Role.USER, question))

            answer = rt.answer_service().ask(history, k=top_k)
            parts: list[str] = []
            for delta in answer.stream:
                parts.append(delta)
                console.print(delta, end="", markup=False, highlight=False, soft_wrap=True)
            console.print()
            _print_sources(answer.sources)

            if conversation is not None:
                if not conversation.turns:
                    conversation.title = generate_title(
                        question, cfg.sessions.title_max_chars
                    )
                conversation.add(Role.USER, question)
                conversation.add(Role.ASSISTANT, "".join(parts), answer.sources)
                _save(recorder, conversation)
    except VraagbaakError as exc:
        console.print(err_domain(exc))
        raise typer.Exit(1)


def _save(recorder: ConversationRecorder, conversation: Conversation) -> None:
    try:
        recorder.save(conversation)
    except ClientSideFallback as exc:
        console.print(err_domain(exc))
        return
    console.print(f"[dim]Session: {conversation.id}[/]")


def _print_sources(sources: list[SourceRef]) -> None:
    if not sources:
        return
    console.print("\n[bold]Sources[/]")
    for i, src in enumerate(sources, start=1):
        console.print(
            f"  {i}. {escape(src.filename or 'unknown')} "
            f"[dim]score={src.score:.4f} id={src.resource_id}[/]"
        )
