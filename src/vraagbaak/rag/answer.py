"""Question answering: retrieve → assemble → generate (streamed).

Failures in retrieval or generation never reach the conversation
transcript; the caller receives the neutral fallback answer instead and
the failure is logged.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from vraagbaak.db.models import Hit, Role, SourceRef
from vraagbaak.log import get_logger
from vraagbaak.rag import llm_client
from vraagbaak.rag.assembler import (
    NO_CONTEXT_ANSWER,
    AssembledPrompt,
    AssemblerConfig,
    assemble,
)
from vraagbaak.rag.retriever import Retriever

logger = get_logger(__name__)

StreamFn = Callable[..., Iterator[str]]


@dataclass
class GenerationConfig:
    model: str = "openai/gpt-4o"
    max_tokens: int = 1024
    temperature: float = 0.2
    timeout: float = 30.0
    history_turns: int = 6


@dataclass
class Turn:
    """One conversation turn as supplied by the caller."""

    role: Role
    content: str


@dataclass
class Answer:
    """A streamed answer plus the hits it was grounded on.

    Iterate over ``stream`` (or call :meth:`text`) exactly once.
    """

    query: str
    stream: Iterator[str]
    hits: list[Hit] = field(default_factory=list)
    generated: bool = False

    @property
    def sources(self) -> list[SourceRef]:
        return [SourceRef.from_hit(h) for h in self.hits]

    def text(self) -> str:
        return "".join(self.stream)


class AnswerService:
    """Answer questions from the corpus.

    Args:
        retriever: Produces ranked hits for the query.
        assembler_config: Context filtering, budget and no-context policy.
        generation_config: Generation model and limits.
        stream_fn: Collaborator override (defaults to
            :func:`vraagbaak.rag.llm_client.stream_complete`).
    """

    def __init__(
        self,
        retriever: Retriever,
        assembler_config: AssemblerConfig | None = None,
        generation_config: GenerationConfig | None = None,
        stream_fn: StreamFn | None = None,
    ) -> None:
        self._retriever = retriever
        self.assembler_config = assembler_config or AssemblerConfig()
        self.generation_config = generation_config or GenerationConfig()
        self._stream_fn = stream_fn or llm_client.stream_complete

    def ask(self, history: list[Turn], k: int | None = None) -> Answer:
        """Answer the last user turn in *history*.

        Earlier turns (up to ``history_turns``) are passed to generation as
        conversation context.
        """
        query = _last_user_query(history)
        if not query:
            return _fallback(query)

        try:
            hits = self._retriever.retrieve(query, k)
        except Exception as exc:
            # Covers store errors and untyped embedding collaborator errors.
            logger.error(
                "retrieval_failed",
                query=query,
                error=str(exc),
                kind=getattr(exc, "kind", type(exc).__name__),
            )
            return _fallback(query)

        prompt = assemble(hits, self.assembler_config)
        if prompt.fallback_answer is not None:
            logger.info("answer_without_context", query=query)
            return Answer(query=query, stream=iter([prompt.fallback_answer]))

        messages = self._build_messages(history, query, prompt)
        return Answer(
            query=query,
            stream=self._generate(messages),
            hits=prompt.hits,
            generated=True,
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _build_messages(
        self, history: list[Turn], query: str, prompt: AssembledPrompt
    ) -> list[dict]:
        earlier = _without_last_user(history)
        if self.generation_config.history_turns > 0:
            earlier = earlier[-self.generation_config.history_turns :]
        else:
            earlier = []
        return [
            {"role": "system", "content": prompt.system},
            *({"role": Role(t.role).value, "content": t.content} for t in earlier),
            {"role": "user", "content": prompt.user_prompt(query)},
        ]

    def _generate(self, messages: list[dict]) -> Iterator[str]:
        """Yield generated text; on failure yield the fallback answer instead.

        If the failure happens after some text was produced, the partial
        text stands and nothing else is appended.
        """
        cfg = self.generation_config
        produced = False
        try:
            for delta in self._stream_fn(
                model=cfg.model,
                messages=messages,
                max_tokens=cfg.max_tokens,
                temperature=cfg.temperature,
                timeout=cfg.timeout,
            ):
                produced = True
                yield delta
        except Exception as exc:
            logger.error("generation_failed", model=cfg.model, error=str(exc))
            if not produced:
                yield NO_CONTEXT_ANSWER
            return
        if not produced:
            yield NO_CONTEXT_ANSWER


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _last_user_query(history: list[Turn]) -> str:
    for turn in reversed(history):
        if Role(turn.role) is Role.USER:
            return turn.content.strip()
    return ""


def _without_last_user(history: list[Turn]) -> list[Turn]:
    for i in range(len(history) - 1, -1, -1):
        if Role(history[i].role) is Role.USER:
            return history[:i]
    return list(history)


def _fallback(query: str) -> Answer:
    return Answer(query=query, stream=iter([NO_CONTEXT_ANSWER]))
