"""Context assembler: turn ranked hits into the prompt sent to generation.

Pipeline:
  1. Drop hits farther than ``max_distance`` (when configured).
  2. Keep hits in rank order until ``token_budget`` is reached
     (the best hit is always kept).
  3. Render each hit as a labelled block and pair the blocks with the
     fixed answering instruction.

When no hit survives, the no-context policy decides: ``fallback`` answers
with :data:`NO_CONTEXT_ANSWER` without calling generation; ``generate``
still calls generation with :data:`NO_CONTEXT_INSTRUCTION`.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from vraagbaak.db.models import Hit
from vraagbaak.rag.llm_client import count_tokens

NO_CONTEXT_ANSWER = "Sorry, I don't know."

SYSTEM_INSTRUCTION = (
    "Answer as much as possible from the context below. "
    "If the context is not complete enough, combine the clues it contains "
    "or give the most likely answer. "
    f'Only if there is really nothing usable in it, say: "{NO_CONTEXT_ANSWER}"'
)

NO_CONTEXT_INSTRUCTION = (
    "No documents matched this question. Answer from general knowledge, "
    "say clearly that the answer is not based on the uploaded documents, "
    f'and if you do not know, say: "{NO_CONTEXT_ANSWER}"'
)

CHUNK_SEPARATOR = "\n\n---\n\n"


@dataclass
class AssemblerConfig:
    max_distance: float | None = None    # hits farther than this are dropped
    token_budget: int = 8_192            # max tokens of rendered context
    no_context_policy: str = "fallback"  # fallback | generate
    generation_model: str = "openai/gpt-4o"


@dataclass
class AssembledPrompt:
    """Result of :func:`assemble`.

    ``fallback_answer`` is set when generation must be skipped; the caller
    returns it verbatim.
    """

    system: str
    context: str = ""
    hits: list[Hit] = field(default_factory=list)
    fallback_answer: str | None = None
    total_tokens: int = 0

    @property
    def has_context(self) -> bool:
        return bool(self.hits)

    def user_prompt(self, query: str) -> str:
        if not self.context:
            return f"Question: {query}"
        return f"Question: {query}\n\nContext:\n{self.context}"


def assemble(hits: list[Hit], config: AssemblerConfig | None = None) -> AssembledPrompt:
    """Filter, budget, and render *hits* into an AssembledPrompt."""
    config = config or AssemblerConfig()

    usable = [
        h
        for h in hits
        if config.max_distance is None or h.score <= config.max_distance
    ]

    if not usable:
        if config.no_context_policy == "generate":
            return AssembledPrompt(system=NO_CONTEXT_INSTRUCTION)
        return AssembledPrompt(system=SYSTEM_INSTRUCTION, fallback_answer=NO_CONTEXT_ANSWER)

    selected, total_tokens = _apply_token_budget(
        usable, config.generation_model, config.token_budget
    )
    return AssembledPrompt(
        system=SYSTEM_INSTRUCTION,
        context=render_context(selected),
        hits=selected,
        total_tokens=total_tokens,
    )


def render_hit(rank: int, hit: Hit) -> str:
    """Render one hit as ``# Chunk {rank} [score=…] [file=…]`` plus its content."""
    return (
        f"# Chunk {rank} [score={hit.score:.4f}] [file={hit.filename or 'unknown'}]\n"
        f"{hit.content}"
    )


def render_context(hits: list[Hit]) -> str:
    return CHUNK_SEPARATOR.join(render_hit(i + 1, h) for i, h in enumerate(hits))


# ------------------------------------------------------------------
# Token budget
# ------------------------------------------------------------------


def _apply_token_budget(
    hits: list[Hit],
    model: str,
    budget: int,
) -> tuple[list[Hit], int]:
    """Select hits that fit within *budget* tokens. Returns (selected, total_tokens)."""
    selected: list[Hit] = []
    total = 0
    for rank, hit in enumerate(hits, start=1):
        tokens = count_tokens(model, render_hit(rank, hit))
        if selected and total + tokens > budget:
            break
        selected.append(hit)
        total += tokens
    return selected, total
