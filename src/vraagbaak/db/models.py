"""Domain models for the vraagbaak database layer."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum


@dataclass
class Resource:
    id: str
    filename: str | None
    content: str
    created_at: str | None = None


@dataclass
class ResourceSummary:
    """A resource row annotated with its live chunk count (listing view)."""

    resource_id: str
    filename: str | None
    created_at: str
    chunks: int


@dataclass
class Hit:
    """A ranked chunk with its distance score and provenance."""

    resource_id: str
    filename: str | None
    content: str
    score: float
    chunk_id: int | None = None


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class SourceRef:
    """Provenance of an assistant turn: one retrieval hit, without its text."""

    resource_id: str
    filename: str | None
    score: float

    @classmethod
    def from_hit(cls, hit: Hit) -> SourceRef:
        return cls(resource_id=hit.resource_id, filename=hit.filename, score=hit.score)


@dataclass
class Message:
    id: str
    session_id: str
    role: Role
    content: str
    sources: list[SourceRef] = field(default_factory=list)
    client_turn_token: str | None = None
    created_at: str | None = None


@dataclass
class ChatSession:
    id: str
    title: str
    preview: str | None = None
    message_count: int = 0
    created_at: str | None = None
    updated_at: str | None = None
    is_deleted: bool = False
    messages: list[Message] = field(default_factory=list)


# ------------------------------------------------------------------
# Store-boundary codecs for Message.sources
# ------------------------------------------------------------------


def encode_sources(sources: list[SourceRef] | None) -> str | None:
    """Serialize *sources* for the ``messages.sources`` column (None when empty)."""
    if not sources:
        return None
    return json.dumps([asdict(s) for s in sources])


def decode_sources(raw: str | None) -> list[SourceRef]:
    """Parse a ``messages.sources`` column value back into SourceRef objects."""
    if not raw:
        return []
    return [
        SourceRef(
            resource_id=str(item["resource_id"]),
            filename=item.get("filename"),
            score=float(item["score"]),
        )
        for item in json.loads(raw)
    ]
