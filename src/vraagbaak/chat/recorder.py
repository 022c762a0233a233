"""Conversation recorder: flush in-memory conversations to the session store.

Each turn is tagged ``"{session_id}-{timestamp_ms}"``. Tokens already
persisted by this recorder are skipped without a store round-trip, and the
store's unique ``(session_id, client_turn_token)`` constraint catches the
rest, so saving the same conversation twice never duplicates a message.

When the store fails, the conversation is kept in a bounded in-process
cache and :class:`~vraagbaak.errors.ClientSideFallback` is raised. The cache
is a last resort; it is not shared between processes and is lost on exit.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime

from vraagbaak.db.models import ChatSession, Message, Role, SourceRef
from vraagbaak.db.sessions import DEFAULT_TITLE, SessionStore
from vraagbaak.errors import ClientSideFallback, PersistenceError
from vraagbaak.log import get_logger

logger = get_logger(__name__)

FALLBACK_CACHE_SIZE = 50


@dataclass
class ConversationTurn:
    role: Role
    content: str
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))
    sources: list[SourceRef] = field(default_factory=list)
    token: str | None = None  # set for turns loaded from the store


@dataclass
class Conversation:
    """The caller's in-memory view of one chat."""

    id: str
    title: str = DEFAULT_TITLE
    turns: list[ConversationTurn] = field(default_factory=list)

    def add(
        self,
        role: Role | str,
        content: str,
        sources: list[SourceRef] | None = None,
    ) -> ConversationTurn:
        """Append a turn stamped now, strictly later than every existing turn."""
        timestamp = int(time.time() * 1000)
        if self.turns:
            timestamp = max(timestamp, max(t.timestamp for t in self.turns) + 1)
        turn = ConversationTurn(Role(role), content, timestamp, list(sources or []))
        self.turns.append(turn)
        return turn


def turn_token(session_id: str, turn: ConversationTurn) -> str:
    """Stable identifier of *turn* within its session."""
    if turn.token is not None:
        return turn.token
    return f"{session_id}-{turn.timestamp}"


def generate_title(first_message: str, max_chars: int = 50) -> str:
    """Title from the first message: *max_chars* characters, ``...`` if cut."""
    text = first_message.strip()
    return text[:max_chars] + ("..." if len(text) > max_chars else "")


def make_preview(conversation: Conversation, max_chars: int = 100) -> str | None:
    if not conversation.turns:
        return None
    return conversation.turns[0].content[:max_chars]


class FallbackCache:
    """Most-recent-first cache of conversations that could not be persisted."""

    def __init__(self, max_sessions: int = FALLBACK_CACHE_SIZE) -> None:
        self.max_sessions = max_sessions
        self._items: OrderedDict[str, Conversation] = OrderedDict()

    def put(self, conversation: Conversation) -> None:
        self._items[conversation.id] = conversation
        self._items.move_to_end(conversation.id, last=False)
        while len(self._items) > self.max_sessions:
            self._items.popitem(last=True)

    def get(self, session_id: str) -> Conversation | None:
        return self._items.get(session_id)

    def discard(self, session_id: str) -> None:
        self._items.pop(session_id, None)

    def conversations(self) -> list[Conversation]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)


class ConversationRecorder:
    """Persist conversations through a :class:`SessionStore`.

    Args:
        store: Durable backend.
        cache: Fallback for failed writes (a private one when omitted).
        preview_max_chars: Length of the stored preview excerpt.
    """

    def __init__(
        self,
        store: SessionStore,
        cache: FallbackCache | None = None,
        preview_max_chars: int = 100,
    ) -> None:
        self._store = store
        self.cache = cache if cache is not None else FallbackCache()
        self.preview_max_chars = preview_max_chars
        self._persisted: set[str] = set()

    def save(self, conversation: Conversation) -> int:
        """Create or update the session and append turns not yet persisted.

        Returns:
            Number of messages written by this call.

        Raises:
            ClientSideFallback: The store failed; *conversation* is in
                :attr:`cache` instead.
        """
        try:
            written = self._save(conversation)
        except PersistenceError as exc:
            self.cache.put(conversation)
            logger.warning(
                "session_saved_to_fallback_cache",
                session_id=conversation.id,
                error=str(exc),
            )
            raise ClientSideFallback(conversation.id, exc) from exc
        self.cache.discard(conversation.id)
        return written

    def _save(self, conversation: Conversation) -> int:
        preview = make_preview(conversation, self.preview_max_chars)
        if self._store.session_exists(conversation.id):
            before = self._store.update_session_meta(
                conversation.id, title=conversation.title, preview=preview
            ).message_count
        else:
            self._store.create_session(
                title=conversation.title, preview=preview, session_id=conversation.id
            )
            before = 0

        for turn in conversation.turns:
            token = turn_token(conversation.id, turn)
            if token in self._persisted:
                continue
            self._store.append_message(
                conversation.id,
                turn.role,
                turn.content,
                sources=turn.sources,
                client_token=token,
            )
            self._persisted.add(token)

        written = self._store.get_session(conversation.id).message_count - before
        logger.debug("session_saved", session_id=conversation.id, written=written)
        return written

    def load(self, session_id: str) -> Conversation:
        """Rebuild a conversation from the store.

        Loaded turns count as persisted, so saving the result only writes
        turns added afterwards.

        Raises:
            NotFound: If no session has *session_id*.
        """
        session = self._store.get_session(session_id)
        conversation = Conversation(id=session.id, title=session.title)
        for m in session.messages:
            token = m.client_turn_token or f"stored-{m.id}"
            self._persisted.add(token)
            conversation.turns.append(
                ConversationTurn(
                    role=m.role,
                    content=m.content,
                    timestamp=_stored_timestamp(session.id, m),
                    sources=m.sources,
                    token=token,
                )
            )
        return conversation

    def list_sessions(self, limit: int = 50) -> list[ChatSession]:
        """List stored sessions; fall back to cached conversations if the store fails."""
        try:
            return self._store.list_sessions(limit)
        except PersistenceError as exc:
            logger.warning("session_list_from_fallback_cache", error=str(exc))
            return [
                ChatSession(
                    id=c.id,
                    title=c.title,
                    preview=make_preview(c, self.preview_max_chars),
                    message_count=len(c.turns),
                )
                for c in self.cache.conversations()[:limit]
            ]


def _stored_timestamp(session_id: str, message: Message) -> int:
    """Millisecond stamp of a stored turn: from its token, else its created_at."""
    token = message.client_turn_token
    prefix = f"{session_id}-"
    if token and token.startswith(prefix) and token[len(prefix) :].isdigit():
        return int(token[len(prefix) :])
    if message.created_at:
        created = datetime.fromisoformat(message.created_at.replace("Z", "+00:00"))
        return int(created.timestamp() * 1000)
    return 0
