"""Session store: chat sessions and their messages.

``message_count`` always equals the number of stored messages for a
session: :meth:`SessionStore.append_message` inserts the message and bumps
the counter in the same transaction.

Messages may carry a ``client_turn_token``. The pair
``(session_id, client_turn_token)`` is unique, so re-sending the same turn
returns the stored message instead of writing a duplicate.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from vraagbaak.db.models import (
    ChatSession,
    Message,
    Role,
    SourceRef,
    decode_sources,
    encode_sources,
)
from vraagbaak.errors import NotFound, PersistenceError, ValidationError
from vraagbaak.log import get_logger

logger = get_logger(__name__)

DEFAULT_TITLE = "New chat"

_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"

_SESSION_COLUMNS = (
    "id, title, preview, message_count, created_at, updated_at, is_deleted"
)
_MESSAGE_COLUMNS = (
    "id, session_id, role, content, sources, client_turn_token, created_at"
)


class SessionStore:
    """Data access layer for ChatSession and Message entities.

    Wraps an open sqlite3.Connection owned by the caller.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @contextmanager
    def _write(self, operation: str) -> Iterator[None]:
        """Run a block of writes atomically; sqlite3 errors become PersistenceError."""
        try:
            yield
            self._conn.commit()
        except sqlite3.Error as exc:
            self._conn.rollback()
            logger.error("session_store_failed", operation=operation, error=str(exc))
            raise PersistenceError(f"{operation} failed: {exc}") from exc
        except BaseException:
            self._conn.rollback()
            raise

    @contextmanager
    def _read(self, operation: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            logger.error("session_store_failed", operation=operation, error=str(exc))
            raise PersistenceError(f"{operation} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        title: str | None = None,
        preview: str | None = None,
        session_id: str | None = None,
    ) -> str:
        """Create a session with ``message_count = 0`` and return its id.

        Args:
            title: Display title; defaults to ``"New chat"`` when empty.
            preview: Short excerpt of the conversation (optional).
            session_id: Caller-chosen id. A random id is used when omitted.
        """
        sid = session_id or uuid.uuid4().hex
        with self._write("create_session"):
            self._conn.execute(
                "INSERT INTO chat_sessions (id, title, preview, message_count) "
                "VALUES (?, ?, ?, 0)",
                (sid, title or DEFAULT_TITLE, preview or None),
            )
        logger.info("session_created", session_id=sid)
        return sid

    def get_session(self, session_id: str) -> ChatSession:
        """Return the session with its messages in creation order.

        Soft-deleted sessions are still returned.

        Raises:
            NotFound: If no session has *session_id*.
        """
        with self._read("get_session"):
            row = self._conn.execute(
                f"SELECT {_SESSION_COLUMNS} FROM chat_sessions WHERE id = ?",
                (session_id,),
            ).fetchone()
            if row is None:
                raise NotFound("Session", session_id)
            message_rows = self._conn.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE session_id = ? "
                "ORDER BY created_at ASC, rowid ASC",
                (session_id,),
            ).fetchall()
        session = _row_to_session(row)
        session.messages = [_row_to_message(m) for m in message_rows]
        return session

    def session_exists(self, session_id: str) -> bool:
        with self._read("session_exists"):
            row = self._conn.execute(
                "SELECT 1 FROM chat_sessions WHERE id = ?", (session_id,)
            ).fetchone()
        return row is not None

    def list_sessions(self, limit: int = 50) -> list[ChatSession]:
        """Return live (not soft-deleted) sessions, most recently updated first.

        Messages are not loaded; use :meth:`get_session` for those.
        """
        with self._read("list_sessions"):
            rows = self._conn.execute(
                f"SELECT {_SESSION_COLUMNS} FROM chat_sessions WHERE is_deleted = 0 "
                "ORDER BY updated_at DESC, rowid DESC LIMIT ?",
                (max(1, int(limit)),),
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def update_session_meta(
        self,
        session_id: str,
        *,
        title: str | None = None,
        preview: str | None = None,
        message_count: int | None = None,
    ) -> ChatSession:
        """Change only the supplied fields; ``updated_at`` is always refreshed.

        ``message_count`` is accepted only when it matches the number of
        stored messages, so the counter can never drift from the rows.

        Raises:
            NotFound: If no session has *session_id*.
            ValidationError: If *message_count* disagrees with the stored rows.
        """
        assignments = [f"updated_at = {_NOW}"]
        params: list[object] = []
        if title is not None:
            assignments.append("title = ?")
            params.append(title)
        if preview is not None:
            assignments.append("preview = ?")
            params.append(preview)

        with self._write("update_session_meta"):
            if not self._exists(session_id):
                raise NotFound("Session", session_id)
            if message_count is not None:
                live = self._live_count(session_id)
                if message_count != live:
                    raise ValidationError(
                        f"message_count {message_count} does not match "
                        f"{live} stored messages for session '{session_id}'"
                    )
                assignments.append("message_count = ?")
                params.append(live)
            self._conn.execute(
                f"UPDATE chat_sessions SET {', '.join(assignments)} WHERE id = ?",
                (*params, session_id),
            )
        return self.get_session(session_id)

    def soft_delete_session(self, session_id: str) -> None:
        """Flag a session as deleted. Rows are kept; listings exclude it.

        Raises:
            NotFound: If no session has *session_id*.
        """
        with self._write("soft_delete_session"):
            cur = self._conn.execute(
                "UPDATE chat_sessions SET is_deleted = 1 WHERE id = ?", (session_id,)
            )
            if cur.rowcount == 0:
                raise NotFound("Session", session_id)
        logger.info("session_soft_deleted", session_id=session_id)

    def delete_session(self, session_id: str) -> int:
        """Remove a session and its messages permanently.

        Returns:
            Number of messages removed.

        Raises:
            NotFound: If no session has *session_id*.
        """
        with self._write("delete_session"):
            if not self._exists(session_id):
                raise NotFound("Session", session_id)
            removed = self._live_count(session_id)
            self._conn.execute("DELETE FROM chat_sessions WHERE id = ?", (session_id,))
        logger.info("session_deleted", session_id=session_id, messages=removed)
        return removed

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def append_message(
        self,
        session_id: str,
        role: Role | str,
        content: str,
        sources: list[SourceRef] | None = None,
        client_token: str | None = None,
    ) -> Message:
        """Insert a message and bump the session counter atomically.

        If *client_token* was already stored for this session, the stored
        message is returned and nothing changes.

        Raises:
            ValidationError: If *role* or *content* is missing or invalid.
            NotFound: If the session does not exist.
        """
        if not session_id or not content:
            raise ValidationError("session_id, role and content are required")
        try:
            role = Role(role)
        except ValueError:
            raise ValidationError(f"Invalid role '{role}' (expected 'user' or 'assistant')") from None

        message_id = uuid.uuid4().hex
        with self._write("append_message"):
            if not self._exists(session_id):
                raise NotFound("Session", session_id)
            if client_token is not None:
                existing = self._conn.execute(
                    f"SELECT {_MESSAGE_COLUMNS} FROM messages "
                    "WHERE session_id = ? AND client_turn_token = ?",
                    (session_id, client_token),
                ).fetchone()
                if existing is not None:
                    logger.debug(
                        "message_duplicate_skipped",
                        session_id=session_id,
                        client_token=client_token,
                    )
                    return _row_to_message(existing)
            self._conn.execute(
                """
                INSERT INTO messages (id, session_id, role, content, sources, client_turn_token)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    message_id,
                    session_id,
                    role.value,
                    content,
                    encode_sources(sources),
                    client_token,
                ),
            )
            self._conn.execute(
                f"UPDATE chat_sessions SET message_count = message_count + 1, "
                f"updated_at = {_NOW} WHERE id = ?",
                (session_id,),
            )
            row = self._conn.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id = ?", (message_id,)
            ).fetchone()
        return _row_to_message(row)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _exists(self, session_id: str) -> bool:
        return (
            self._conn.execute(
                "SELECT 1 FROM chat_sessions WHERE id = ?", (session_id,)
            ).fetchone()
            is not None
        )

    def _live_count(self, session_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM messages WHERE session_id = ?", (session_id,)
        ).fetchone()[0]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_session(row: sqlite3.Row) -> ChatSession:
    return ChatSession(
        id=row["id"],
        title=row["title"],
        preview=row["preview"],
        message_count=row["message_count"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        is_deleted=bool(row["is_deleted"]),
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        session_id=row["session_id"],
        role=Role(row["role"]),
        content=row["content"],
        sources=decode_sources(row["sources"]),
        client_turn_token=row["client_turn_token"],
        created_at=row["created_at"],
    )
