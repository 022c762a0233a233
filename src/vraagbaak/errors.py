"""Domain error taxonomy.

Every error carries a stable ``kind`` so callers (CLI, HTTP shells) can
report the structured ``{kind, message}`` shape without string matching.
"""

from __future__ import annotations


class VraagbaakError(Exception):
    """Base class for all domain errors."""

    kind: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(VraagbaakError):
    """Required input is missing or malformed. No state was changed."""

    kind = "validation_error"


class UnsupportedMediaType(VraagbaakError):
    """Input is not in an encoding the extractor can read."""

    kind = "unsupported_media_type"


class ExtractionError(VraagbaakError):
    """The extraction collaborator failed on a document."""

    kind = "extraction_error"


class EmbeddingMismatch(VraagbaakError):
    """The embedding collaborator returned the wrong number or size of vectors.

    Non-retriable for the affected file; raised before any store write.
    """

    kind = "embedding_mismatch"

    def __init__(self, message: str, *, expected: int, actual: int) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class NotFound(VraagbaakError):
    """A resource or session id does not exist."""

    kind = "not_found"

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} '{entity_id}' not found")
        self.entity = entity
        self.entity_id = entity_id


class PersistenceError(VraagbaakError):
    """The store is unreachable or a write failed."""

    kind = "persistence_error"


class ClientSideFallback(VraagbaakError):
    """A session-store write failed; the conversation is held in a local cache.

    The cached copy is non-authoritative and lost when the process exits.
    """

    kind = "client_side_fallback"

    def __init__(self, session_id: str, cause: Exception) -> None:
        super().__init__(
            f"Could not persist session '{session_id}' ({cause}); kept in local cache"
        )
        self.session_id = session_id
        self.cause = cause
