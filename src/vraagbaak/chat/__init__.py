"""Conversation persistence on top of the session store."""

from vraagbaak.chat.recorder import (
    Conversation,
    ConversationRecorder,
    ConversationTurn,
    FallbackCache,
    generate_title,
    turn_token,
)

__all__ = [
    "Conversation",
    "ConversationRecorder",
    "ConversationTurn",
    "FallbackCache",
    "generate_title",
    "turn_token",
]
