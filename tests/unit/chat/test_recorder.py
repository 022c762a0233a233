"""Tests for the ConversationRecorder and its fallback cache."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from vraagbaak.chat.recorder import (
    FALLBACK_CACHE_SIZE,
    Conversation,
    ConversationRecorder,
    FallbackCache,
    generate_title,
    turn_token,
)
from vraagbaak.db.models import Role, SourceRef
from vraagbaak.db.sessions import SessionStore
from vraagbaak.errors import ClientSideFallback, NotFound, PersistenceError


@pytest.fixture
def store(tmp_db):
    return SessionStore(tmp_db)


@pytest.fixture
def recorder(store):
    return ConversationRecorder(store)


def _broken_store():
    broken = MagicMock(spec=SessionStore)
    for name in ("session_exists", "create_session", "list_sessions", "get_session"):
        getattr(broken, name).side_effect = PersistenceError("database is locked")
    return broken


def _conversation(sid="chat-1"):
    conv = Conversation(id=sid, title="Warranty")
    conv.add(Role.USER, "How long is the warranty?")
    conv.add(Role.ASSISTANT, "Two years.", sources=[SourceRef("r1", "manual.pdf", 0.12)])
    return conv


# ------------------------------------------------------------------
# Conversation and helpers
# ------------------------------------------------------------------

def test_turn_timestamps_strictly_increase():
    conv = Conversation(id="c")
    turns = [conv.add(Role.USER, str(i)) for i in range(20)]
    stamps = [t.timestamp for t in turns]
    assert stamps == sorted(set(stamps))


def test_turn_token_format():
    conv = Conversation(id="chat-1")
    turn = conv.add("user", "hi")
    assert turn.role is Role.USER
    assert turn_token("chat-1", turn) == f"chat-1-{turn.timestamp}"


def test_generate_title_truncates_with_ellipsis():
    assert generate_title("  short question  ") == "short question"
    long = "x" * 80
    assert generate_title(long) == "x" * 50 + "..."
    assert generate_title(long, max_chars=10) == "x" * 10 + "..."


# ------------------------------------------------------------------
# Saving
# ------------------------------------------------------------------

def test_save_creates_session_with_conversation_id(recorder, store):
    assert recorder.save(_conversation()) == 2
    session = store.get_session("chat-1")
    assert session.title == "Warranty"
    assert session.preview == "How long is the warranty?"
    assert session.message_count == 2
    assert [m.role for m in session.messages] == [Role.USER, Role.ASSISTANT]
    assert session.messages[1].sources == [SourceRef("r1", "manual.pdf", 0.12)]


def test_double_save_writes_each_message_once(recorder, store):
    conv = _conversation()
    recorder.save(conv)
    assert recorder.save(conv) == 0
    assert store.get_session("chat-1").message_count == 2


def test_double_save_from_separate_recorders_is_idempotent(store):
    conv = _conversation()
    ConversationRecorder(store).save(conv)
    assert ConversationRecorder(store).save(conv) == 0
    assert store.get_session("chat-1").message_count == 2


def test_save_after_new_turns_writes_only_new(recorder, store):
    conv = _conversation()
    recorder.save(conv)
    conv.add(Role.USER, "And after that?")
    conv.title = "Warranty terms"
    assert recorder.save(conv) == 1
    session = store.get_session("chat-1")
    assert session.message_count == 3
    assert session.title == "Warranty terms"


def test_load_then_add_writes_only_new_turns(store):
    ConversationRecorder(store).save(_conversation())

    other = ConversationRecorder(store)
    conv = other.load("chat-1")
    assert [t.content for t in conv.turns] == ["How long is the warranty?", "Two years."]
    conv.add(Role.USER, "Is it transferable?")
    assert other.save(conv) == 1
    assert store.get_session("chat-1").message_count == 3


def test_turn_added_after_load_is_stamped_after_stored_turns(store):
    with patch("vraagbaak.chat.recorder.time.time", return_value=1000.0):
        conv = Conversation(id="s1")
        conv.add(Role.USER, "q1")
        conv.add(Role.ASSISTANT, "a1")
        ConversationRecorder(store).save(conv)

    other = ConversationRecorder(store)
    loaded = other.load("s1")
    assert [t.timestamp for t in loaded.turns] == [1_000_000, 1_000_001]
    with patch("vraagbaak.chat.recorder.time.time", return_value=1000.001):
        turn = loaded.add(Role.USER, "q2, a different question")
    assert turn.timestamp == 1_000_002
    assert other.save(loaded) == 1
    assert [m.content for m in store.get_session("s1").messages] == [
        "q1",
        "a1",
        "q2, a different question",
    ]


def test_load_without_token_uses_created_at(store):
    sid = store.create_session()
    store.append_message(sid, Role.USER, "typed elsewhere")
    loaded = ConversationRecorder(store).load(sid)
    assert loaded.turns[0].timestamp > 0
    later = loaded.add(Role.ASSISTANT, "reply")
    assert later.timestamp > loaded.turns[0].timestamp


def test_load_unknown_session(recorder):
    with pytest.raises(NotFound):
        recorder.load("missing")


# ------------------------------------------------------------------
# Fallback cache
# ------------------------------------------------------------------

def test_store_failure_raises_client_side_fallback():
    recorder = ConversationRecorder(_broken_store())
    conv = _conversation()
    with pytest.raises(ClientSideFallback) as exc_info:
        recorder.save(conv)
    assert exc_info.value.session_id == "chat-1"
    assert exc_info.value.kind == "client_side_fallback"
    assert recorder.cache.get("chat-1") is conv


def test_successful_save_clears_cached_copy(store):
    cache = FallbackCache()
    conv = _conversation()
    cache.put(conv)
    ConversationRecorder(store, cache=cache).save(conv)
    assert cache.get("chat-1") is None


def test_fallback_cache_is_bounded_newest_first():
    cache = FallbackCache()
    for i in range(FALLBACK_CACHE_SIZE + 5):
        cache.put(Conversation(id=f"c{i}"))
    ids = [c.id for c in cache.conversations()]
    assert len(cache) == FALLBACK_CACHE_SIZE == 50
    assert ids[0] == f"c{FALLBACK_CACHE_SIZE + 4}"
    assert "c0" not in ids


def test_fallback_cache_put_again_moves_to_front():
    cache = FallbackCache(max_sessions=3)
    for sid in ("a", "b", "c"):
        cache.put(Conversation(id=sid))
    cache.put(Conversation(id="a"))
    assert [c.id for c in cache.conversations()] == ["a", "c", "b"]


def test_list_sessions_falls_back_to_cache():
    recorder = ConversationRecorder(_broken_store())
    with pytest.raises(ClientSideFallback):
        recorder.save(_conversation("chat-9"))
    [listed] = recorder.list_sessions()
    assert listed.id == "chat-9"
    assert listed.title == "Warranty"
    assert listed.message_count == 2


def test_list_sessions_from_store(recorder):
    recorder.save(_conversation("a"))
    recorder.save(_conversation("b"))
    assert {s.id for s in recorder.list_sessions()} == {"a", "b"}
