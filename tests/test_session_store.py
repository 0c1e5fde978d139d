from dataclasses import replace
from uuid import uuid4

import pytest
from sqlmodel import Session

from conftest import create_user
from turnstile.core.errors import AuthorizationError, NotFoundError
from turnstile.db.session import engine
from turnstile.models.chat_session import ChatSession
from turnstile.models.enums import HistoryWindow
from turnstile.services.session_store import SessionStore
from turnstile.services.transcript_persister import TranscriptPersister


def _session_id() -> str:
    return f"s-{uuid4()}"


@pytest.mark.anyio
async def test_resolve_creates_session_for_new_id(user, turn_config):
    store = SessionStore(engine, turn_config)
    session_id = _session_id()

    resolved = await store.resolve(session_id, user.id, memory_prompt="be brief")

    assert resolved.session.id == session_id
    assert resolved.session.user_id == user.id
    assert resolved.session.memory_prompt == "be brief"
    assert resolved.messages == []


@pytest.mark.anyio
async def test_resolve_updates_memory_prompt_for_owner(user, turn_config):
    store = SessionStore(engine, turn_config)
    session_id = _session_id()
    await store.resolve(session_id, user.id, memory_prompt="v1")

    resolved = await store.resolve(session_id, user.id, memory_prompt="v2")
    unchanged = await store.resolve(session_id, user.id)

    assert resolved.session.memory_prompt == "v2"
    assert unchanged.session.memory_prompt == "v2"


@pytest.mark.anyio
async def test_resolve_rejects_foreign_session_without_changes(user, turn_config):
    store = SessionStore(engine, turn_config)
    intruder = create_user()
    session_id = _session_id()
    await store.resolve(session_id, user.id, memory_prompt="owner prompt")

    with pytest.raises(AuthorizationError):
        await store.resolve(session_id, intruder.id, memory_prompt="hijacked")

    with Session(engine) as session:
        record = session.get(ChatSession, session_id)
        assert record.user_id == user.id
        assert record.memory_prompt == "owner prompt"


@pytest.mark.anyio
async def test_resolve_unknown_user_raises_not_found(turn_config):
    store = SessionStore(engine, turn_config)
    with pytest.raises(NotFoundError):
        await store.resolve(_session_id(), "missing-user")


async def _three_turn_session(store, user, clock) -> str:
    persister = TranscriptPersister(engine, clock=clock)
    session_id = _session_id()
    await store.resolve(session_id, user.id)
    for index in range(3):
        await persister.commit(user.id, session_id, 1, f"q{index}", f"a{index}")
        clock.advance(1)
    return session_id


@pytest.mark.anyio
async def test_resolve_returns_first_history_messages_in_ascending_order(user, turn_config, clock):
    store = SessionStore(engine, turn_config)
    session_id = await _three_turn_session(store, user, clock)

    resolved = await store.resolve(session_id, user.id, history_limit=2)

    assert [message.content for message in resolved.messages] == ["q0", "a0"]


@pytest.mark.anyio
async def test_latest_history_window_keeps_recent_messages(user, turn_config, clock):
    store = SessionStore(engine, replace(turn_config, history_window=HistoryWindow.LATEST))
    session_id = await _three_turn_session(store, user, clock)

    resolved = await store.resolve(session_id, user.id, history_limit=4)
    transcript = await store.get_messages(user.id, session_id, limit=2)

    assert [message.content for message in resolved.messages] == ["q1", "a1", "q2", "a2"]
    assert [message.content for message in transcript.messages] == ["q2", "a2"]


@pytest.mark.anyio
async def test_get_messages_round_trip_after_commit(user, turn_config, clock):
    store = SessionStore(engine, turn_config)
    persister = TranscriptPersister(engine, clock=clock)
    session_id = _session_id()
    await store.resolve(session_id, user.id)
    await persister.commit(user.id, session_id, 1, "first", "first reply")
    clock.advance(5)
    await persister.commit(user.id, session_id, 1, "second", "second reply")

    transcript = await store.get_messages(user.id, session_id)

    assert transcript is not None
    contents = [message.content for message in transcript.messages]
    assert contents[-2:] == ["second", "second reply"]
    timestamps = [message.created_at for message in transcript.messages]
    assert timestamps == sorted(timestamps)


@pytest.mark.anyio
async def test_get_messages_hides_sessions_of_other_users(user, turn_config):
    store = SessionStore(engine, turn_config)
    other = create_user()
    session_id = _session_id()
    await store.resolve(session_id, user.id)

    assert await store.get_messages(other.id, session_id) is None
    assert await store.get_messages(user.id, _session_id()) is None


@pytest.mark.anyio
async def test_list_recent_counts_messages(user, turn_config, clock):
    store = SessionStore(engine, turn_config)
    persister = TranscriptPersister(engine, clock=clock)
    busy = _session_id()
    idle = _session_id()
    await store.resolve(idle, user.id)
    await store.resolve(busy, user.id)
    await persister.commit(user.id, busy, 1, "q", "a")

    summaries = await store.list_recent(user.id)

    counts = {item.session.id: item.message_count for item in summaries}
    assert counts == {busy: 2, idle: 0}


@pytest.mark.anyio
async def test_list_recent_respects_limit(user, turn_config):
    store = SessionStore(engine, turn_config)
    for _ in range(3):
        await store.resolve(_session_id(), user.id)

    summaries = await store.list_recent(user.id, limit=2)

    assert len(summaries) == 2
