import asyncio
from datetime import timedelta

import pytest

from conftest import START, run
from crosstalk.core.errors import StoreError
from crosstalk.core.reconcile import ChangeOp, RecordKind
from crosstalk.core.schemas import Answer, Message, Session, SessionStatus, replace
from crosstalk.store.memory import MemoryStore


def test_inserts_are_published_with_full_payloads():
    async def scenario():
        store = MemoryStore()
        session = Session(game_pin="ABC123", created_at=START)
        subscription = store.subscribe(session.id)
        await store.insert(session)
        event = await subscription.get(timeout=1)
        await subscription.close()
        return session, event

    session, event = run(scenario())
    assert event.kind == RecordKind.SESSION
    assert event.op == ChangeOp.INSERT
    assert event.session_id == session.id
    assert event.record["game_pin"] == "ABC123"


def test_subscriptions_are_scoped_by_session():
    async def scenario():
        store = MemoryStore()
        first = Session(game_pin="AAAAAA")
        second = Session(game_pin="BBBBBB")
        scoped = store.subscribe(first.id)
        everything = store.subscribe()
        await store.insert_many([first, second])
        counts = scoped.pending(), everything.pending()
        await scoped.close()
        await everything.close()
        return counts

    assert run(scenario()) == (1, 2)


def test_closed_subscription_stops_iteration():
    async def scenario():
        store = MemoryStore()
        subscription = store.subscribe()
        await subscription.close()
        await store.insert(Session(game_pin="ABC123"))
        return [event async for event in subscription]

    assert run(scenario()) == []


def test_write_conflicts_raise_store_errors():
    async def scenario():
        store = MemoryStore()
        session = Session(game_pin="ABC123")
        await store.insert(session)
        with pytest.raises(StoreError):
            await store.insert(session)
        with pytest.raises(StoreError):
            await store.update(Session(game_pin="ZZZ999"))

    run(scenario())


def test_answers_are_upserted_per_team_and_question():
    async def scenario():
        store = MemoryStore()
        first = await store.upsert_answer(
            Answer(session_id="s", team_id="t1", question_number=2, answer_text="draft", submitted_by="p")
        )
        second = await store.upsert_answer(
            Answer(session_id="s", team_id="t1", question_number=2, answer_text="final", submitted_by="p")
        )
        await store.upsert_answer(
            Answer(session_id="s", team_id="t2", question_number=2, answer_text="other", submitted_by="q")
        )
        return first, second, await store.list_answers("s", team_id="t1"), await store.list_answers("s")

    first, second, team_answers, all_answers = run(scenario())
    assert second.id == first.id
    assert [answer.answer_text for answer in team_answers] == ["final"]
    assert len(all_answers) == 2


def test_pin_lookup_skips_completed_sessions():
    async def scenario():
        store = MemoryStore()
        old = Session(game_pin="ABC123", created_at=START)
        await store.insert(old)
        finished = replace(
            old, status=SessionStatus.COMPLETED, started_at=START, ended_at=START + timedelta(minutes=1)
        )
        await store.update(finished)
        return (
            await store.find_session_by_pin("abc123"),
            await store.find_session_by_pin("abc123", active_only=False),
            await store.list_sessions(active_only=True),
        )

    active, any_status, sessions = run(scenario())
    assert active is None
    assert any_status.status == SessionStatus.COMPLETED
    assert sessions == []


def test_messages_are_listed_in_timestamp_order():
    async def scenario():
        store = MemoryStore()
        for seconds, content in [(20, "third"), (5, "first"), (10, "second")]:
            await store.insert(
                Message(
                    session_id="s",
                    team_id="t1",
                    participant_id="p",
                    content=content,
                    timestamp=START + timedelta(seconds=seconds),
                )
            )
        await store.insert(Message(session_id="s", team_id="t2", participant_id="q", content="elsewhere"))
        return await store.list_messages("s", team_id="t1")

    assert [message.content for message in run(scenario())] == ["first", "second", "third"]


def test_get_times_out_without_events():
    async def scenario():
        subscription = MemoryStore().subscribe()
        with pytest.raises(asyncio.TimeoutError):
            await subscription.get(timeout=0.01)
        await subscription.close()

    run(scenario())
