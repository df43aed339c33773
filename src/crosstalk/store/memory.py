"""In-memory record store and change feed backing the web app, CLI demo and tests."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Set, Tuple, Type, TypeVar

import structlog

from ..core.errors import StoreError
from ..core.reconcile import ChangeEvent, ChangeOp, RecordKind
from ..core.schemas import Answer, Message, Participant, Record, Session, SessionStatus, Team

LOGGER = structlog.get_logger(__name__)

R = TypeVar("R", bound=Record)

KINDS: Dict[Type[Record], RecordKind] = {
    Session: RecordKind.SESSION,
    Team: RecordKind.TEAM,
    Participant: RecordKind.PARTICIPANT,
    Message: RecordKind.MESSAGE,
    Answer: RecordKind.ANSWER,
}

_CLOSED = object()


class FeedSubscription:
    """Queue-backed subscription returned by :meth:`ChangeFeed.subscribe`."""

    def __init__(self, feed: "ChangeFeed", session_id: Optional[str]) -> None:
        self._feed = feed
        self.session_id = session_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def deliver(self, event: ChangeEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def pending(self) -> int:
        return self._queue.qsize()

    def __aiter__(self) -> "FeedSubscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def get(self, timeout: Optional[float] = None) -> ChangeEvent:
        """Wait for the next event; ``StopAsyncIteration`` once closed."""

        if timeout is None:
            return await self.__anext__()
        return await asyncio.wait_for(self.__anext__(), timeout)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed.unsubscribe(self)
        self._queue.put_nowait(_CLOSED)


class ChangeFeed:
    """Fan-out of change events to subscribers scoped by session id."""

    def __init__(self) -> None:
        self._subscribers: Dict[Optional[str], Set[FeedSubscription]] = defaultdict(set)

    def subscribe(self, session_id: Optional[str] = None) -> FeedSubscription:
        subscription = FeedSubscription(self, session_id)
        self._subscribers[session_id].add(subscription)
        return subscription

    def unsubscribe(self, subscription: FeedSubscription) -> None:
        self._subscribers[subscription.session_id].discard(subscription)

    def publish(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscribers.get(event.session_id, ())):
            subscription.deliver(event)
        for subscription in list(self._subscribers.get(None, ())):
            subscription.deliver(event)


def _session_scope(record: Record) -> Tuple[str, Optional[str]]:
    if isinstance(record, Session):
        return record.id, None
    if isinstance(record, Team):
        return record.session_id, record.id
    return record.session_id, getattr(record, "team_id", None)  # type: ignore[attr-defined]


class MemoryStore:
    """Dictionary-backed :class:`~crosstalk.store.base.RecordStore`."""

    def __init__(self, feed: Optional[ChangeFeed] = None) -> None:
        self.feed = feed or ChangeFeed()
        self._tables: Dict[Type[Record], Dict[str, Record]] = {model: {} for model in KINDS}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _table(self, model: Type[Record]) -> Dict[str, Record]:
        try:
            return self._tables[model]
        except KeyError as exc:
            raise StoreError(f"Unsupported record type {model.__name__}") from exc

    def _publish(self, op: ChangeOp, record: Record) -> None:
        session_id, team_id = _session_scope(record)
        self.feed.publish(
            ChangeEvent(
                kind=KINDS[type(record)],
                op=op,
                session_id=session_id,
                team_id=team_id,
                record=record.model_dump(mode="json"),
            )
        )

    async def insert(self, record: R) -> R:
        return (await self.insert_many([record]))[0]

    async def insert_many(self, records: Sequence[R]) -> List[R]:
        async with self._lock:
            for record in records:
                if record.id in self._table(type(record)):
                    LOGGER.warning("store.conflict", kind=type(record).__name__, record_id=record.id)
                    raise StoreError(f"{type(record).__name__} {record.id} already exists")
            for record in records:
                self._table(type(record))[record.id] = record
        for record in records:
            self._publish(ChangeOp.INSERT, record)
        return list(records)

    async def get(self, model: Type[R], record_id: str) -> Optional[R]:
        async with self._lock:
            return self._table(model).get(record_id)  # type: ignore[return-value]

    async def update(self, record: R) -> R:
        return (await self.update_many([record]))[0]

    async def update_many(self, records: Sequence[R]) -> List[R]:
        async with self._lock:
            for record in records:
                if record.id not in self._table(type(record)):
                    LOGGER.warning("store.missing", kind=type(record).__name__, record_id=record.id)
                    raise StoreError(f"{type(record).__name__} {record.id} not found")
            for record in records:
                self._table(type(record))[record.id] = record
        for record in records:
            self._publish(ChangeOp.UPDATE, record)
        return list(records)

    async def upsert_answer(self, answer: Answer) -> Answer:
        """Insert or replace the answer for ``(team_id, question_number)``."""

        async with self._lock:
            table = self._table(Answer)
            existing = next(
                (
                    item
                    for item in table.values()
                    if item.team_id == answer.team_id and item.question_number == answer.question_number  # type: ignore[attr-defined]
                ),
                None,
            )
            if existing is not None:
                answer = answer.model_copy(update={"id": existing.id})
                op = ChangeOp.UPDATE
            else:
                op = ChangeOp.INSERT
            table[answer.id] = answer
        self._publish(op, answer)
        return answer

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_session_by_pin(self, pin: str, *, active_only: bool = True) -> Optional[Session]:
        """Newest session using ``pin``; with ``active_only`` completed ones are skipped."""

        wanted = pin.strip().upper()
        async with self._lock:
            matches = [
                session
                for session in self._tables[Session].values()
                if session.game_pin == wanted  # type: ignore[attr-defined]
                and not (active_only and session.status == SessionStatus.COMPLETED)  # type: ignore[attr-defined]
            ]
        if not matches:
            return None
        return max(matches, key=lambda session: session.created_at)  # type: ignore[attr-defined,return-value]

    async def list_sessions(self, *, active_only: bool = False) -> List[Session]:
        async with self._lock:
            sessions = list(self._tables[Session].values())
        if active_only:
            sessions = [session for session in sessions if session.status != SessionStatus.COMPLETED]  # type: ignore[attr-defined]
        return sorted(sessions, key=lambda session: session.created_at)  # type: ignore[attr-defined,return-value]

    async def list_teams(self, session_id: str) -> List[Team]:
        async with self._lock:
            teams = [team for team in self._tables[Team].values() if team.session_id == session_id]  # type: ignore[attr-defined]
        return sorted(teams, key=lambda team: team.team_number)  # type: ignore[attr-defined,return-value]

    async def list_participants(self, session_id: str, *, team_id: Optional[str] = None) -> List[Participant]:
        async with self._lock:
            participants = [
                participant
                for participant in self._tables[Participant].values()
                if participant.session_id == session_id  # type: ignore[attr-defined]
                and (team_id is None or participant.team_id == team_id)  # type: ignore[attr-defined]
            ]
        return sorted(participants, key=lambda participant: participant.joined_at)  # type: ignore[attr-defined,return-value]

    async def list_messages(self, session_id: str, *, team_id: Optional[str] = None) -> List[Message]:
        async with self._lock:
            messages = [
                message
                for message in self._tables[Message].values()
                if message.session_id == session_id  # type: ignore[attr-defined]
                and (team_id is None or message.team_id == team_id)  # type: ignore[attr-defined]
            ]
        return sorted(messages, key=lambda message: message.timestamp)  # type: ignore[attr-defined,return-value]

    async def list_answers(self, session_id: str, *, team_id: Optional[str] = None) -> List[Answer]:
        async with self._lock:
            answers = [
                answer
                for answer in self._tables[Answer].values()
                if answer.session_id == session_id  # type: ignore[attr-defined]
                and (team_id is None or answer.team_id == team_id)  # type: ignore[attr-defined]
            ]
        return sorted(answers, key=lambda answer: (answer.team_id, answer.question_number))  # type: ignore[attr-defined,return-value]

    def subscribe(self, session_id: Optional[str] = None) -> FeedSubscription:
        return self.feed.subscribe(session_id)
