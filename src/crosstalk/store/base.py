"""Record store abstraction the exercise services are written against."""

from __future__ import annotations

from typing import AsyncIterator, List, Optional, Protocol, Sequence, Type, TypeVar

from ..core.reconcile import ChangeEvent
from ..core.schemas import Answer, Message, Participant, Record, Session, Team

R = TypeVar("R", bound=Record)


class Subscription(Protocol):
    """Async iterator over change events for one session (or all sessions)."""

    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...

    async def get(self, timeout: Optional[float] = None) -> ChangeEvent: ...

    def pending(self) -> int: ...

    async def close(self) -> None: ...


class RecordStore(Protocol):
    """Create/read/update/upsert over the five record kinds plus change notifications.

    Every write publishes a :class:`ChangeEvent`. Backend failures surface as
    :class:`crosstalk.core.errors.StoreError`.
    """

    async def insert(self, record: R) -> R: ...

    async def insert_many(self, records: Sequence[R]) -> List[R]: ...

    async def get(self, model: Type[R], record_id: str) -> Optional[R]: ...

    async def update(self, record: R) -> R: ...

    async def update_many(self, records: Sequence[R]) -> List[R]: ...

    async def upsert_answer(self, answer: Answer) -> Answer: ...

    async def find_session_by_pin(self, pin: str, *, active_only: bool = True) -> Optional[Session]: ...

    async def list_sessions(self, *, active_only: bool = False) -> List[Session]: ...

    async def list_teams(self, session_id: str) -> List[Team]: ...

    async def list_participants(self, session_id: str, *, team_id: Optional[str] = None) -> List[Participant]: ...

    async def list_messages(self, session_id: str, *, team_id: Optional[str] = None) -> List[Message]: ...

    async def list_answers(self, session_id: str, *, team_id: Optional[str] = None) -> List[Answer]: ...

    def subscribe(self, session_id: Optional[str] = None) -> Subscription: ...
