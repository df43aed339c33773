"""Reconciliation of a viewer's cached state against change notifications.

Every connected screen keeps a local copy of the records it displays. Change
notifications are folded into that copy by :func:`reconcile`, a pure function that
returns the next state together with the action the screen has to take. Payloads are
never trusted to be complete: whenever an event cannot be merged safely the result
asks for a full re-fetch instead.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from .schemas import Message, Participant, Session, SessionStatus


class RecordKind(str, Enum):
    SESSION = "session"
    TEAM = "team"
    PARTICIPANT = "participant"
    MESSAGE = "message"
    ANSWER = "answer"


class ChangeOp(str, Enum):
    INSERT = "insert"
    UPDATE = "update"


class ChangeEvent(BaseModel):
    """Notification emitted by the record store after every write."""

    kind: RecordKind
    op: ChangeOp
    session_id: str
    team_id: Optional[str] = None
    record: Optional[Dict[str, Any]] = None


class Screen(str, Enum):
    WAITING = "waiting"
    PLAY = "play"
    COMPLETED = "completed"


class ViewAction(str, Enum):
    NONE = "none"
    REFETCH = "refetch"
    REDIRECT_PLAY = "redirect_play"
    REDIRECT_COMPLETED = "redirect_completed"


SCREENS: Dict[SessionStatus, Screen] = {
    SessionStatus.WAITING: Screen.WAITING,
    SessionStatus.IN_PROGRESS: Screen.PLAY,
    SessionStatus.COMPLETED: Screen.COMPLETED,
}


def screen_for(status: SessionStatus) -> Screen:
    return SCREENS[status]


def redirect_action(previous: Screen, current: Screen) -> "ViewAction":
    """Redirect a screen has to perform when the session moves from ``previous`` to ``current``."""

    if current == Screen.COMPLETED and previous != Screen.COMPLETED:
        return ViewAction.REDIRECT_COMPLETED
    if current == Screen.PLAY and previous == Screen.WAITING:
        return ViewAction.REDIRECT_PLAY
    return ViewAction.NONE


class ViewState(BaseModel):
    """Local cache held by one connected screen.

    ``team_id`` scopes the message feed; ``None`` follows every team in the
    session (the facilitator's monitor).
    """

    session: Session
    screen: Screen
    participant_id: Optional[str] = None
    team_id: Optional[str] = None
    participants: List[Participant] = Field(default_factory=list)
    messages: List[Message] = Field(default_factory=list)

    @classmethod
    def initial(
        cls,
        session: Session,
        *,
        participant_id: Optional[str] = None,
        team_id: Optional[str] = None,
        participants: Optional[List[Participant]] = None,
        messages: Optional[List[Message]] = None,
    ) -> "ViewState":
        ordered = sorted(messages or [], key=lambda message: message.timestamp)
        return cls(
            session=session,
            screen=screen_for(session.status),
            participant_id=participant_id,
            team_id=team_id,
            participants=list(participants or []),
            messages=ordered,
        )


@dataclass(frozen=True, slots=True)
class Reconciliation:
    state: ViewState
    action: ViewAction


def _session_event(state: ViewState, event: ChangeEvent) -> Reconciliation:
    if not event.record:
        return Reconciliation(state, ViewAction.REFETCH)
    try:
        session = Session.model_validate(event.record)
    except ValidationError:
        return Reconciliation(state, ViewAction.REFETCH)
    if session.id != state.session.id:
        return Reconciliation(state, ViewAction.REFETCH)

    target = screen_for(session.status)
    action = redirect_action(state.screen, target)
    if action == ViewAction.NONE:
        target = state.screen

    return Reconciliation(state.model_copy(update={"session": session, "screen": target}), action)


def _message_event(state: ViewState, event: ChangeEvent) -> Reconciliation:
    if event.op != ChangeOp.INSERT:
        return Reconciliation(state, ViewAction.REFETCH)
    if state.team_id is not None and event.team_id is not None and event.team_id != state.team_id:
        return Reconciliation(state, ViewAction.NONE)
    if not event.record:
        return Reconciliation(state, ViewAction.REFETCH)
    try:
        message = Message.model_validate(event.record)
    except ValidationError:
        return Reconciliation(state, ViewAction.REFETCH)
    if state.team_id is not None and message.team_id != state.team_id:
        return Reconciliation(state, ViewAction.NONE)
    if any(existing.id == message.id for existing in state.messages):
        # Redelivery of a message already on screen.
        return Reconciliation(state, ViewAction.NONE)

    messages = list(state.messages)
    bisect.insort_right(messages, message, key=lambda item: item.timestamp)
    return Reconciliation(state.model_copy(update={"messages": messages}), ViewAction.NONE)


def reconcile(state: ViewState, event: ChangeEvent) -> Reconciliation:
    """Fold ``event`` into ``state`` and report what the screen must do next."""

    if event.session_id != state.session.id:
        return Reconciliation(state, ViewAction.NONE)
    if event.kind == RecordKind.SESSION:
        return _session_event(state, event)
    if event.kind == RecordKind.MESSAGE:
        return _message_event(state, event)
    # Participant, team and answer changes arrive in batches; re-read the aggregate.
    return Reconciliation(state, ViewAction.REFETCH)
