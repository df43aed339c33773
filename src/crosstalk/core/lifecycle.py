"""Session lifecycle state machine and countdown arithmetic.

``waiting -> in_progress -> completed``. No state is skipped and there is no way
back. Transition helpers return updated copies of the session record and never
mutate the record they are given, so the service layer can re-check preconditions
against a fresh read before committing.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .errors import (
    InvalidTransitionError,
    RolesAlreadyAssignedError,
    RolesNotAssignedError,
    SessionNotAcceptingError,
    SessionNotJoinableError,
)
from .schemas import Participant, Session, SessionStatus, replace, utcnow

Clock = Callable[[], datetime]

TRANSITIONS: Dict[str, Tuple[SessionStatus, SessionStatus]] = {
    "start": (SessionStatus.WAITING, SessionStatus.IN_PROGRESS),
    "end": (SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED),
}

TERMINAL_STATES = frozenset({SessionStatus.COMPLETED})


def system_clock() -> datetime:
    """Wall clock in UTC."""
    return utcnow()


def can_transition(session: Session, action: str) -> bool:
    source, _ = TRANSITIONS[action]
    return session.status == source


def transition(session: Session, action: str, now: datetime) -> Session:
    """Apply ``action`` (``"start"`` or ``"end"``) and stamp the matching timestamp."""

    if action not in TRANSITIONS:
        raise ValueError(f"Unknown lifecycle action {action!r}")
    source, target = TRANSITIONS[action]
    if session.status != source:
        raise InvalidTransitionError(action, session.status, source)

    if action == "start":
        return replace(session, status=target, started_at=now)
    return replace(session, status=target, ended_at=now)


def apply_start(session: Session, now: datetime) -> Session:
    return transition(session, "start", now)


def apply_end(session: Session, now: datetime) -> Session:
    return transition(session, "end", now)


# ----------------------------------------------------------------------
# Guards
# ----------------------------------------------------------------------


def ensure_joinable(session: Session) -> None:
    if session.status != SessionStatus.WAITING:
        raise SessionNotJoinableError(session.status)


def roles_assigned(participants: Iterable[Participant]) -> bool:
    return any(participant.role is not None for participant in participants)


def ensure_roles_assignable(session: Session, participants: Iterable[Participant]) -> None:
    """Roles are handed out once, while the session is still waiting."""

    if session.status != SessionStatus.WAITING:
        raise InvalidTransitionError("assign roles in", session.status, SessionStatus.WAITING)
    if roles_assigned(participants):
        raise RolesAlreadyAssignedError()


def ensure_startable(session: Session, participants: Iterable[Participant]) -> None:
    if session.status != SessionStatus.WAITING:
        raise InvalidTransitionError("start", session.status, SessionStatus.WAITING)
    if not roles_assigned(participants):
        raise RolesNotAssignedError()


def ensure_accepting_writes(
    session: Session,
    *,
    now: Optional[datetime] = None,
    enforce_deadline: bool = False,
) -> None:
    """Messages and answers are only accepted while the session is running.

    With ``enforce_deadline`` the countdown becomes a hard cutoff instead of an
    advisory one.
    """

    if session.status != SessionStatus.IN_PROGRESS:
        raise SessionNotAcceptingError(
            f"Session is {session.status.value}; messages and answers are only accepted while it is in progress"
        )
    if enforce_deadline and remaining_for(session, now or system_clock()) == 0:
        raise SessionNotAcceptingError("Time is up; the session no longer accepts messages or answers")


def available_actions(session: Session, participants: Iterable[Participant]) -> List[str]:
    """Facilitator controls that are currently allowed."""

    if session.status == SessionStatus.WAITING:
        return ["start"] if roles_assigned(participants) else ["assign_roles"]
    if session.status == SessionStatus.IN_PROGRESS:
        return ["end"]
    return []


# ----------------------------------------------------------------------
# Countdown
# ----------------------------------------------------------------------


def remaining_seconds(now: datetime, started_at: Optional[datetime], duration: int) -> int:
    """Whole seconds left on the countdown, clamped to ``[0, duration]``.

    Every viewer derives the same value from the shared ``started_at`` no matter
    when it loaded.
    """

    if started_at is None:
        return duration
    elapsed = (now - started_at).total_seconds()
    remaining = math.floor(duration - elapsed)
    return max(0, min(duration, remaining))


def remaining_for(session: Session, now: datetime) -> int:
    if session.status == SessionStatus.COMPLETED:
        return 0
    return remaining_seconds(now, session.started_at, session.timer_duration)


def deadline(session: Session) -> Optional[datetime]:
    if session.started_at is None:
        return None
    return session.started_at + timedelta(seconds=session.timer_duration)


def format_countdown(seconds: int) -> str:
    """Render seconds as ``m:ss``."""

    seconds = max(0, int(seconds))
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}:{secs:02d}"
