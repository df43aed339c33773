"""Typed failures raised by the exercise core and its services."""

from __future__ import annotations

from typing import Any, Optional


class ExerciseError(Exception):
    """Base class for every failure surfaced to a facilitator or participant."""

    retryable: bool = False


class InvalidInputError(ExerciseError):
    """Raised when user input fails validation before any store access."""


class CannotFormTeamsError(InvalidInputError):
    """Raised when a participant count cannot be split into teams of 4 or 5."""

    def __init__(self, count: int):
        self.count = count
        super().__init__(f"Cannot form teams with {count} participants. Need groups of 4-5 people.")


class PreconditionError(ExerciseError):
    """Raised when an operation is not allowed in the current session state."""


class SessionNotFoundError(PreconditionError):
    """Raised when a PIN or identifier does not resolve to a record."""

    def __init__(self, message: str = "Game PIN not found"):
        super().__init__(message)


class SessionNotJoinableError(PreconditionError):
    """Raised when a participant tries to join a session that is no longer waiting."""

    def __init__(self, status: Any = None):
        self.status = status
        detail = f" (status: {getattr(status, 'value', status)})" if status is not None else ""
        super().__init__(f"Session has already started and cannot be joined{detail}")


class RolesAlreadyAssignedError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("Roles have already been assigned for this session")


class RolesNotAssignedError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("Assign roles and form teams before starting the session")


class InvalidTransitionError(PreconditionError):
    """Raised by the lifecycle guard when a transition is not allowed."""

    def __init__(self, action: str, current: Any, required: Optional[Any] = None):
        self.action = action
        self.current = current
        self.required = required
        current_value = getattr(current, "value", current)
        message = f"Cannot {action} a session that is {current_value}"
        if required is not None:
            message += f"; session must be {getattr(required, 'value', required)}"
        super().__init__(message)


class NotTeamMemberError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("Participant has not been assigned to a team yet")


class NotCEOError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("Only the CEO can submit answers for the team")


class SessionNotAcceptingError(PreconditionError):
    """Raised for messages or answers once the session no longer accepts them."""

    def __init__(self, reason: str = "Session is not accepting messages or answers"):
        super().__init__(reason)


class ConditionsChangedError(ExerciseError):
    """A precondition held at validation time but no longer holds at commit time."""

    retryable = True

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Conditions changed, please retry: {detail}")


class StoreError(ExerciseError):
    """Raised by record store backends for transport, lookup or conflict failures."""

    retryable = True
