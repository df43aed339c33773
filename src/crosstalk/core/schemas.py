"""Pydantic contracts for the five record kinds and the web request payloads."""

from __future__ import annotations

import re
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import InvalidInputError
from .roles import Role

DEFAULT_TIMER_DURATION = 900
PIN_LENGTH = 6
QUESTION_SLOTS = (1, 2, 3, 4)

_PIN_PATTERN = re.compile(rf"^[A-Z0-9]{{{PIN_LENGTH}}}$")

R = TypeVar("R", bound=BaseModel)


class SessionStatus(str, Enum):
    """Session lifecycle states."""

    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(UTC)


def _clean_pin(value: str) -> str:
    pin = str(value).strip().upper()
    if not _PIN_PATTERN.match(pin):
        raise ValueError(f"Game PIN must be {PIN_LENGTH} letters or digits")
    return pin


def normalize_pin(raw: Any) -> str:
    """Uppercase and validate a join code typed by a participant."""

    if raw is None:
        raise InvalidInputError("Game PIN is required")
    try:
        return _clean_pin(raw)
    except ValueError as exc:
        raise InvalidInputError(str(exc)) from exc


def clean_name(raw: Any) -> str:
    name = str(raw or "").strip()
    if not name:
        raise InvalidInputError("Name must not be empty")
    return name


class Record(BaseModel):
    """Common base: every record is an independent top-level row keyed by ``id``."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)


class Session(Record):
    game_pin: str
    status: SessionStatus = SessionStatus.WAITING
    timer_duration: int = Field(DEFAULT_TIMER_DURATION, gt=0)
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @field_validator("game_pin", mode="before")
    @classmethod
    def _uppercase_pin(cls, value: Any) -> str:
        return _clean_pin(value)

    @model_validator(mode="after")
    def _check_timestamps(self) -> "Session":
        started = self.status in (SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED)
        if started != (self.started_at is not None):
            raise ValueError("started_at must be set exactly when the session has started")
        if (self.status == SessionStatus.COMPLETED) != (self.ended_at is not None):
            raise ValueError("ended_at must be set exactly when the session is completed")
        return self


class Team(Record):
    session_id: str
    team_number: int = Field(..., ge=1)
    created_at: datetime = Field(default_factory=utcnow)


class Participant(Record):
    session_id: str
    team_id: Optional[str] = None
    name: str
    role: Optional[Role] = None
    is_native_speaker: Optional[bool] = None
    joined_at: datetime = Field(default_factory=utcnow)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> str:
        name = str(value or "").strip()
        if not name:
            raise ValueError("Name must not be empty")
        return name

    @model_validator(mode="after")
    def _role_and_fluency_together(self) -> "Participant":
        if (self.role is None) != (self.is_native_speaker is None):
            raise ValueError("role and is_native_speaker must be assigned together")
        return self

    @property
    def is_assigned(self) -> bool:
        return self.role is not None


class Message(Record):
    session_id: str
    team_id: str
    participant_id: str
    content: str
    is_code_switched: bool = False
    timestamp: datetime = Field(default_factory=utcnow)


class Answer(Record):
    session_id: str
    team_id: str
    question_number: int = Field(..., ge=1, le=len(QUESTION_SLOTS))
    answer_text: str = ""
    submitted_by: str
    submitted_at: datetime = Field(default_factory=utcnow)


RECORD_TYPES: Dict[str, Type[Record]] = {
    "session": Session,
    "team": Team,
    "participant": Participant,
    "message": Message,
    "answer": Answer,
}


def validate_record(model: Type[R], data: Dict[str, Any]) -> R:
    """Build a record or raise :class:`InvalidInputError` with the first problem found."""

    try:
        return model.model_validate(data)
    except ValidationError as exc:
        errors = exc.errors()
        detail = errors[0].get("msg", str(exc)) if errors else str(exc)
        raise InvalidInputError(f"Invalid {model.__name__.lower()}: {detail}") from exc


def replace(record: R, **changes: Any) -> R:
    """Return a validated copy of ``record`` with ``changes`` applied."""

    return validate_record(type(record), {**record.model_dump(), **changes})


# ----------------------------------------------------------------------
# Web request payloads
# ----------------------------------------------------------------------


class SessionCreate(BaseModel):
    """Payload for creating a new session."""

    model_config = ConfigDict(populate_by_name=True)

    timer_duration: Optional[int] = Field(None, alias="timerDuration", gt=0, description="Countdown length in seconds")


class JoinRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pin: str = Field(..., alias="gamePin")
    name: str


class MessageCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str
    is_code_switched: bool = Field(False, alias="isCodeSwitched")


class AnswersSubmit(BaseModel):
    """All four answers filed by the CEO; missing slots are left untouched."""

    answers: Dict[int, str]
