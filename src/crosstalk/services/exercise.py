"""Facilitator and participant operations on top of a record store.

Each operation validates its input first, checks preconditions against a fresh read,
then takes the per-session lock and checks them again immediately before writing.
A precondition that held at validation time but fails at commit time is reported as
:class:`~crosstalk.core.errors.ConditionsChangedError` so callers can tell a lost
race apart from a plain rejection.
"""

from __future__ import annotations

import asyncio
import random
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import structlog

from ..config import ExerciseConfig
from ..core.assignment import assign
from ..core.debrief import (
    RenderedMessage,
    TeamRoster,
    build_debrief,
    build_rosters,
    export_debrief,
    group_messages,
    render_feed,
)
from ..core.errors import (
    CannotFormTeamsError,
    ConditionsChangedError,
    InvalidInputError,
    InvalidTransitionError,
    NotCEOError,
    NotTeamMemberError,
    PreconditionError,
    SessionNotFoundError,
    StoreError,
)
from ..core.lifecycle import (
    Clock,
    apply_end,
    apply_start,
    available_actions,
    can_transition,
    ensure_accepting_writes,
    ensure_joinable,
    ensure_roles_assignable,
    ensure_startable,
    format_countdown,
    remaining_for,
    system_clock,
)
from ..core.questions import QUESTIONS
from ..core.reconcile import Reconciliation, Screen, ViewAction, ViewState, reconcile, redirect_action, screen_for
from ..core.roles import can_submit_answers, fluency_label, role_display_name
from ..core.schemas import (
    QUESTION_SLOTS,
    Answer,
    Message,
    Participant,
    Session,
    SessionStatus,
    Team,
    clean_name,
    normalize_pin,
    replace,
    validate_record,
)
from ..core.teams import plan
from ..store.base import RecordStore
from ..store.memory import MemoryStore
from ..utils.rng import build_rng, generate_pin

LOGGER = structlog.get_logger(__name__)

PIN_ATTEMPTS = 20


@dataclass(slots=True)
class ParticipantView:
    """Everything a participant's screen shows, rendered from their perspective."""

    session: Session
    screen: Screen
    participant: Participant
    team: Optional[Team]
    teammates: List[Participant]
    messages: List[RenderedMessage]
    answers: Dict[int, str]
    remaining_seconds: int

    @property
    def can_submit_answers(self) -> bool:
        return can_submit_answers(self.participant.role)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.model_dump(mode="json"),
            "screen": self.screen.value,
            "participant": self.participant.model_dump(mode="json"),
            "roleName": role_display_name(self.participant.role),
            "fluency": fluency_label(self.participant.is_native_speaker),
            "team": self.team.model_dump(mode="json") if self.team else None,
            "teammates": [
                {**mate.model_dump(mode="json"), "roleName": role_display_name(mate.role)} for mate in self.teammates
            ],
            "messages": [message.to_dict() for message in self.messages],
            "questions": list(QUESTIONS),
            "answers": {str(number): text for number, text in self.answers.items()},
            "canSubmitAnswers": self.can_submit_answers,
            "remainingSeconds": self.remaining_seconds,
            "countdown": format_countdown(self.remaining_seconds),
        }


@dataclass(slots=True)
class FacilitatorView:
    session: Session
    participants: List[Participant]
    rosters: List[TeamRoster]
    actions: List[str]
    remaining_seconds: int

    @property
    def unassigned(self) -> List[Participant]:
        return [participant for participant in self.participants if participant.team_id is None]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.model_dump(mode="json"),
            "participantCount": len(self.participants),
            "unassigned": [participant.model_dump(mode="json") for participant in self.unassigned],
            "teams": [roster.to_dict() for roster in self.rosters],
            "actions": list(self.actions),
            "remainingSeconds": self.remaining_seconds,
            "countdown": format_countdown(self.remaining_seconds),
        }


@dataclass(slots=True)
class TeamFeed:
    """One team's messages, as written or as seen by a chosen member."""

    team: Team
    members: List[Participant]
    messages: List[RenderedMessage]
    perspective: Optional[Participant] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team": self.team.model_dump(mode="json"),
            "members": [
                {**member.model_dump(mode="json"), "roleName": role_display_name(member.role)} for member in self.members
            ],
            "perspective": self.perspective.model_dump(mode="json") if self.perspective else None,
            "messages": [message.to_dict() for message in self.messages],
        }


class ExerciseService:
    """Runs negotiation sessions against a :class:`~crosstalk.store.base.RecordStore`."""

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        *,
        config: Optional[ExerciseConfig] = None,
        clock: Clock = system_clock,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store: RecordStore = store if store is not None else MemoryStore()
        self.config = config or ExerciseConfig()
        self._clock = clock
        self._rng = rng or build_rng()
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._pin_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock(self, session_id: str) -> asyncio.Lock:
        return self._locks[session_id]

    async def _session(self, session_id: str) -> Session:
        session = await self.store.get(Session, session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    async def _participant(self, participant_id: str) -> Participant:
        participant = await self.store.get(Participant, participant_id)
        if participant is None:
            raise SessionNotFoundError(f"Participant {participant_id} not found")
        return participant

    def _accepting(self, session: Session) -> None:
        ensure_accepting_writes(session, now=self._clock(), enforce_deadline=self.config.enforce_deadline)

    # ------------------------------------------------------------------
    # Facilitator operations
    # ------------------------------------------------------------------

    async def create_session(self, timer_duration: Optional[int] = None) -> Session:
        duration = self.config.timer_duration if timer_duration is None else timer_duration
        if duration <= 0:
            raise InvalidInputError("Timer duration must be a positive number of seconds")

        # Lookup and insert under one lock keep live PINs unique.
        async with self._pin_lock:
            for _ in range(PIN_ATTEMPTS):
                pin = generate_pin(self._rng)
                if await self.store.find_session_by_pin(pin, active_only=True) is None:
                    break
            else:
                raise StoreError("Could not allocate a unique game PIN")

            session = validate_record(
                Session,
                {"game_pin": pin, "timer_duration": duration, "created_at": self._clock()},
            )
            await self.store.insert(session)

        LOGGER.info("session.created", session_id=session.id, game_pin=session.game_pin, timer_duration=duration)
        return session

    async def assign_roles(self, session_id: str) -> List[TeamRoster]:
        """Partition participants into teams and hand out roles, exactly once."""

        session = await self._session(session_id)
        participants = await self.store.list_participants(session_id)
        ensure_roles_assignable(session, participants)
        try:
            plan(len(participants))
        except InvalidInputError:
            LOGGER.warning("roles.rejected", session_id=session_id, participants=len(participants))
            raise

        async with self._lock(session_id):
            session = await self._session(session_id)
            participants = await self.store.list_participants(session_id)
            try:
                ensure_roles_assignable(session, participants)
            except PreconditionError as exc:
                LOGGER.warning("roles.race_lost", session_id=session_id, reason=str(exc))
                raise ConditionsChangedError(str(exc)) from exc

            try:
                sizes = plan(len(participants))
            except CannotFormTeamsError as exc:
                LOGGER.warning("roles.race_lost", session_id=session_id, participants=len(participants))
                raise ConditionsChangedError(f"participant count changed to {len(participants)}") from exc
            assignments = assign(participants, sizes)
            now = self._clock()
            teams = [
                validate_record(Team, {"session_id": session_id, "team_number": number, "created_at": now})
                for number in range(1, len(sizes) + 1)
            ]
            await self.store.insert_many(teams)

            by_number = {team.team_number: team for team in teams}
            updated = []
            for participant in participants:
                placement = assignments[participant.id]
                updated.append(
                    replace(
                        participant,
                        team_id=by_number[placement.team_number].id,
                        role=placement.role,
                        is_native_speaker=placement.is_native_speaker,
                    )
                )
            await self.store.update_many(updated)

        LOGGER.info("roles.assigned", session_id=session_id, participants=len(participants), team_sizes=sizes)
        return build_rosters(teams, updated)

    async def start_session(self, session_id: str) -> Session:
        session = await self._session(session_id)
        ensure_startable(session, await self.store.list_participants(session_id))

        async with self._lock(session_id):
            session = await self._session(session_id)
            try:
                ensure_startable(session, await self.store.list_participants(session_id))
            except PreconditionError as exc:
                raise ConditionsChangedError(str(exc)) from exc
            started = apply_start(session, self._clock())
            await self.store.update(started)

        LOGGER.info("session.started", session_id=session_id, started_at=started.started_at.isoformat())
        return started

    async def end_session(self, session_id: str) -> Session:
        session = await self._session(session_id)
        if not can_transition(session, "end"):
            raise InvalidTransitionError("end", session.status, SessionStatus.IN_PROGRESS)

        async with self._lock(session_id):
            session = await self._session(session_id)
            if not can_transition(session, "end"):
                raise ConditionsChangedError(f"session is already {session.status.value}")
            ended = apply_end(session, self._clock())
            await self.store.update(ended)

        # Completed sessions never take the lock again.
        self._locks.pop(session_id, None)
        LOGGER.info("session.ended", session_id=session_id, ended_at=ended.ended_at.isoformat())
        return ended

    # ------------------------------------------------------------------
    # Participant operations
    # ------------------------------------------------------------------

    async def join_session(self, pin: str, name: str) -> Participant:
        """Add a participant to the waiting session addressed by ``pin``."""

        pin = normalize_pin(pin)
        name = clean_name(name)

        session = await self.store.find_session_by_pin(pin, active_only=True)
        if session is None:
            session = await self.store.find_session_by_pin(pin, active_only=False)
        if session is None:
            LOGGER.info("join.rejected", game_pin=pin, reason="not_found")
            raise SessionNotFoundError("Game PIN not found")
        try:
            ensure_joinable(session)
        except PreconditionError:
            LOGGER.info("join.rejected", game_pin=pin, reason=session.status.value)
            raise

        async with self._lock(session.id):
            current = await self.store.get(Session, session.id)
            if current is None or current.status != SessionStatus.WAITING:
                LOGGER.warning("join.race_lost", session_id=session.id)
                raise ConditionsChangedError("the session started before the join completed")
            participant = validate_record(
                Participant,
                {"session_id": session.id, "name": name, "joined_at": self._clock()},
            )
            await self.store.insert(participant)

        LOGGER.info("participant.joined", session_id=session.id, participant_id=participant.id)
        return participant

    async def send_message(self, participant_id: str, content: str, is_code_switched: bool = False) -> Message:
        text = str(content or "").strip()
        if not text:
            raise InvalidInputError("Message must not be empty")

        participant = await self._participant(participant_id)
        if participant.team_id is None:
            raise NotTeamMemberError()
        self._accepting(await self._session(participant.session_id))

        async with self._lock(participant.session_id):
            try:
                self._accepting(await self._session(participant.session_id))
            except PreconditionError as exc:
                raise ConditionsChangedError(str(exc)) from exc
            message = validate_record(
                Message,
                {
                    "session_id": participant.session_id,
                    "team_id": participant.team_id,
                    "participant_id": participant.id,
                    "content": text,
                    "is_code_switched": bool(is_code_switched),
                    "timestamp": self._clock(),
                },
            )
            await self.store.insert(message)

        LOGGER.debug(
            "message.sent",
            session_id=participant.session_id,
            team_id=participant.team_id,
            participant_id=participant.id,
            code_switched=message.is_code_switched,
        )
        return message

    async def submit_answers(self, participant_id: str, answers: Mapping[int, str]) -> List[Answer]:
        """Upsert the team's answers; only the CEO may submit."""

        if not answers:
            raise InvalidInputError("No answers supplied")
        cleaned: Dict[int, str] = {}
        for key, text in answers.items():
            try:
                number = int(key)
            except (TypeError, ValueError) as exc:
                raise InvalidInputError(f"Invalid question number {key!r}") from exc
            if number not in QUESTION_SLOTS:
                raise InvalidInputError(f"Question number must be between 1 and {len(QUESTION_SLOTS)}")
            cleaned[number] = str(text or "").strip()

        participant = await self._participant(participant_id)
        if participant.team_id is None:
            raise NotTeamMemberError()
        if not can_submit_answers(participant.role):
            LOGGER.info("answers.rejected", participant_id=participant_id, role=getattr(participant.role, "value", None))
            raise NotCEOError()
        self._accepting(await self._session(participant.session_id))

        stored: List[Answer] = []
        async with self._lock(participant.session_id):
            try:
                self._accepting(await self._session(participant.session_id))
            except PreconditionError as exc:
                raise ConditionsChangedError(str(exc)) from exc
            now = self._clock()
            for number in sorted(cleaned):
                answer = validate_record(
                    Answer,
                    {
                        "session_id": participant.session_id,
                        "team_id": participant.team_id,
                        "question_number": number,
                        "answer_text": cleaned[number],
                        "submitted_by": participant.id,
                        "submitted_at": now,
                    },
                )
                stored.append(await self.store.upsert_answer(answer))

        LOGGER.info("answers.submitted", team_id=participant.team_id, questions=sorted(cleaned))
        return stored

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def participant_view(self, participant_id: str, *, rng: Optional[random.Random] = None) -> ParticipantView:
        participant = await self._participant(participant_id)
        session = await self._session(participant.session_id)

        team: Optional[Team] = None
        teammates: List[Participant] = []
        messages: List[Message] = []
        answers: Dict[int, str] = {}
        if participant.team_id is not None:
            team = await self.store.get(Team, participant.team_id)
            teammates = await self.store.list_participants(session.id, team_id=participant.team_id)
            messages = await self.store.list_messages(session.id, team_id=participant.team_id)
            answers = {
                answer.question_number: answer.answer_text
                for answer in await self.store.list_answers(session.id, team_id=participant.team_id)
            }

        feed = render_feed(
            messages,
            {mate.id: mate for mate in teammates},
            participant,
            rng=rng or self._rng,
        )
        return ParticipantView(
            session=session,
            screen=screen_for(session.status),
            participant=participant,
            team=team,
            teammates=teammates,
            messages=feed,
            answers=answers,
            remaining_seconds=remaining_for(session, self._clock()),
        )

    async def facilitator_view(self, session_id: str) -> FacilitatorView:
        session = await self._session(session_id)
        participants = await self.store.list_participants(session_id)
        teams = await self.store.list_teams(session_id)
        return FacilitatorView(
            session=session,
            participants=participants,
            rosters=build_rosters(teams, participants),
            actions=available_actions(session, participants),
            remaining_seconds=remaining_for(session, self._clock()),
        )

    async def monitor(self, session_id: str) -> List[TeamFeed]:
        """Every team's conversation exactly as written."""

        await self._session(session_id)
        teams = await self.store.list_teams(session_id)
        participants = await self.store.list_participants(session_id)
        messages = await self.store.list_messages(session_id)

        by_id = {participant.id: participant for participant in participants}
        grouped = group_messages(teams, messages)
        return [
            TeamFeed(
                team=roster.team,
                members=roster.members,
                messages=render_feed(grouped.get(roster.team.id, []), by_id, None),
            )
            for roster in build_rosters(teams, participants)
        ]

    async def team_transcript(
        self,
        session_id: str,
        team_id: str,
        perspective_id: Optional[str] = None,
        *,
        rng: Optional[random.Random] = None,
    ) -> TeamFeed:
        """A team's conversation as one of its members saw it (or as written)."""

        team = await self.store.get(Team, team_id)
        if team is None or team.session_id != session_id:
            raise SessionNotFoundError(f"Team {team_id} not found in session {session_id}")
        members = await self.store.list_participants(session_id, team_id=team_id)

        viewer: Optional[Participant] = None
        if perspective_id is not None:
            viewer = next((member for member in members if member.id == perspective_id), None)
            if viewer is None:
                raise InvalidInputError(f"Perspective must be a member of team {team.team_number}")

        messages = await self.store.list_messages(session_id, team_id=team_id)
        feed = render_feed(messages, {member.id: member for member in members}, viewer, rng=rng or self._rng)
        return TeamFeed(team=team, members=members, messages=feed, perspective=viewer)

    async def debrief(self, session_id: str) -> Dict[str, Any]:
        session = await self._session(session_id)
        teams = await self.store.list_teams(session_id)
        answers = await self.store.list_answers(session_id)
        return build_debrief(session, teams, answers)

    async def export_debrief(self, session_id: str) -> bytes:
        return export_debrief(await self.debrief(session_id))

    # ------------------------------------------------------------------
    # Change notifications
    # ------------------------------------------------------------------

    async def view_state(self, participant_id: str) -> ViewState:
        participant = await self._participant(participant_id)
        session = await self._session(participant.session_id)
        if participant.team_id is not None:
            participants = await self.store.list_participants(session.id, team_id=participant.team_id)
            messages = await self.store.list_messages(session.id, team_id=participant.team_id)
        else:
            participants = await self.store.list_participants(session.id)
            messages = []
        return ViewState.initial(
            session,
            participant_id=participant.id,
            team_id=participant.team_id,
            participants=participants,
            messages=messages,
        )

    def follow(self, participant_id: str) -> "ParticipantFollower":
        return ParticipantFollower(self, participant_id)


class ParticipantFollower:
    """Keeps one participant's :class:`ViewState` current from the change feed.

    Use as an async context manager; :meth:`next` waits for the next event and
    returns the reconciled state with the action the screen must take.
    """

    def __init__(self, service: ExerciseService, participant_id: str) -> None:
        self._service = service
        self.participant_id = participant_id
        self.state: Optional[ViewState] = None
        self._subscription: Any = None

    async def open(self) -> ViewState:
        participant = await self._service._participant(self.participant_id)
        # Subscribe before the initial read so nothing falls between the two.
        self._subscription = self._service.store.subscribe(participant.session_id)
        self.state = await self._service.view_state(self.participant_id)
        return self.state

    async def next(self, timeout: Optional[float] = None) -> Reconciliation:
        if self.state is None:
            await self.open()
        event = await self._subscription.get(timeout)
        result = reconcile(self.state, event)
        if result.action == ViewAction.REFETCH:
            previous = self.state.screen
            fresh = await self._service.view_state(self.participant_id)
            redirect = redirect_action(previous, fresh.screen)
            if redirect == ViewAction.NONE:
                fresh = fresh.model_copy(update={"screen": previous})
            result = Reconciliation(fresh, redirect if redirect != ViewAction.NONE else ViewAction.REFETCH)
        self.state = result.state
        return result

    def pending(self) -> int:
        """Events already queued for this screen."""
        return self._subscription.pending() if self._subscription is not None else 0

    async def close(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None

    async def __aenter__(self) -> "ParticipantFollower":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
