"""Message feeds, monitor grouping and the end-of-session debrief."""

from __future__ import annotations

import random
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import orjson

from . import garbling
from .questions import question_map
from .roles import Role, role_display_name
from .schemas import Answer, Message, Participant, Session, Team


@dataclass(slots=True)
class RenderedMessage:
    """A message as it appears on one viewer's screen."""

    message_id: str
    sender_id: str
    sender_name: str
    sender_role: Optional[Role]
    sender_is_native: Optional[bool]
    text: str
    original: str
    is_code_switched: bool
    timestamp: datetime

    @property
    def is_garbled(self) -> bool:
        return self.text != self.original

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["sender_role_name"] = role_display_name(self.sender_role)
        data["is_garbled"] = self.is_garbled
        return data


def render_feed(
    messages: Sequence[Message],
    participants: Mapping[str, Participant],
    viewer: Optional[Participant],
    *,
    rng: Optional[random.Random] = None,
) -> List[RenderedMessage]:
    """Render ``messages`` in store order from ``viewer``'s perspective.

    Without a viewer every message is shown as written.
    """

    feed: List[RenderedMessage] = []
    for message in messages:
        sender = participants.get(message.participant_id)
        sender_role = sender.role if sender else None
        sender_is_native = sender.is_native_speaker if sender else None
        if viewer is None:
            text = message.content
        else:
            text = garbling.render(
                message.content,
                sender_role,
                sender_is_native,
                viewer.role,
                viewer.is_native_speaker,
                message.is_code_switched,
                rng=rng,
            )
        feed.append(
            RenderedMessage(
                message_id=message.id,
                sender_id=message.participant_id,
                sender_name=sender.name if sender else "Unknown",
                sender_role=sender_role,
                sender_is_native=sender_is_native,
                text=text,
                original=message.content,
                is_code_switched=message.is_code_switched,
                timestamp=message.timestamp,
            )
        )
    return feed


@dataclass(slots=True)
class TeamRoster:
    team: Team
    members: List[Participant] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team": self.team.model_dump(mode="json"),
            "members": [member.model_dump(mode="json") for member in self.members],
        }


def build_rosters(teams: Iterable[Team], participants: Iterable[Participant]) -> List[TeamRoster]:
    """Pair each team (by team number) with its members in join order."""

    rosters = {team.id: TeamRoster(team=team) for team in sorted(teams, key=lambda item: item.team_number)}
    for participant in sorted(participants, key=lambda item: item.joined_at):
        if participant.team_id in rosters:
            rosters[participant.team_id].members.append(participant)
    return list(rosters.values())


def group_messages(teams: Iterable[Team], messages: Iterable[Message]) -> Dict[str, List[Message]]:
    """Messages per team id, keeping team-number order and timestamp order."""

    grouped: Dict[str, List[Message]] = {
        team.id: [] for team in sorted(teams, key=lambda item: item.team_number)
    }
    for message in sorted(messages, key=lambda item: item.timestamp):
        grouped.setdefault(message.team_id, []).append(message)
    return grouped


def build_debrief(session: Session, teams: Iterable[Team], answers: Iterable[Answer]) -> Dict[str, Any]:
    """Questions alongside each team's latest answer per slot."""

    questions = question_map()
    by_team: Dict[str, Dict[int, Answer]] = {}
    for answer in answers:
        by_team.setdefault(answer.team_id, {})[answer.question_number] = answer

    team_entries: List[Dict[str, Any]] = []
    for team in sorted(teams, key=lambda item: item.team_number):
        filed = by_team.get(team.id, {})
        team_entries.append(
            {
                "team_id": team.id,
                "team_number": team.team_number,
                "answers": [
                    {
                        "question_number": number,
                        "question": text,
                        "answer_text": filed[number].answer_text if number in filed else None,
                        "submitted_by": filed[number].submitted_by if number in filed else None,
                        "submitted_at": filed[number].submitted_at.isoformat() if number in filed else None,
                    }
                    for number, text in questions.items()
                ],
            }
        )

    return {
        "session_id": session.id,
        "game_pin": session.game_pin,
        "status": session.status.value,
        "started_at": session.started_at.isoformat() if session.started_at else None,
        "ended_at": session.ended_at.isoformat() if session.ended_at else None,
        "questions": [{"question_number": number, "question": text} for number, text in questions.items()],
        "teams": team_entries,
    }


def export_debrief(debrief: Mapping[str, Any]) -> bytes:
    """Serialize a debrief with orjson."""

    return orjson.dumps(dict(debrief), option=orjson.OPT_INDENT_2)
