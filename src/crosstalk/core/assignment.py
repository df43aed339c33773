"""Deterministic mapping of join order onto teams, roles and fluency flags."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Hashable, List, Sequence

from .roles import MAX_TEAM_SIZE, Role, role_for_position
from .teams import plan


@dataclass(frozen=True, slots=True)
class RoleAssignment:
    """Placement of a single participant."""

    team_number: int
    position: int
    role: Role
    is_native_speaker: bool


def _identity(participant: Any) -> Hashable:
    return getattr(participant, "id", participant)


def assign(ordered_participants: Sequence[Any], team_sizes: Sequence[int]) -> Dict[Hashable, RoleAssignment]:
    """Distribute participants into teams and hand out roles by position.

    Parameters
    ----------
    ordered_participants:
        Participants (or bare identifiers) sorted by join time, earliest first.
        Objects exposing an ``id`` attribute are keyed by that attribute.
    team_sizes:
        Sizes in team-number order, as produced by :func:`crosstalk.core.teams.plan`.

    Each team is filled to its planned size before the next one starts. Position
    inside the team alone decides role and fluency, whatever the team size.
    """

    if sum(team_sizes) != len(ordered_participants):
        raise ValueError(
            f"Team sizes {list(team_sizes)} do not cover {len(ordered_participants)} participants"
        )

    assignments: Dict[Hashable, RoleAssignment] = {}
    cursor = 0
    for team_number, size in enumerate(team_sizes, start=1):
        if not 0 < size <= MAX_TEAM_SIZE:
            raise ValueError(f"Team {team_number} has unsupported size {size}")
        for position in range(size):
            key = _identity(ordered_participants[cursor])
            if key in assignments:
                raise ValueError(f"Participant {key!r} appears more than once")
            slot = role_for_position(position)
            assignments[key] = RoleAssignment(
                team_number=team_number,
                position=position,
                role=slot.role,
                is_native_speaker=slot.is_native_speaker,
            )
            cursor += 1

    return assignments


def assign_teams(ordered_participants: Sequence[Any]) -> Dict[Hashable, RoleAssignment]:
    """Plan team sizes for the whole group and assign roles in one step."""

    return assign(ordered_participants, plan(len(ordered_participants)))


def team_members(assignments: Dict[Hashable, RoleAssignment]) -> Dict[int, List[Hashable]]:
    """Group assigned identities by team number, ordered by position."""

    grouped: Dict[int, List[Hashable]] = {}
    ordered = sorted(assignments.items(), key=lambda item: (item[1].team_number, item[1].position))
    for key, assignment in ordered:
        grouped.setdefault(assignment.team_number, []).append(key)
    return grouped
