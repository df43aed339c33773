"""Negotiation roles, their display hints and the intra-team position table."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Role(str, Enum):
    """Executive roles handed out inside every team."""

    CEO = "CEO"
    VP_OPERATIONS = "VP_Operations"
    VP_FINANCE = "VP_Finance"
    VP_MARKETING = "VP_Marketing"


@dataclass(frozen=True, slots=True)
class RoleSlot:
    """Role and fluency flag granted to one position in a team."""

    role: Role
    is_native_speaker: bool


UNASSIGNED_LABEL = "Unassigned"
UNASSIGNED_COLOR = "bg-gray-500"

ROLE_NAMES: Dict[Role, str] = {
    Role.CEO: "CEO",
    Role.VP_OPERATIONS: "VP Operations",
    Role.VP_FINANCE: "VP Finance",
    Role.VP_MARKETING: "VP Marketing",
}

ROLE_COLORS: Dict[Role, str] = {
    Role.CEO: "bg-purple-600",
    Role.VP_OPERATIONS: "bg-blue-600",
    Role.VP_FINANCE: "bg-green-600",
    Role.VP_MARKETING: "bg-orange-600",
}

# Index is the 0-based position inside a team ordered by join time.
# The fifth seat duplicates VP_Marketing so every team keeps exactly two native speakers.
POSITION_TABLE: Tuple[RoleSlot, ...] = (
    RoleSlot(Role.CEO, True),
    RoleSlot(Role.VP_OPERATIONS, True),
    RoleSlot(Role.VP_FINANCE, False),
    RoleSlot(Role.VP_MARKETING, False),
    RoleSlot(Role.VP_MARKETING, False),
)

MAX_TEAM_SIZE = len(POSITION_TABLE)


def coerce_role(value: Any) -> Optional[Role]:
    """Return ``value`` as a :class:`Role`, or ``None`` when it is empty or unknown."""

    if value is None or isinstance(value, Role):
        return value
    try:
        return Role(str(value))
    except ValueError:
        return None


def role_display_name(role: Any) -> str:
    """Human readable role name with a fallback for unassigned participants."""

    resolved = coerce_role(role)
    if resolved is None:
        return UNASSIGNED_LABEL
    return ROLE_NAMES[resolved]


def role_color(role: Any) -> str:
    """Badge color class for a role."""

    resolved = coerce_role(role)
    if resolved is None:
        return UNASSIGNED_COLOR
    return ROLE_COLORS[resolved]


def fluency_label(is_native_speaker: Optional[bool]) -> str:
    if is_native_speaker is None:
        return UNASSIGNED_LABEL
    return "Native" if is_native_speaker else "Non-Native"


def role_for_position(position: int) -> RoleSlot:
    """Look up the role slot for a 0-based position inside a team.

    Raises
    ------
    ValueError
        If the position lies outside the table (teams never hold more than five people).
    """

    if not 0 <= position < MAX_TEAM_SIZE:
        raise ValueError(f"No role defined for team position {position}")
    return POSITION_TABLE[position]


def can_submit_answers(role: Any) -> bool:
    """Only the CEO files the team's answers."""

    return coerce_role(role) is Role.CEO


def role_catalog() -> list[Dict[str, Any]]:
    """Serializable catalog used by the web API."""

    return [
        {
            "role": role.value,
            "displayName": ROLE_NAMES[role],
            "color": ROLE_COLORS[role],
            "canSubmitAnswers": can_submit_answers(role),
        }
        for role in Role
    ]
