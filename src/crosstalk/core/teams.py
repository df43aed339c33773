"""Team formation planning for arbitrary participant counts.

Teams hold either four or five participants. A participant count is feasible when it
can be written as ``4a + 5b`` with no remainder. Feasibility is decided by enumerating
every candidate number of five-person teams rather than by a closed-form rule, since
the small counts (6, 7 and 11) are easy to misjudge by hand.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable, List, Tuple

from .errors import CannotFormTeamsError

TEAM_SIZES: Tuple[int, ...] = (5, 4)
MIN_TEAM_SIZE = min(TEAM_SIZES)
MAX_TEAM_SIZE = max(TEAM_SIZES)


@lru_cache(maxsize=1024)
def is_feasible(count: int) -> bool:
    """Return True if ``count`` splits exactly into teams of 4 and 5.

    Zero is feasible as a remainder (nothing left to place) but never as a
    participant count; use :func:`can_form_teams` for the latter.
    """

    if count < 0:
        return False
    for fives in range(count // MAX_TEAM_SIZE + 1):
        if (count - fives * MAX_TEAM_SIZE) % MIN_TEAM_SIZE == 0:
            return True
    return False


def can_form_teams(count: int) -> bool:
    """Return True if at least one team can be formed and nobody is left over."""

    return count >= MIN_TEAM_SIZE and is_feasible(count)


def plan(count: int) -> List[int]:
    """Return team sizes in team-number order for ``count`` participants.

    A five-person team is taken whenever the remainder can still be fully split;
    otherwise a four-person team is taken.

    Raises
    ------
    CannotFormTeamsError
        If ``count`` is below four or has no decomposition into 4s and 5s.
    """

    if not can_form_teams(count):
        raise CannotFormTeamsError(count)

    sizes: List[int] = []
    remaining = count
    while remaining > 0:
        for size in TEAM_SIZES:
            if remaining >= size and is_feasible(remaining - size):
                sizes.append(size)
                remaining -= size
                break
        else:  # pragma: no cover - unreachable once the count is feasible
            raise CannotFormTeamsError(count)

    return sizes


def infeasible_counts(counts: Iterable[int]) -> List[int]:
    """Filter ``counts`` down to the values that cannot form teams."""

    return [count for count in counts if not can_form_teams(count)]


def describe_plan(sizes: Iterable[int]) -> str:
    """Short human readable summary such as ``"Team 1: 5, Team 2: 4"``."""

    return ", ".join(f"Team {number}: {size}" for number, size in enumerate(sizes, start=1))
