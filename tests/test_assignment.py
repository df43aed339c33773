from collections import Counter

import pytest

from crosstalk.core.assignment import RoleAssignment, assign, assign_teams, team_members
from crosstalk.core.roles import Role
from crosstalk.core.schemas import Participant
from crosstalk.core.teams import can_form_teams


def test_nine_participants_fill_team_one_first():
    ids = [f"p{index}" for index in range(1, 10)]
    assignments = assign(ids, [5, 4])

    assert assignments["p1"] == RoleAssignment(1, 0, Role.CEO, True)
    assert assignments["p2"] == RoleAssignment(1, 1, Role.VP_OPERATIONS, True)
    assert assignments["p3"] == RoleAssignment(1, 2, Role.VP_FINANCE, False)
    assert assignments["p4"] == RoleAssignment(1, 3, Role.VP_MARKETING, False)
    assert assignments["p5"] == RoleAssignment(1, 4, Role.VP_MARKETING, False)
    assert assignments["p6"] == RoleAssignment(2, 0, Role.CEO, True)
    assert assignments["p9"] == RoleAssignment(2, 3, Role.VP_MARKETING, False)


def test_every_team_has_the_required_roles():
    for count in range(4, 121):
        if not can_form_teams(count):
            continue
        assignments = assign_teams(list(range(count)))
        assert len(assignments) == count

        for team_number, members in team_members(assignments).items():
            roles = Counter(assignments[member].role for member in members)
            natives = sum(1 for member in members if assignments[member].is_native_speaker)
            assert roles[Role.CEO] == 1, (count, team_number)
            assert roles[Role.VP_OPERATIONS] == 1
            assert roles[Role.VP_FINANCE] == 1
            assert roles[Role.VP_MARKETING] in (1, 2)
            assert natives == 2


def test_participant_records_are_keyed_by_id():
    participants = [Participant(session_id="s", name=f"Player {index}") for index in range(4)]
    assignments = assign(participants, [4])
    assert set(assignments) == {participant.id for participant in participants}
    assert assignments[participants[0].id].role is Role.CEO


def test_team_members_orders_by_position():
    grouped = team_members(assign(list("abcdefghi"), [5, 4]))
    assert grouped == {1: list("abcde"), 2: list("fghi")}


@pytest.mark.parametrize(
    "participants, sizes",
    [
        (list("abcd"), [5]),
        (list("abcdef"), [6]),
        (list("abcd"), [4, 0]),
        (["a", "a", "b", "c"], [4]),
    ],
)
def test_assign_rejects_inconsistent_input(participants, sizes):
    with pytest.raises(ValueError):
        assign(participants, sizes)
