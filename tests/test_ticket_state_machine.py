import itertools

import pytest

from pms.tickets.errors import InvalidTicketTransitionError
from pms.tickets.state import TRANSITIONS, Role, TicketStateMachine, TicketStatus, Trigger

S = TicketStatus

EXPECTED_NON_ADMIN = {
    (Role.DEVELOPER, S.IN_PROGRESS): {S.RESOLVED},
    (Role.DEVELOPER, S.REOPENED): {S.IN_PROGRESS},
    (Role.END_USER, S.RESOLVED): {S.CLOSED, S.REOPENED},
}


def test_initial_state_is_open():
    assert TicketStateMachine.initial_state() is S.OPEN


@pytest.mark.parametrize(
    "role,current,target",
    list(itertools.product(Role, TicketStatus, TicketStatus)),
)
def test_status_change_matrix(role, current, target):
    if role is Role.ADMIN:
        expected = current is not S.CLOSED and target is not current
    else:
        expected = target in EXPECTED_NON_ADMIN.get((role, current), set())

    assert TicketStateMachine.can_transition(role, current, target) is expected
    if expected:
        TicketStateMachine.assert_transition(role, current, target)
    else:
        with pytest.raises(InvalidTicketTransitionError) as exc:
            TicketStateMachine.assert_transition(role, current, target)
        assert exc.value.role is role
        assert exc.value.from_status is current
        assert exc.value.to_status is target


@pytest.mark.parametrize("role", list(Role))
def test_closed_is_terminal_for_every_role(role):
    for target in TicketStatus:
        assert not TicketStateMachine.can_transition(role, S.CLOSED, target)
    with pytest.raises(InvalidTicketTransitionError, match="Closed tickets"):
        TicketStateMachine.assert_transition(role, S.CLOSED, S.REOPENED)


def test_assignment_moves_open_to_in_progress():
    assert TicketStateMachine.assignment_target(Role.ADMIN, S.OPEN) is S.IN_PROGRESS


@pytest.mark.parametrize("current", [S.IN_PROGRESS, S.RESOLVED, S.REOPENED])
def test_assignment_keeps_other_active_statuses(current):
    assert TicketStateMachine.assignment_target(Role.ADMIN, current) is current


def test_assignment_rejected_for_closed_and_non_admins():
    with pytest.raises(InvalidTicketTransitionError):
        TicketStateMachine.assignment_target(Role.ADMIN, S.CLOSED)
    for role in (Role.DEVELOPER, Role.END_USER):
        for current in TicketStatus:
            with pytest.raises(InvalidTicketTransitionError):
                TicketStateMachine.assignment_target(role, current)


def test_table_only_contains_known_triggers_and_no_exits_from_closed():
    for (trigger, _role, current), targets in TRANSITIONS.items():
        assert trigger in (Trigger.STATUS_CHANGE, Trigger.ASSIGNMENT)
        assert current is not S.CLOSED
        assert targets
