from __future__ import annotations

from enum import Enum
from typing import Mapping

from .errors import InvalidTicketTransitionError


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    REOPENED = "reopened"
    CLOSED = "closed"


class TicketType(str, Enum):
    BUG = "bug"
    FEATURE = "feature"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Role(str, Enum):
    """Roles supplied by the identity provider."""

    ADMIN = "admin"
    DEVELOPER = "developer"
    END_USER = "end_user"


class Trigger(str, Enum):
    """Kind of action that moves a ticket between statuses."""

    STATUS_CHANGE = "status_change"
    ASSIGNMENT = "assignment"


TransitionKey = tuple[Trigger, Role, TicketStatus]

_ACTIVE_STATUSES = tuple(status for status in TicketStatus if status is not TicketStatus.CLOSED)


def _build_transitions() -> dict[TransitionKey, frozenset[TicketStatus]]:
    table: dict[TransitionKey, frozenset[TicketStatus]] = {}

    # Admin may move between any two distinct statuses, but never out of Closed.
    for current in _ACTIVE_STATUSES:
        table[(Trigger.STATUS_CHANGE, Role.ADMIN, current)] = frozenset(
            target for target in TicketStatus if target is not current
        )

    table[(Trigger.STATUS_CHANGE, Role.DEVELOPER, TicketStatus.IN_PROGRESS)] = frozenset(
        {TicketStatus.RESOLVED}
    )
    table[(Trigger.STATUS_CHANGE, Role.DEVELOPER, TicketStatus.REOPENED)] = frozenset(
        {TicketStatus.IN_PROGRESS}
    )
    table[(Trigger.STATUS_CHANGE, Role.END_USER, TicketStatus.RESOLVED)] = frozenset(
        {TicketStatus.CLOSED, TicketStatus.REOPENED}
    )

    # Assignment: the first assignment of an Open ticket auto-advances it,
    # assignment on any other active status keeps the status as is.
    table[(Trigger.ASSIGNMENT, Role.ADMIN, TicketStatus.OPEN)] = frozenset({TicketStatus.IN_PROGRESS})
    for current in _ACTIVE_STATUSES:
        if current is not TicketStatus.OPEN:
            table[(Trigger.ASSIGNMENT, Role.ADMIN, current)] = frozenset({current})

    return table


TRANSITIONS: Mapping[TransitionKey, frozenset[TicketStatus]] = _build_transitions()


class TicketStateMachine:
    """Validate ticket lifecycle transitions against :data:`TRANSITIONS`."""

    _TRANSITIONS: Mapping[TransitionKey, frozenset[TicketStatus]] = TRANSITIONS

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.OPEN

    @classmethod
    def allowed_targets(
        cls,
        role: Role,
        current: TicketStatus,
        *,
        trigger: Trigger = Trigger.STATUS_CHANGE,
    ) -> frozenset[TicketStatus]:
        return cls._TRANSITIONS.get((trigger, role, current), frozenset())

    @classmethod
    def can_transition(cls, role: Role, current: TicketStatus, new: TicketStatus) -> bool:
        return new in cls.allowed_targets(role, current)

    @classmethod
    def assert_transition(cls, role: Role, current: TicketStatus, new: TicketStatus) -> None:
        if current is TicketStatus.CLOSED:
            raise InvalidTicketTransitionError(
                f"Closed tickets cannot change status ({role.value}: {current.value} -> {new.value})",
                role=role,
                from_status=current,
                to_status=new,
            )
        if not cls.can_transition(role, current, new):
            raise InvalidTicketTransitionError(
                f"Role {role.value} cannot move a ticket from {current.value} to {new.value}",
                role=role,
                from_status=current,
                to_status=new,
            )

    @classmethod
    def assignment_target(cls, role: Role, current: TicketStatus) -> TicketStatus:
        """Return the status a ticket ends up in after being (re)assigned by ``role``."""

        targets = cls.allowed_targets(role, current, trigger=Trigger.ASSIGNMENT)
        if not targets:
            raise InvalidTicketTransitionError(
                f"Role {role.value} cannot assign a ticket in status {current.value}",
                role=role,
                from_status=current,
                to_status=current,
            )
        (target,) = targets
        return target
