"""Role based visibility rules shared by every read and write path."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .models import Ticket, TicketAction
from .state import Role


@dataclass(slots=True, frozen=True)
class Actor:
    """Identity of the caller as supplied by the identity provider."""

    id: str
    role: Role


@dataclass(slots=True, frozen=True)
class Visibility:
    can_view: bool
    can_act: bool


_DENIED = Visibility(can_view=False, can_act=False)
_GRANTED = Visibility(can_view=True, can_act=True)


HISTORY_ACTIONS: Mapping[Role, frozenset[TicketAction]] = {
    Role.ADMIN: frozenset(TicketAction),
    Role.DEVELOPER: frozenset(
        {
            TicketAction.CREATED,
            TicketAction.ASSIGNED,
            TicketAction.REASSIGNED,
            TicketAction.STATUS_CHANGED,
            TicketAction.RESOLVED,
            TicketAction.CLOSED,
            TicketAction.REOPENED,
            TicketAction.ATTACHMENT_ADDED,
        }
    ),
    Role.END_USER: frozenset(
        {
            TicketAction.CREATED,
            TicketAction.ASSIGNED,
            TicketAction.STATUS_CHANGED,
            TicketAction.RESOLVED,
            TicketAction.CLOSED,
            TicketAction.REOPENED,
            TicketAction.SATISFACTION_RATED,
        }
    ),
}


def visibility(role: Role, ticket: Ticket, actor_id: str) -> Visibility:
    """Return what ``actor_id`` acting as ``role`` may do with ``ticket``."""

    if role is Role.ADMIN:
        return _GRANTED
    if role is Role.DEVELOPER:
        return _GRANTED if ticket.assigned_to == actor_id else _DENIED
    if role is Role.END_USER:
        return _GRANTED if ticket.created_by == actor_id else _DENIED
    return _DENIED


def history_actions_for(role: Role) -> frozenset[TicketAction]:
    """History action kinds ``role`` is allowed to replay."""

    return HISTORY_ACTIONS.get(role, frozenset())


def blocks_self_reopen(actor: Actor, ticket: Ticket) -> bool:
    """True when a non-admin assignee tries to reopen their own ticket.

    Admins are never blocked, even when they are also the ticket's assignee.
    """

    return actor.role is not Role.ADMIN and ticket.assigned_to == actor.id
