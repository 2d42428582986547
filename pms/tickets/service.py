from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Sequence, TypeVar

from opentelemetry import trace

from pms.notifications.dispatcher import NotificationDispatcher
from pms.notifications.models import Notification, NotificationType, build_notification

from .access import Actor, blocks_self_reopen, history_actions_for, visibility
from .audit import AuditLog
from .directory import Directory
from .errors import (
    InvalidTicketTransitionError,
    TicketAccessDeniedError,
    TicketNotFoundError,
    TicketValidationError,
)
from .models import HistoryEntry, Ticket, TicketAction, TicketMessage
from .repository import TicketRepository
from .state import Role, TicketPriority, TicketStateMachine, TicketStatus, TicketType

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

E = TypeVar("E", bound=Enum)

MAX_TITLE_LENGTH = 255
SATISFACTION_RANGE = range(1, 6)


class Audience(str, Enum):
    """Who a lifecycle event is announced to."""

    REQUESTER = "requester"
    ASSIGNEE = "assignee"
    ADMINS = "admins"


# History action -> notification kind and audiences. Actions not listed notify nobody.
NOTIFICATION_RULES: Mapping[TicketAction, tuple[NotificationType, tuple[Audience, ...]]] = {
    TicketAction.CREATED: (NotificationType.TICKET_CREATED, (Audience.ADMINS,)),
    TicketAction.ASSIGNED: (NotificationType.TICKET_ASSIGNED, (Audience.ASSIGNEE,)),
    TicketAction.REASSIGNED: (NotificationType.TICKET_ASSIGNED, (Audience.ASSIGNEE,)),
    TicketAction.RESOLVED: (NotificationType.TICKET_RESOLVED, (Audience.REQUESTER,)),
    TicketAction.REOPENED: (NotificationType.TICKET_REOPENED, (Audience.ASSIGNEE, Audience.ADMINS)),
    TicketAction.CLOSED: (NotificationType.TICKET_CLOSED, (Audience.REQUESTER,)),
}

_CREATOR_ROLES = frozenset({Role.ADMIN, Role.END_USER})


def parse_choice(enum_cls: type[E], value: Any, field_name: str) -> E:
    """Coerce ``value`` into ``enum_cls``, accepting ``InProgress`` / ``in_progress`` spellings."""

    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        key = value.strip().replace("_", "").replace(" ", "").lower()
        for member in enum_cls:
            if str(member.value).replace("_", "") == key:
                return member
    valid = ", ".join(str(member.value) for member in enum_cls)
    raise TicketValidationError(f"Invalid {field_name} {value!r}. Valid: {valid}")


def _next_timestamp(previous: datetime | None = None) -> datetime:
    """Current UTC time, nudged forward so it is strictly after ``previous``."""

    now = datetime.now(timezone.utc)
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


class TicketService:
    """Ticket lifecycle engine.

    Every accepted mutation validates the caller against the access filter and
    the transition table, then commits the ticket row, exactly one history
    entry and the resulting notifications together before handing the
    notifications to the dispatcher for live delivery.
    """

    def __init__(
        self,
        repository: TicketRepository,
        *,
        audit_log: AuditLog,
        directory: Directory,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._repository = repository
        self._audit_log = audit_log
        self._directory = directory
        self._dispatcher = dispatcher

    async def ensure_schema(self) -> None:
        await self._repository.ensure_schema()

    # -- reads -------------------------------------------------------------

    async def list_tickets(self, actor: Actor, *, include_archived: bool = False) -> list[Ticket]:
        if actor.role is Role.ADMIN:
            tickets = await self._repository.list_tickets(include_archived=include_archived)
        elif actor.role is Role.DEVELOPER:
            tickets = await self._repository.list_tickets(
                assigned_to=actor.id, include_archived=include_archived
            )
        else:
            tickets = await self._repository.list_tickets(created_by=actor.id, include_archived=include_archived)
        return [ticket for ticket in tickets if visibility(actor.role, ticket, actor.id).can_view]

    async def get_ticket(self, actor: Actor, ticket_id: str) -> Ticket:
        return await self._load(actor, ticket_id)

    async def get_history(self, actor: Actor, ticket_id: str) -> list[HistoryEntry]:
        await self._load(actor, ticket_id)
        return await self._audit_log.list_entries(ticket_id, actions=history_actions_for(actor.role))

    async def list_messages(self, actor: Actor, ticket_id: str) -> list[TicketMessage]:
        await self._load(actor, ticket_id)
        return await self._repository.list_messages(ticket_id)

    # -- creation ----------------------------------------------------------

    async def create_ticket(
        self,
        actor: Actor,
        *,
        project_id: str,
        title: str,
        description: str = "",
        type: TicketType | str = TicketType.BUG,
        priority: TicketPriority | str = TicketPriority.MEDIUM,
    ) -> Ticket:
        if actor.role not in _CREATOR_ROLES:
            raise TicketAccessDeniedError("Only requesters and admins can create tickets")

        title = (title or "").strip()
        if not title:
            raise TicketValidationError("Title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise TicketValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters")
        ticket_type = parse_choice(TicketType, type, "ticket type")
        ticket_priority = parse_choice(TicketPriority, priority, "priority")

        project = await self._directory.get_project(project_id)
        if project is None or not project.is_active:
            raise TicketValidationError("Project not found or inactive")

        now = _next_timestamp()
        ticket = Ticket(
            id=str(uuid.uuid4()),
            project_id=project.id,
            title=title,
            description=description or "",
            type=ticket_type,
            priority=ticket_priority,
            status=TicketStateMachine.initial_state(),
            created_by=actor.id,
            created_at=now,
            updated_at=now,
        )
        history = self._history(ticket, actor, TicketAction.CREATED, None, ticket.status.value, "Ticket created", now)
        notifications = await self._notifications_for(history, ticket, actor)

        with tracer.start_as_current_span("tickets.create", attributes={"ticket.id": ticket.id}):
            await self._repository.create_ticket(ticket, history, notifications)
        logger.info("Ticket %s created by %s (%s)", ticket.id, actor.id, actor.role.value)
        self._dispatch(notifications)
        return ticket

    # -- lifecycle mutations -----------------------------------------------

    async def assign(self, actor: Actor, ticket_id: str, developer_id: str) -> Ticket:
        if actor.role is not Role.ADMIN:
            raise TicketAccessDeniedError("Only admins can assign tickets")

        ticket = await self._load(actor, ticket_id)
        self._ensure_not_archived(ticket)
        target = TicketStateMachine.assignment_target(actor.role, ticket.status)

        developer = await self._directory.get_user(developer_id)
        if developer is None or developer.role is not Role.DEVELOPER or not developer.is_active:
            raise TicketValidationError("Invalid or inactive developer")

        now = _next_timestamp(ticket.updated_at)
        # An assignment that moves the status is always recorded as Assigned.
        if ticket.assigned_to is None or target is not ticket.status:
            action = TicketAction.ASSIGNED
        else:
            action = TicketAction.REASSIGNED
        updated = replace(
            ticket,
            assigned_to=developer.id,
            assigned_at=ticket.assigned_at or now,
            updated_at=now,
        )
        if target is not ticket.status:
            updated = self._with_status(updated, target, now)

        history = self._history(
            ticket, actor, action, ticket.assigned_to, developer.id, f"Assigned to {developer.name}", now
        )
        return await self._commit(ticket, updated, history, actor)

    async def change_status(
        self,
        actor: Actor,
        ticket_id: str,
        new_status: TicketStatus | str,
        *,
        comment: str | None = None,
    ) -> Ticket:
        target = parse_choice(TicketStatus, new_status, "status")
        if target is TicketStatus.CLOSED:
            return await self.close(actor, ticket_id, comment=comment)
        if target is TicketStatus.REOPENED:
            return await self.reopen(actor, ticket_id, comment or "")

        ticket = await self._load(actor, ticket_id)
        self._ensure_not_archived(ticket)
        TicketStateMachine.assert_transition(actor.role, ticket.status, target)

        now = _next_timestamp(ticket.updated_at)
        updated = self._with_status(ticket, target, now)
        action = TicketAction.RESOLVED if target is TicketStatus.RESOLVED else TicketAction.STATUS_CHANGED
        history = self._history(ticket, actor, action, ticket.status.value, target.value, comment, now)
        return await self._commit(ticket, updated, history, actor)

    async def close(
        self,
        actor: Actor,
        ticket_id: str,
        *,
        comment: str | None = None,
        satisfaction_score: int | None = None,
        satisfaction_comment: str | None = None,
    ) -> Ticket:
        if satisfaction_score is not None and (
            isinstance(satisfaction_score, bool) or satisfaction_score not in SATISFACTION_RANGE
        ):
            raise TicketValidationError("Satisfaction score must be between 1 and 5")

        ticket = await self._load(actor, ticket_id)
        self._ensure_not_archived(ticket)
        TicketStateMachine.assert_transition(actor.role, ticket.status, TicketStatus.CLOSED)

        now = _next_timestamp(ticket.updated_at)
        updated = self._with_status(ticket, TicketStatus.CLOSED, now)
        if satisfaction_score is not None:
            updated = replace(
                updated,
                satisfaction_score=satisfaction_score,
                satisfaction_comment=satisfaction_comment,
                rated_at=now,
            )

        if not comment:
            comment = "Ticket closed by admin" if actor.role is Role.ADMIN else "Ticket accepted and closed by user"
        history = self._history(
            ticket, actor, TicketAction.CLOSED, ticket.status.value, TicketStatus.CLOSED.value, comment, now
        )
        return await self._commit(ticket, updated, history, actor)

    async def reopen(self, actor: Actor, ticket_id: str, comment: str) -> Ticket:
        comment = (comment or "").strip()
        if not comment:
            raise TicketValidationError("Comment is required when reopening a ticket")

        ticket = await self._load(actor, ticket_id)
        self._ensure_not_archived(ticket)
        if blocks_self_reopen(actor, ticket):
            raise InvalidTicketTransitionError(
                "An assignee cannot reopen their own assigned ticket",
                role=actor.role,
                from_status=ticket.status,
                to_status=TicketStatus.REOPENED,
            )
        TicketStateMachine.assert_transition(actor.role, ticket.status, TicketStatus.REOPENED)

        now = _next_timestamp(ticket.updated_at)
        updated = replace(
            self._with_status(ticket, TicketStatus.REOPENED, now),
            reopen_count=ticket.reopen_count + 1,
        )
        history = self._history(
            ticket, actor, TicketAction.REOPENED, ticket.status.value, TicketStatus.REOPENED.value, comment, now
        )
        return await self._commit(ticket, updated, history, actor)

    async def archive(self, actor: Actor, ticket_id: str) -> Ticket:
        if actor.role is not Role.ADMIN:
            raise TicketAccessDeniedError("Only admins can archive tickets")

        ticket = await self._load(actor, ticket_id)
        if ticket.status is not TicketStatus.CLOSED:
            raise InvalidTicketTransitionError(
                "Only closed tickets can be archived",
                role=actor.role,
                from_status=ticket.status,
                to_status=ticket.status,
            )
        self._ensure_not_archived(ticket)

        now = _next_timestamp(ticket.updated_at)
        updated = replace(ticket, is_archived=True, archived_at=now, archived_by=actor.id, updated_at=now)
        history = self._history(
            ticket, actor, TicketAction.ARCHIVED, "active", "archived", "Ticket archived by admin", now
        )
        return await self._commit(ticket, updated, history, actor)

    async def unarchive(self, actor: Actor, ticket_id: str) -> Ticket:
        if actor.role is not Role.ADMIN:
            raise TicketAccessDeniedError("Only admins can unarchive tickets")

        ticket = await self._load(actor, ticket_id)
        if not ticket.is_archived:
            raise InvalidTicketTransitionError(
                "Ticket is not archived",
                role=actor.role,
                from_status=ticket.status,
                to_status=ticket.status,
            )

        now = _next_timestamp(ticket.updated_at)
        updated = replace(ticket, is_archived=False, archived_at=None, archived_by=None, updated_at=now)
        history = self._history(
            ticket, actor, TicketAction.UNARCHIVED, "archived", "active", "Ticket unarchived by admin", now
        )
        return await self._commit(ticket, updated, history, actor)

    # -- conversation ------------------------------------------------------

    async def add_message(self, actor: Actor, ticket_id: str, content: str) -> TicketMessage:
        ticket = await self._load(actor, ticket_id)
        self._ensure_not_archived(ticket)
        if ticket.status is TicketStatus.CLOSED:
            raise InvalidTicketTransitionError(
                "Cannot send messages to closed tickets",
                role=actor.role,
                from_status=ticket.status,
                to_status=ticket.status,
            )
        content = (content or "").strip()
        if not content:
            raise TicketValidationError("Message content is required")

        message = TicketMessage(
            id=str(uuid.uuid4()),
            ticket_id=ticket.id,
            author_id=actor.id,
            content=content,
            created_at=_next_timestamp(),
        )
        await self._repository.add_message(message)
        return message

    async def record_attachments(self, actor: Actor, ticket_id: str, file_names: Sequence[str]) -> HistoryEntry:
        """Record that the attachment subsystem stored ``file_names`` on the ticket."""

        names = [name.strip() for name in file_names if name and name.strip()]
        if not names:
            raise TicketValidationError("At least one file name is required")

        ticket = await self._load(actor, ticket_id)
        self._ensure_not_archived(ticket)
        if ticket.status in (TicketStatus.CLOSED, TicketStatus.RESOLVED):
            raise InvalidTicketTransitionError(
                f"Cannot attach files to {ticket.status.value} tickets",
                role=actor.role,
                from_status=ticket.status,
                to_status=ticket.status,
            )

        now = _next_timestamp(ticket.updated_at)
        history = self._history(
            ticket,
            actor,
            TicketAction.ATTACHMENT_ADDED,
            None,
            ", ".join(names),
            f"{len(names)} file(s) attached",
            now,
        )
        await self._commit(ticket, replace(ticket, updated_at=now), history, actor)
        return history

    # -- helpers -----------------------------------------------------------

    async def _load(self, actor: Actor, ticket_id: str) -> Ticket:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        if not visibility(actor.role, ticket, actor.id).can_act:
            raise TicketAccessDeniedError(f"Access to ticket {ticket_id} is forbidden")
        return ticket

    @staticmethod
    def _ensure_not_archived(ticket: Ticket) -> None:
        if ticket.is_archived:
            raise InvalidTicketTransitionError(
                f"Ticket {ticket.id} is archived and read-only",
                from_status=ticket.status,
                to_status=ticket.status,
            )

    @staticmethod
    def _with_status(ticket: Ticket, status: TicketStatus, now: datetime) -> Ticket:
        """Apply ``status`` and record its lifecycle timestamp on first occurrence."""

        changes: dict[str, Any] = {"status": status, "updated_at": now}
        stamp_field = {
            TicketStatus.IN_PROGRESS: "in_progress_at",
            TicketStatus.RESOLVED: "resolved_at",
            TicketStatus.REOPENED: "reopened_at",
            TicketStatus.CLOSED: "closed_at",
        }.get(status)
        if stamp_field is not None and getattr(ticket, stamp_field) is None:
            changes[stamp_field] = now
        return replace(ticket, **changes)

    @staticmethod
    def _history(
        ticket: Ticket,
        actor: Actor,
        action: TicketAction,
        old_value: str | None,
        new_value: str | None,
        comment: str | None,
        now: datetime,
    ) -> HistoryEntry:
        return HistoryEntry(
            id=str(uuid.uuid4()),
            ticket_id=ticket.id,
            action=action,
            old_value=old_value,
            new_value=new_value,
            comment=comment,
            actor_id=actor.id,
            created_at=now,
        )

    async def _commit(self, before: Ticket, after: Ticket, history: HistoryEntry, actor: Actor) -> Ticket:
        notifications = await self._notifications_for(history, after, actor)
        with tracer.start_as_current_span(
            "tickets.mutate",
            attributes={"ticket.id": before.id, "ticket.action": history.action.value, "actor.role": actor.role.value},
        ):
            saved = await self._repository.save_mutation(
                after,
                expected_version=before.version,
                history=history,
                notifications=notifications,
            )
        logger.info(
            "Ticket %s %s by %s (%s): %s -> %s",
            saved.id,
            history.action.value,
            actor.id,
            actor.role.value,
            before.status.value,
            saved.status.value,
        )
        self._dispatch(notifications)
        return saved

    async def _notifications_for(self, history: HistoryEntry, ticket: Ticket, actor: Actor) -> list[Notification]:
        rule = NOTIFICATION_RULES.get(history.action)
        if rule is None:
            return []
        notification_type, audiences = rule

        recipients: list[str] = []
        for audience in audiences:
            if audience is Audience.REQUESTER:
                candidates = [ticket.created_by]
            elif audience is Audience.ASSIGNEE:
                candidates = [ticket.assigned_to] if ticket.assigned_to else []
            else:
                candidates = await self._directory.list_admin_ids()
            for candidate in candidates:
                if candidate != actor.id and candidate not in recipients:
                    recipients.append(candidate)

        return [
            build_notification(
                recipient_id=recipient,
                type=notification_type,
                ticket_id=ticket.id,
                ticket_title=ticket.title,
                created_at=history.created_at,
            )
            for recipient in recipients
        ]

    def _dispatch(self, notifications: Sequence[Notification]) -> None:
        if self._dispatcher is not None and notifications:
            self._dispatcher.dispatch(notifications)
