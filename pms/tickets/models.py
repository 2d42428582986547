from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .state import TicketPriority, TicketStatus, TicketType


class TicketAction(str, Enum):
    """Kinds of entries recorded in a ticket's history."""

    CREATED = "created"
    ASSIGNED = "assigned"
    REASSIGNED = "reassigned"
    STATUS_CHANGED = "status_changed"
    PRIORITY_CHANGED = "priority_changed"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REOPENED = "reopened"
    ARCHIVED = "archived"
    UNARCHIVED = "unarchived"
    ATTACHMENT_ADDED = "attachment_added"
    SATISFACTION_RATED = "satisfaction_rated"


@dataclass(slots=True)
class Ticket:
    """Aggregate representing a support or feature ticket."""

    id: str
    project_id: str
    title: str
    description: str
    type: TicketType
    priority: TicketPriority
    status: TicketStatus
    created_by: str
    created_at: datetime
    updated_at: datetime
    assigned_to: str | None = None
    assigned_at: datetime | None = None
    in_progress_at: datetime | None = None
    resolved_at: datetime | None = None
    reopened_at: datetime | None = None
    closed_at: datetime | None = None
    reopen_count: int = 0
    satisfaction_score: int | None = None
    satisfaction_comment: str | None = None
    rated_at: datetime | None = None
    is_archived: bool = False
    archived_at: datetime | None = None
    archived_by: str | None = None
    version: int = 1


@dataclass(slots=True, frozen=True)
class HistoryEntry:
    """Immutable audit record of one accepted ticket mutation."""

    id: str
    ticket_id: str
    action: TicketAction
    old_value: str | None
    new_value: str | None
    comment: str | None
    actor_id: str
    created_at: datetime


@dataclass(slots=True, frozen=True)
class TicketMessage:
    """Text message posted on a ticket's conversation."""

    id: str
    ticket_id: str
    author_id: str
    content: str
    created_at: datetime
