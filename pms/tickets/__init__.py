"""Ticket lifecycle engine: state machine, access filter, audit log and service."""

from .access import Actor, Visibility, blocks_self_reopen, history_actions_for, visibility
from .audit import AuditLog, replay_statuses
from .directory import Directory, DirectoryRepository, DirectoryUser, Project
from .errors import (
    InvalidTicketTransitionError,
    NotificationNotFoundError,
    TicketAccessDeniedError,
    TicketConflictError,
    TicketNotFoundError,
    TicketServiceError,
    TicketValidationError,
)
from .models import HistoryEntry, Ticket, TicketAction, TicketMessage
from .repository import TicketRepository
from .service import NOTIFICATION_RULES, Audience, TicketService, parse_choice
from .state import TRANSITIONS, Role, TicketPriority, TicketStateMachine, TicketStatus, TicketType, Trigger

__all__ = [
    "Actor",
    "Audience",
    "AuditLog",
    "Directory",
    "DirectoryRepository",
    "DirectoryUser",
    "HistoryEntry",
    "InvalidTicketTransitionError",
    "NOTIFICATION_RULES",
    "NotificationNotFoundError",
    "Project",
    "Role",
    "TRANSITIONS",
    "Ticket",
    "TicketAccessDeniedError",
    "TicketAction",
    "TicketConflictError",
    "TicketMessage",
    "TicketNotFoundError",
    "TicketPriority",
    "TicketRepository",
    "TicketService",
    "TicketServiceError",
    "TicketStateMachine",
    "TicketStatus",
    "TicketType",
    "TicketValidationError",
    "Trigger",
    "Visibility",
    "blocks_self_reopen",
    "history_actions_for",
    "parse_choice",
    "replay_statuses",
    "visibility",
]
