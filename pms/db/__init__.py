"""Database models and utilities."""

from .models import (
    ensure_datetime,
    ensure_optional_datetime,
    NotificationTable,
    ProjectTable,
    TicketHistoryTable,
    TicketMessageTable,
    TicketTable,
    UserTable,
)

__all__ = [
    "ensure_datetime",
    "ensure_optional_datetime",
    "NotificationTable",
    "ProjectTable",
    "TicketHistoryTable",
    "TicketMessageTable",
    "TicketTable",
    "UserTable",
]
