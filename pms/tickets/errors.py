from __future__ import annotations

from typing import Any


class TicketServiceError(RuntimeError):
    """Base error for ticket service issues."""


class TicketNotFoundError(TicketServiceError):
    """Raised when a ticket could not be located."""


class TicketAccessDeniedError(TicketServiceError):
    """Raised when the ticket exists but the caller's role or relationship hides it."""


class InvalidTicketTransitionError(TicketServiceError):
    """Raised when a mutation is not permitted for the ticket's current state."""

    def __init__(
        self,
        message: str,
        *,
        role: Any = None,
        from_status: Any = None,
        to_status: Any = None,
    ) -> None:
        super().__init__(message)
        self.role = role
        self.from_status = from_status
        self.to_status = to_status


class TicketValidationError(TicketServiceError, ValueError):
    """Raised for malformed input such as an out of range satisfaction score."""


class TicketConflictError(TicketServiceError):
    """Raised when a concurrent writer changed the ticket first."""


class NotificationNotFoundError(TicketServiceError):
    """Raised when a notification does not exist for the requesting recipient."""
