from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping


class NotificationType(str, Enum):
    TICKET_CREATED = "ticket_created"
    TICKET_ASSIGNED = "ticket_assigned"
    TICKET_RESOLVED = "ticket_resolved"
    TICKET_REOPENED = "ticket_reopened"
    TICKET_CLOSED = "ticket_closed"


_MESSAGE_TEMPLATES: Mapping[NotificationType, str] = {
    NotificationType.TICKET_CREATED: "New ticket created: {title}",
    NotificationType.TICKET_ASSIGNED: "Ticket assigned to you: {title}",
    NotificationType.TICKET_RESOLVED: "Your ticket has been resolved: {title}",
    NotificationType.TICKET_REOPENED: "Ticket reopened: {title}",
    NotificationType.TICKET_CLOSED: "Your ticket has been closed: {title}",
}

# Matches the width of the ``notifications.message`` column.
MAX_MESSAGE_LENGTH = 500


@dataclass(slots=True)
class Notification:
    """Alert addressed to a single recipient about a ticket."""

    id: str
    recipient_id: str
    type: NotificationType
    message: str
    related_ticket_id: str
    related_ticket_title: str
    is_read: bool
    created_at: datetime

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "message": self.message,
            "related_ticket_id": self.related_ticket_id,
            "related_ticket_title": self.related_ticket_title,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat(),
        }


def build_notification(
    *,
    recipient_id: str,
    type: NotificationType,
    ticket_id: str,
    ticket_title: str,
    created_at: datetime,
) -> Notification:
    message = _MESSAGE_TEMPLATES[type].format(title=ticket_title)
    return Notification(
        id=str(uuid.uuid4()),
        recipient_id=recipient_id,
        type=type,
        message=message[:MAX_MESSAGE_LENGTH],
        related_ticket_id=ticket_id,
        related_ticket_title=ticket_title,
        is_read=False,
        created_at=created_at,
    )
