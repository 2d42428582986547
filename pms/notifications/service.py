from __future__ import annotations

import logging

from pms.tickets.errors import NotificationNotFoundError

from .models import Notification
from .repository import NotificationRepository

logger = logging.getLogger(__name__)


class NotificationService:
    """Recipient-scoped read side of the notification store."""

    def __init__(self, repository: NotificationRepository, *, page_size: int = 50) -> None:
        self._repository = repository
        self._page_size = page_size

    async def list_notifications(self, actor_id: str) -> list[Notification]:
        """Unread notifications, newest first, capped at the page size."""

        return await self._repository.list_unread(actor_id, limit=self._page_size)

    async def unread_count(self, actor_id: str) -> int:
        return await self._repository.unread_count(actor_id)

    async def mark_read(self, actor_id: str, notification_id: str) -> Notification:
        notification = await self._repository.mark_read(actor_id, notification_id)
        if notification is None:
            raise NotificationNotFoundError(f"Notification {notification_id} not found")
        return notification

    async def mark_all_read(self, actor_id: str) -> int:
        updated = await self._repository.mark_all_read(actor_id)
        logger.debug("Marked %d notification(s) read for %s", updated, actor_id)
        return updated
