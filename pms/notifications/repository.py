from __future__ import annotations

from typing import Sequence

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from pms.db.models import NotificationTable, ensure_datetime

from .models import Notification, NotificationType


class NotificationRepository:
    """Durable store of per-recipient notification rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def add_all(session: AsyncSession, notifications: Sequence[Notification]) -> None:
        """Stage rows inside the caller's transaction."""

        session.add_all(
            [
                NotificationTable(
                    id=notification.id,
                    recipient_id=notification.recipient_id,
                    type=notification.type.value,
                    message=notification.message,
                    related_ticket_id=notification.related_ticket_id,
                    related_ticket_title=notification.related_ticket_title,
                    is_read=notification.is_read,
                    created_at=notification.created_at,
                )
                for notification in notifications
            ]
        )

    async def list_unread(self, recipient_id: str, *, limit: int) -> list[Notification]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(NotificationTable)
                .where(NotificationTable.recipient_id == recipient_id, NotificationTable.is_read.is_(False))
                .order_by(NotificationTable.created_at.desc())
                .limit(limit)
            )
            return [self._table_to_notification(row) for row in result.scalars().all()]

    async def unread_count(self, recipient_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(NotificationTable)
                .where(NotificationTable.recipient_id == recipient_id, NotificationTable.is_read.is_(False))
            )
            return int(result.scalar_one())

    async def mark_read(self, recipient_id: str, notification_id: str) -> Notification | None:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(NotificationTable, notification_id)
                if row is None or row.recipient_id != recipient_id:
                    return None
                row.is_read = True
                notification = self._table_to_notification(row)
            return notification

    async def mark_all_read(self, recipient_id: str) -> int:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(NotificationTable)
                    .where(NotificationTable.recipient_id == recipient_id, NotificationTable.is_read.is_(False))
                    .values(is_read=True)
                    .execution_options(synchronize_session=False)
                )
            return int(result.rowcount or 0)

    @staticmethod
    def _table_to_notification(row: NotificationTable) -> Notification:
        return Notification(
            id=row.id,
            recipient_id=row.recipient_id,
            type=NotificationType(row.type),
            message=row.message,
            related_ticket_id=row.related_ticket_id,
            related_ticket_title=row.related_ticket_title,
            is_read=bool(row.is_read),
            created_at=ensure_datetime(row.created_at),
        )

