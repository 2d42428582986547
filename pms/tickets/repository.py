from __future__ import annotations

from dataclasses import replace
from typing import Any, Sequence

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from pms.db.models import TicketMessageTable, TicketTable, ensure_datetime, ensure_optional_datetime
from pms.notifications.models import Notification
from pms.notifications.repository import NotificationRepository

from .audit import AuditLog
from .errors import TicketConflictError
from .models import HistoryEntry, Ticket, TicketMessage
from .state import TicketPriority, TicketStatus, TicketType


class TicketRepository:
    """Persistence helper for tickets and their messages.

    Every state change is written together with its history entry and its
    notification rows in a single transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def create_ticket(
        self,
        ticket: Ticket,
        history: HistoryEntry,
        notifications: Sequence[Notification] = (),
    ) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(TicketTable(id=ticket.id, **self._ticket_columns(ticket)))
                # the ticket row must exist before rows referencing it
                await session.flush()
                AuditLog.add(session, history)
                NotificationRepository.add_all(session, notifications)

    async def save_mutation(
        self,
        ticket: Ticket,
        *,
        expected_version: int,
        history: HistoryEntry,
        notifications: Sequence[Notification] = (),
    ) -> Ticket:
        """Persist ``ticket`` only if nobody changed it since ``expected_version`` was read.

        Raises :class:`TicketConflictError` and writes nothing when the stored
        version moved on.
        """

        updated = replace(ticket, version=expected_version + 1)
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(TicketTable)
                    .where(TicketTable.id == ticket.id, TicketTable.version == expected_version)
                    .values(**self._ticket_columns(updated))
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise TicketConflictError(
                        f"Ticket {ticket.id} was modified concurrently; reload it and retry"
                    )
                AuditLog.add(session, history)
                NotificationRepository.add_all(session, notifications)
        return updated

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            return self._table_to_ticket(row)

    async def list_tickets(
        self,
        *,
        created_by: str | None = None,
        assigned_to: str | None = None,
        include_archived: bool = False,
    ) -> list[Ticket]:
        statement = select(TicketTable)
        if created_by is not None:
            statement = statement.where(TicketTable.created_by == created_by)
        if assigned_to is not None:
            statement = statement.where(TicketTable.assigned_to == assigned_to)
        if not include_archived:
            statement = statement.where(TicketTable.is_archived.is_(False))
        statement = statement.order_by(TicketTable.created_at.desc())

        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def add_message(self, message: TicketMessage) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    TicketMessageTable(
                        id=message.id,
                        ticket_id=message.ticket_id,
                        author_id=message.author_id,
                        content=message.content,
                        created_at=message.created_at,
                    )
                )

    async def list_messages(self, ticket_id: str) -> list[TicketMessage]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketMessageTable)
                .where(TicketMessageTable.ticket_id == ticket_id)
                .order_by(TicketMessageTable.created_at.asc())
            )
            return [self._table_to_message(row) for row in result.scalars().all()]

    @staticmethod
    def _ticket_columns(ticket: Ticket) -> dict[str, Any]:
        return {
            "project_id": ticket.project_id,
            "title": ticket.title,
            "description": ticket.description,
            "type": ticket.type.value,
            "priority": ticket.priority.value,
            "status": ticket.status.value,
            "created_by": ticket.created_by,
            "assigned_to": ticket.assigned_to,
            "created_at": ticket.created_at,
            "updated_at": ticket.updated_at,
            "assigned_at": ticket.assigned_at,
            "in_progress_at": ticket.in_progress_at,
            "resolved_at": ticket.resolved_at,
            "reopened_at": ticket.reopened_at,
            "closed_at": ticket.closed_at,
            "reopen_count": ticket.reopen_count,
            "satisfaction_score": ticket.satisfaction_score,
            "satisfaction_comment": ticket.satisfaction_comment,
            "rated_at": ticket.rated_at,
            "is_archived": ticket.is_archived,
            "archived_at": ticket.archived_at,
            "archived_by": ticket.archived_by,
            "version": ticket.version,
        }

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            project_id=row.project_id,
            title=row.title,
            description=row.description,
            type=TicketType(row.type),
            priority=TicketPriority(row.priority),
            status=TicketStatus(row.status),
            created_by=row.created_by,
            assigned_to=row.assigned_to,
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
            assigned_at=ensure_optional_datetime(row.assigned_at),
            in_progress_at=ensure_optional_datetime(row.in_progress_at),
            resolved_at=ensure_optional_datetime(row.resolved_at),
            reopened_at=ensure_optional_datetime(row.reopened_at),
            closed_at=ensure_optional_datetime(row.closed_at),
            reopen_count=int(row.reopen_count or 0),
            satisfaction_score=row.satisfaction_score,
            satisfaction_comment=row.satisfaction_comment,
            rated_at=ensure_optional_datetime(row.rated_at),
            is_archived=bool(row.is_archived),
            archived_at=ensure_optional_datetime(row.archived_at),
            archived_by=row.archived_by,
            version=int(row.version),
        )

    @staticmethod
    def _table_to_message(row: TicketMessageTable) -> TicketMessage:
        return TicketMessage(
            id=row.id,
            ticket_id=row.ticket_id,
            author_id=row.author_id,
            content=row.content,
            created_at=ensure_datetime(row.created_at),
        )
