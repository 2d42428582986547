"""Append-only audit trail of ticket mutations."""

from __future__ import annotations

from typing import Collection, Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from pms.db.models import TicketHistoryTable, ensure_datetime

from .models import HistoryEntry, TicketAction
from .state import Role, TicketStateMachine, TicketStatus


class AuditLog:
    """Ordered writes and action-filtered reads of :class:`HistoryEntry` rows.

    Entries are only ever inserted. Writers that change ticket state stage the
    entry through :meth:`add` inside their own transaction so the two commit
    together.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def add(session: AsyncSession, entry: HistoryEntry) -> None:
        session.add(
            TicketHistoryTable(
                id=entry.id,
                ticket_id=entry.ticket_id,
                action=entry.action.value,
                old_value=entry.old_value,
                new_value=entry.new_value,
                comment=entry.comment,
                actor_id=entry.actor_id,
                created_at=entry.created_at,
            )
        )

    async def append(self, entry: HistoryEntry) -> None:
        """Write a single entry in its own transaction."""

        async with self._session_factory() as session:
            async with session.begin():
                self.add(session, entry)

    async def list_entries(
        self,
        ticket_id: str,
        *,
        actions: Collection[TicketAction] | None = None,
    ) -> list[HistoryEntry]:
        """Entries of ``ticket_id`` in chronological order, optionally filtered."""

        statement = select(TicketHistoryTable).where(TicketHistoryTable.ticket_id == ticket_id)
        if actions is not None:
            if not actions:
                return []
            statement = statement.where(TicketHistoryTable.action.in_([action.value for action in actions]))
        statement = statement.order_by(TicketHistoryTable.created_at.asc())

        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_entry(row) for row in result.scalars().all()]

    @staticmethod
    def _table_to_entry(row: TicketHistoryTable) -> HistoryEntry:
        return HistoryEntry(
            id=row.id,
            ticket_id=row.ticket_id,
            action=TicketAction(row.action),
            old_value=row.old_value,
            new_value=row.new_value,
            comment=row.comment,
            actor_id=row.actor_id,
            created_at=ensure_datetime(row.created_at),
        )


_STATUS_ACTIONS = frozenset(
    {
        TicketAction.STATUS_CHANGED,
        TicketAction.RESOLVED,
        TicketAction.REOPENED,
        TicketAction.CLOSED,
    }
)


def replay_statuses(entries: Iterable[HistoryEntry]) -> list[TicketStatus]:
    """Rebuild the sequence of statuses a ticket went through from its history.

    Assignment entries carry assignee ids, so their status effect is derived
    from the assignment rules of the transition table.
    """

    statuses: list[TicketStatus] = []
    for entry in entries:
        if entry.action is TicketAction.CREATED:
            statuses.append(TicketStateMachine.initial_state())
        elif entry.action in _STATUS_ACTIONS and entry.new_value is not None:
            statuses.append(TicketStatus(entry.new_value))
        elif entry.action in (TicketAction.ASSIGNED, TicketAction.REASSIGNED) and statuses:
            target = TicketStateMachine.assignment_target(Role.ADMIN, statuses[-1])
            if target is not statuses[-1]:
                statuses.append(target)
    return statuses
