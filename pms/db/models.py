"""SQLModel table definitions for the PMS data layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


class UserTable(SQLModel, table=True):
    """Directory entry for a person who can act on tickets."""

    __tablename__ = "users"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    role: str = Field(sa_column=Column(String(50), nullable=False, index=True))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ProjectTable(SQLModel, table=True):
    """Project a ticket is filed against."""

    __tablename__ = "projects"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketTable(SQLModel, table=True):
    """Current state of a ticket; ``version`` guards concurrent writers."""

    __tablename__ = "tickets"

    id: str = Field(primary_key=True, index=True)
    project_id: str = Field(sa_column=Column(String(36), ForeignKey("projects.id"), nullable=False))
    title: str = Field(sa_column=Column(String(255), nullable=False))
    description: str = Field(sa_column=Column(Text, nullable=False))
    type: str = Field(sa_column=Column(String(50), nullable=False))
    priority: str = Field(sa_column=Column(String(50), nullable=False))
    status: str = Field(sa_column=Column(String(50), nullable=False, index=True))
    created_by: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    assigned_to: str | None = Field(default=None, sa_column=Column(String(36), nullable=True, index=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    assigned_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    in_progress_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    resolved_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    reopened_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    closed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    reopen_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    satisfaction_score: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    satisfaction_comment: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    rated_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    is_archived: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    archived_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    archived_by: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    version: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))


class TicketHistoryTable(SQLModel, table=True):
    """Append-only audit trail of ticket mutations."""

    __tablename__ = "ticket_history"

    id: str = Field(primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    action: str = Field(sa_column=Column(String(50), nullable=False))
    old_value: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    new_value: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    comment: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    actor_id: str = Field(sa_column=Column(String(36), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketMessageTable(SQLModel, table=True):
    """Individual messages belonging to a ticket."""

    __tablename__ = "ticket_messages"

    id: str = Field(primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    author_id: str = Field(sa_column=Column(String(36), nullable=False))
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class NotificationTable(SQLModel, table=True):
    """Per-recipient notification produced by a ticket mutation."""

    __tablename__ = "notifications"

    id: str = Field(primary_key=True, index=True)
    recipient_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    type: str = Field(sa_column=Column(String(50), nullable=False))
    message: str = Field(sa_column=Column(String(500), nullable=False))
    related_ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    )
    related_ticket_title: str = Field(default="", sa_column=Column(String(255), nullable=False, default=""))
    is_read: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


def ensure_datetime(value: datetime | None) -> datetime:
    """Attach UTC to naive timestamps returned by backends without tz support."""

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def ensure_optional_datetime(value: datetime | None) -> datetime | None:
    return None if value is None else ensure_datetime(value)
