"""Read access to the user and project directory owned by other services."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from pms.db.models import ProjectTable, UserTable

from .state import Role


@dataclass(slots=True, frozen=True)
class DirectoryUser:
    id: str
    name: str
    role: Role
    is_active: bool


@dataclass(slots=True, frozen=True)
class Project:
    id: str
    name: str
    is_active: bool


class Directory(Protocol):
    async def get_user(self, user_id: str) -> DirectoryUser | None:
        ...

    async def get_project(self, project_id: str) -> Project | None:
        ...

    async def list_admin_ids(self) -> list[str]:
        ...


class DirectoryRepository:
    """SQL backed :class:`Directory` over the ``users`` and ``projects`` tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_user(self, user_id: str) -> DirectoryUser | None:
        async with self._session_factory() as session:
            row = await session.get(UserTable, user_id)
            return None if row is None else self._table_to_user(row)

    async def get_project(self, project_id: str) -> Project | None:
        async with self._session_factory() as session:
            row = await session.get(ProjectTable, project_id)
            if row is None:
                return None
            return Project(id=row.id, name=row.name, is_active=bool(row.is_active))

    async def list_admin_ids(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserTable.id)
                .where(UserTable.role == Role.ADMIN.value, UserTable.is_active.is_(True))
                .order_by(UserTable.id)
            )
            return [str(value) for value in result.scalars().all()]

    async def add_user(
        self,
        *,
        name: str,
        role: Role,
        user_id: str | None = None,
        is_active: bool = True,
    ) -> DirectoryUser:
        """Seed helper; user management itself lives outside this service."""

        row = UserTable(id=user_id or str(uuid.uuid4()), name=name, role=role.value, is_active=is_active)
        user = self._table_to_user(row)
        async with self._session_factory() as session:
            async with session.begin():
                session.add(row)
        return user

    async def add_project(self, *, name: str, project_id: str | None = None, is_active: bool = True) -> Project:
        """Seed helper; project management itself lives outside this service."""

        row = ProjectTable(id=project_id or str(uuid.uuid4()), name=name, is_active=is_active)
        project = Project(id=row.id, name=name, is_active=is_active)
        async with self._session_factory() as session:
            async with session.begin():
                session.add(row)
        return project

    @staticmethod
    def _table_to_user(row: UserTable) -> DirectoryUser:
        return DirectoryUser(id=row.id, name=row.name, role=Role(row.role), is_active=bool(row.is_active))
