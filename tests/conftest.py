from __future__ import annotations

from dataclasses import dataclass

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel import select

from pms.core.config import get_settings
from pms.db.models import NotificationTable
from pms.notifications import ConnectionRegistry, NotificationDispatcher, NotificationRepository, NotificationService
from pms.tickets import Actor, AuditLog, DirectoryRepository, Role, TicketRepository, TicketService


@dataclass(frozen=True)
class Cast:
    """Seeded users and project shared by the service level tests."""

    admin: Actor
    requester: Actor
    developer: Actor
    other_developer: Actor
    other_requester: Actor
    project_id: str
    inactive_project_id: str
    inactive_developer_id: str


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def db(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pms.db'}")
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    await TicketRepository(session_factory, engine=engine).ensure_schema()
    try:
        yield engine, session_factory
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db):
    return db[1]


@pytest.fixture
def ticket_repository(db):
    engine, session_factory = db
    return TicketRepository(session_factory, engine=engine)


@pytest.fixture
def directory(session_factory):
    return DirectoryRepository(session_factory)


@pytest.fixture
def notification_repository(session_factory):
    return NotificationRepository(session_factory)


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def dispatcher(registry):
    return NotificationDispatcher(registry)


@pytest_asyncio.fixture
async def cast(directory) -> Cast:
    await directory.add_user(name="Ada Admin", role=Role.ADMIN, user_id="admin-1")
    await directory.add_user(name="Rita Requester", role=Role.END_USER, user_id="requester-1")
    await directory.add_user(name="Omar Requester", role=Role.END_USER, user_id="requester-2")
    await directory.add_user(name="Dana Developer", role=Role.DEVELOPER, user_id="developer-1")
    await directory.add_user(name="Eli Developer", role=Role.DEVELOPER, user_id="developer-2")
    await directory.add_user(name="Ivan Inactive", role=Role.DEVELOPER, user_id="developer-3", is_active=False)
    await directory.add_project(name="Portal", project_id="project-1")
    await directory.add_project(name="Legacy", project_id="project-2", is_active=False)
    return Cast(
        admin=Actor("admin-1", Role.ADMIN),
        requester=Actor("requester-1", Role.END_USER),
        developer=Actor("developer-1", Role.DEVELOPER),
        other_developer=Actor("developer-2", Role.DEVELOPER),
        other_requester=Actor("requester-2", Role.END_USER),
        project_id="project-1",
        inactive_project_id="project-2",
        inactive_developer_id="developer-3",
    )


@pytest.fixture
def ticket_service(ticket_repository, session_factory, directory, dispatcher):
    return TicketService(
        ticket_repository,
        audit_log=AuditLog(session_factory),
        directory=directory,
        dispatcher=dispatcher,
    )


@pytest.fixture
def notification_service(notification_repository):
    return NotificationService(notification_repository, page_size=50)


@pytest.fixture
def notifications_for(session_factory):
    """Every stored notification of a recipient, read or not, oldest first."""

    async def load(recipient_id: str):
        async with session_factory() as session:
            result = await session.execute(
                select(NotificationTable)
                .where(NotificationTable.recipient_id == recipient_id)
                .order_by(NotificationTable.created_at.asc())
            )
            return [NotificationRepository._table_to_notification(row) for row in result.scalars().all()]

    return load
