from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from pms.api.routes import notifications, ping, tickets
from pms.core.config import get_settings
from pms.core.logging import configure_logging, init_tracer, shutdown_tracer
from pms.middleware import RBACMiddleware
from pms.notifications import ConnectionRegistry, NotificationDispatcher, NotificationRepository, NotificationService
from pms.tickets import AuditLog, DirectoryRepository, TicketRepository, TicketService


def to_async_dsn(dsn: str) -> str:
    """Ensure a PostgreSQL DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider

    registry = ConnectionRegistry()
    dispatcher = NotificationDispatcher(registry)
    app.state.notification_dispatcher = dispatcher

    db_engine = None
    app.state.db_engine = None
    app.state.db_session_factory = None
    try:
        db_engine = create_async_engine(to_async_dsn(settings.database_url))
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
        ticket_repository = TicketRepository(session_factory, engine=db_engine)
        await ticket_repository.ensure_schema()
        app.state.ticket_service = TicketService(
            ticket_repository,
            audit_log=AuditLog(session_factory),
            directory=DirectoryRepository(session_factory),
            dispatcher=dispatcher,
        )
        app.state.notification_service = NotificationService(
            NotificationRepository(session_factory),
            page_size=settings.notification_page_size,
        )
        app.state.db_engine = db_engine
        app.state.db_session_factory = session_factory
    except Exception:  # pragma: no cover - service initialisation best effort
        logger.exception("Failed to initialise the ticket database")
        app.state.ticket_service = None
        app.state.notification_service = None
        if db_engine is not None:
            await db_engine.dispose()
            db_engine = None
    try:
        yield
    finally:
        await dispatcher.drain()
        if db_engine is not None:
            await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(RBACMiddleware)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(notifications.router)
    return app


app = create_app()
