"""
Database Connection and Session Management
"""
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.core.config import settings


def _engine_kwargs() -> dict:
    """Bounded statement/lock waits for PostgreSQL connections.

    Both limits are also re-applied per unit of work with SET LOCAL, this just
    makes sure a session opened outside a UnitOfWork cannot hang either.
    """
    kwargs = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if settings.DATABASE_URL.startswith("postgresql+asyncpg"):
        kwargs["connect_args"] = {
            "server_settings": {
                "statement_timeout": str(settings.DB_STATEMENT_TIMEOUT_MS),
                "lock_timeout": str(settings.DB_LOCK_TIMEOUT_MS),
            }
        }
    return kwargs


engine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs())

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

Base = declarative_base()


async def get_db() -> AsyncSession:
    """Dependency for getting database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def get_task_session_factory():
    """
    Create a fresh engine + session factory for Celery tasks.

    The engine is bound to the event loop the task runs in, avoiding the
    "attached to a different loop" error that module-level engines cause
    when reused across Celery task loops. A factory (not a single session)
    is yielded so sweeps can open one unit of work per item.
    """
    task_engine = create_async_engine(
        settings.DATABASE_URL,
        pool_size=5,
        max_overflow=10,
        **_engine_kwargs(),
    )
    task_session_maker = async_sessionmaker(
        bind=task_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    try:
        yield task_session_maker
    finally:
        await task_engine.dispose()
