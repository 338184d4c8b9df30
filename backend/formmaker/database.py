"""
Formmaker Backend — Database Session Management
=================================================

What:  Async SQLAlchemy engine, session factory, request-scoped session
       dependency and the `atomic()` transaction helper.
How:   One session per request. The dependency commits on success and rolls
       back on error; services wrap multi-entity writes in `atomic()` so that
       a failure half-way through never leaves partial writes behind, even
       when the caller keeps using the session afterwards.

Transaction Boundaries:
    atomic(session) opens a transaction when none is active, or a SAVEPOINT
    when the session already began one (the common case: a route loads the
    entity first, then calls a service). Either way the block is all-or-nothing.

Notification Release:
    Notifications staged on the session (see services/outbox.py) are handed to
    the outbox only after the outer commit succeeded. A rollback discards them.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from formmaker.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool options for server databases; SQLite picks its own pool class."""
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": settings.db_pool_pre_ping,
        "pool_recycle": 3600,
    }


# ── Engine Configuration ──────────────────────────────────────────────────
engine = create_async_engine(
    settings.database_url,
    echo=settings.log_level == "DEBUG",
    **_engine_options(settings.database_url),
)

# expire_on_commit=False: objects stay readable after commit without a
# lazy reload, which async sessions cannot do implicitly.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all ORM models; its metadata feeds Alembic."""
    pass


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a block of writes as a single all-or-nothing unit.

    Usage:
        async with atomic(db):
            ...several dependent writes...

    Any exception raised inside the block rolls back every write made in it
    and is re-raised unchanged.
    """
    if session.in_transaction():
        async with session.begin_nested():
            yield session
            await session.flush()
    else:
        async with session.begin():
            yield session
            await session.flush()


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    On success the transaction is committed and staged notifications are
    released to the outbox; on any error the transaction is rolled back and
    staged notifications are dropped.
    """
    outbox = request.app.state.services.outbox
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
            outbox.release(session)
        except Exception:
            await session.rollback()
            outbox.discard(session)
            raise
        finally:
            await session.close()


async def dispose_engine() -> None:
    """Closes all pooled connections; called on application shutdown."""
    await engine.dispose()
