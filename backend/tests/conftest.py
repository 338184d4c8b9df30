"""
Formmaker Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets a fresh in-memory SQLite database (aiosqlite) with the
       full schema, a service container wired to a fake mail client, and
       helpers that create users.

Fixture Hierarchy:
    db_engine ── db_session ── services ── make_user / alice / bob / carol
                     └──────────────────── api_client (routes wired to db_engine)
"""

import os

# Override settings BEFORE any formmaker import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["MAIL_API_KEY"] = ""
os.environ["FRONTEND_URL"] = "http://forms.test"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import formmaker.models  # noqa: F401
from formmaker.container import Services, build_services
from formmaker.database import Base, get_db_session
from formmaker.schemas.form import FormCreate
from formmaker.schemas.user import UserCreate
from formmaker.services.mail_service import MailService
from formmaker.services.realtime import RealtimeHub


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    """
    In-memory SQLite shared by every session of one test.

    pysqlite/aiosqlite issue BEGIN lazily and break SAVEPOINT handling;
    the two listeners below take over transaction control so that
    `atomic()` gets real savepoints, the same as on PostgreSQL.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ══════════════════════════════════════════════════════════════════════════
# Services
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_mail():
    """A MailService stand-in that records messages instead of posting them."""
    mail = MagicMock(spec=MailService)
    mail.enabled = True
    mail.send = AsyncMock(return_value=True)
    mail.aclose = AsyncMock()
    return mail


@pytest.fixture
def hub():
    return RealtimeHub()


@pytest.fixture
def services(mock_mail, hub) -> Services:
    return build_services(mail=mock_mail, hub=hub)


@pytest.fixture
def make_user(db_session, services):
    """
    Factory fixture: `await make_user("alice")` signs up alice@example.com.
    """
    async def _make(name: str):
        return await services.users.create_user(
            db_session,
            UserCreate(email=f"{name}@example.com", username=name, password="correct-horse"),
        )
    return _make


@pytest_asyncio.fixture
async def alice(make_user):
    return await make_user("alice")


@pytest_asyncio.fixture
async def bob(make_user):
    return await make_user("bob")


@pytest_asyncio.fixture
async def carol(make_user):
    return await make_user("carol")


@pytest.fixture
def sample_elements():
    """Two elements in the stored shape: a short-answer and a date question."""
    return [
        {
            "id": "el-name",
            "type": "shortAnswer",
            "config": {"fieldLabel": "Your name"},
            "fields": [{"id": "name", "name": "name"}],
            "gridSize": {"x": 0, "y": 0, "w": 12, "h": 2},
        },
        {
            "id": "el-date",
            "type": "date",
            "config": {"fieldLabel": "Visit date"},
            "fields": [{"id": "date", "name": "date"}],
            "gridSize": {"x": 0, "y": 2, "w": 12, "h": 2},
        },
    ]


@pytest.fixture
def form_payload(sample_elements):
    return FormCreate(title="Customer survey", elements=sample_elements)


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def api_client(services, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTPX client against a fresh app. Requests run in their own sessions on
    the test database with the production commit / rollback semantics.
    """
    from formmaker.main import create_app

    app = create_app(services)

    async def _test_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
                services.outbox.release(session)
            except Exception:
                await session.rollback()
                services.outbox.discard(session)
                raise

    app.dependency_overrides[get_db_session] = _test_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
