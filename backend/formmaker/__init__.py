"""
Formmaker Backend — Application Package Initializer
=====================================================

What: Marks the `formmaker` directory as a Python package.
Who:  Imported by uvicorn (`formmaker.main:app`), Alembic and pytest.

Architecture Note:
    The backend is a layered web API:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │    Services (Business Rules)        │  ← Permission checks, placement,
    │                                     │    membership propagation
    ├─────────────────────────────────────┤
    │   Permission Model (pure helpers)   │  ← can_view / can_edit / can_delete
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async sessions, atomic() blocks
    └─────────────────────────────────────┘

    Side effects that leave the process (email, real-time events) are staged
    on the database session and delivered by the outbox worker after commit.
"""

__version__ = "1.0.0"
