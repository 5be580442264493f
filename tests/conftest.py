"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy import Engine, create_engine, event

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session

from passport.database.models import Base, User
from passport.database.seed import seed_catalog
from passport.engine.catalog import CatalogStore
from passport.services.notifications import NotificationOutbox
from passport.services.progression_service import ProgressionEngine

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


def _sqlite_transactions(engine: Engine, begin: str = "BEGIN") -> Engine:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT works under pysqlite."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql(begin)

    return engine


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Passport tables.

    Uses StaticPool so all threads share the same in-memory database
    (FastAPI runs sync routes on a worker thread).
    """
    from sqlalchemy.pool import StaticPool

    engine = _sqlite_transactions(create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    ))
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine for tests that need real concurrent connections.

    ``BEGIN IMMEDIATE`` takes the write lock up front, which is the closest
    SQLite gets to a row lock on the state row.
    """
    engine = _sqlite_transactions(
        create_engine(
            f"sqlite:///{tmp_path / 'passport.db'}",
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
        ),
        begin="BEGIN IMMEDIATE",
    )
    Base.metadata.create_all(engine)
    seed_catalog(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def catalog(db_engine: Engine) -> CatalogStore:
    """Seed the default catalog and return a loaded store."""
    seed_catalog(db_engine)
    store = CatalogStore(db_engine)
    store.load_all()
    return store


@pytest.fixture
def outbox() -> MagicMock:
    return MagicMock(spec=NotificationOutbox)


@pytest.fixture
def progression(db_engine: Engine, catalog: CatalogStore, outbox) -> ProgressionEngine:
    return ProgressionEngine(db_engine, catalog, outbox=outbox)


def _insert_user(engine: Engine, user_id: int, email: str | None) -> int:
    with Session(engine) as session:
        session.add(User(id=user_id, email=email, display_name=f"user-{user_id}"))
        session.commit()
    return user_id


@pytest.fixture
def make_user():
    """Factory: ``make_user(engine, user_id, email=...)`` inserts a user row."""

    def _make(engine: Engine, user_id: int = 1, email: str | None = "ana@example.com") -> int:
        return _insert_user(engine, user_id, email)

    return _make


@pytest.fixture
def user_id(db_engine: Engine) -> int:
    return _insert_user(db_engine, 1, "ana@example.com")


@pytest.fixture
def client(progression: ProgressionEngine):
    """FastAPI TestClient wired to the in-memory engine."""
    from fastapi.testclient import TestClient

    from passport.api.deps import get_progression
    from passport.api.main import app

    app.dependency_overrides[get_progression] = lambda: progression
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
