"""
passport.database.engine — Database Connection, Unit of Work & Async Bridge
============================================================================

The progression engine is written against a **synchronous** SQLAlchemy
engine.  Async callers (the FastAPI app, the background worker) hand the
blocking work to a thread with :func:`run_db`, so every award or
recalculation runs on its own thread with its own transaction.

Transactions are owned by :class:`UnitOfWork`.  There is exactly one way
to open one; code that wants to compose several operations inside a single
transaction passes the open :class:`~sqlalchemy.orm.Session` down instead of
toggling a flag.

Usage::

    from passport.database.engine import UnitOfWork, create_db_engine, init_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    with UnitOfWork(engine) as session:
        session.add(User(id=1, email="ana@example.com"))
        # commit happens on block exit, rollback on exception
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from passport.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

    Pool sizing:
    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`passport.database.models`.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------
class UnitOfWork:
    """One database transaction, always.

    Commits when the ``with`` block exits normally and rolls back when it
    raises.  Objects stay usable after commit (``expire_on_commit=False``)
    so results can be returned to callers once the session is closed.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session: Session | None = None

    def __enter__(self) -> Session:
        self._session = Session(self._engine, expire_on_commit=False)
        self._session.begin()
        return self._session

    def __exit__(self, exc_type, exc, tb) -> None:
        session = self._session
        self._session = None
        if session is None:
            return
        try:
            if exc_type is None:
                session.commit()
            else:
                session.rollback()
        finally:
            session.close()


@contextmanager
def transaction(engine: Engine, session: Session | None = None):
    """Yield *session* unchanged if given, otherwise a fresh :class:`UnitOfWork`.

    When the caller supplies a session it also owns the commit; nothing is
    committed or rolled back here in that case.
    """
    if session is not None:
        yield session
        return
    with UnitOfWork(engine) as owned:
        yield owned


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Every DB call from async code should go through this wrapper::

        result = await run_db(progression.award, user_id, "review_created")

    Under the hood it calls :func:`asyncio.to_thread`, which schedules
    *func* on the default ``ThreadPoolExecutor`` so the event loop is never
    blocked.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
