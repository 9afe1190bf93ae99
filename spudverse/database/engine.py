"""
spudverse.database.engine — Engine, Sessions & the Thread Bridge
=================================================================

Economy services are plain synchronous functions over a SQLAlchemy
session.  The API is async, so every service call crosses into a worker
thread through :func:`run_db` and the event loop keeps serving other
players while a tap batch waits on its row lock.

Usage::

    from spudverse.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # DATABASE_URL from the environment
    init_db(engine)                      # tables + default catalog

    snapshot = await run_db(account_service.get_snapshot, store, clock, user_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session

from spudverse.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build the engine for *url*, falling back to ``DATABASE_URL``.

    PostgreSQL gets a bounded pool (5 steady + 10 burst connections, 10 s
    checkout timeout, hourly recycle).  A ``sqlite:`` URL is accepted for
    local play and is shared across threads.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is available.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Put a PostgreSQL (or sqlite:///spudverse.db) URL in .env."
        )

    if url.startswith("sqlite"):
        engine = create_engine(
            url, echo=False, connect_args={"check_same_thread": False}
        )
        enable_sqlite_savepoints(engine)
    else:
        engine = create_engine(
            url,
            echo=False,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_timeout=10,
            pool_recycle=3600,
        )
    logger.info("Ledger engine ready → %s", engine.url.host or engine.url.database)
    return engine


# ---------------------------------------------------------------------------
# SQLite transaction fix-up
# ---------------------------------------------------------------------------
def enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy, not pysqlite, own BEGIN so SAVEPOINTs nest correctly.

    pysqlite defers BEGIN until the first DML statement, which turns a
    SAVEPOINT issued after plain SELECTs into its own outer transaction.

    Transactions open with ``BEGIN IMMEDIATE``: SQLite has no row locks, so
    each unit takes the database write lock before its first read and
    concurrent units wait for it (up to the driver's busy timeout) instead
    of failing at commit with ``database is locked``.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# ---------------------------------------------------------------------------
# Schema + catalog
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create missing tables, then seed the mission, achievement, upgrade
    and shop catalogs.

    Both steps only add what is absent, so this runs on every API start.
    Deployed databases are migrated with ``alembic upgrade head`` first;
    here ``create_all`` covers tests and a throwaway SQLite file.
    """
    Base.metadata.create_all(engine)
    logger.info("Ledger tables present.")

    from spudverse.database.seed import seed_catalog

    seed_catalog(engine)


@contextmanager
def get_session(engine: Engine):
    """Session scope for one-off maintenance work (seeding, scripts).

    Commits when the block exits cleanly, rolls back and re-raises
    otherwise.  Request-path work goes through
    :meth:`spudverse.database.store.LedgerStore.atomic` instead.
    """
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a synchronous ledger call on the default thread pool."""
    return await asyncio.to_thread(func, *args, **kwargs)
