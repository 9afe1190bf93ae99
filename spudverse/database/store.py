"""
spudverse.database.store — Ledger Store (atomic unit of work)
==============================================================

Every mutation of an account goes through :meth:`LedgerStore.atomic`:

    1. Open a session.
    2. Run the caller's function — it locks the account row
       (``SELECT … FOR UPDATE``), reads, decides, and writes.
    3. Commit.  ``accounts.version`` is checked on UPDATE; if a concurrent
       request committed first, SQLAlchemy raises ``StaleDataError``.
    4. On a stale write, roll back and re-run the whole function against
       fresh rows (bounded attempts).  Domain errors roll back and
       propagate untouched.  Any other database error becomes
       :class:`PersistenceFailure`.

The pessimistic lock covers PostgreSQL and the version check covers
multi-instance deployments.  SQLite ignores ``FOR UPDATE``, so its units
open with ``BEGIN IMMEDIATE`` (see
:func:`spudverse.database.engine.enable_sqlite_savepoints`) and queue on the
writer lock.  A unit that still loses a lock race (``database is locked``,
PostgreSQL serialization failure or deadlock) is retried like a stale write.
Either way a tap batch can never be credited against stale energy.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Concatenate, ParamSpec, Protocol, TypeVar

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from spudverse.database.models import Account, Referral
from spudverse.errors import (
    InsufficientBalance,
    PersistenceFailure,
    SpudError,
    UserNotFound,
)

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3

# SQLSTATEs for serialization_failure and deadlock_detected
_RETRYABLE_PGCODES = frozenset({"40001", "40P01"})


def is_lock_conflict(exc: OperationalError) -> bool:
    """True when *exc* means another transaction held the rows, not a fault."""
    if getattr(exc.orig, "pgcode", None) in _RETRYABLE_PGCODES:
        return True
    return "database is locked" in str(exc.orig)


class Store(Protocol):
    """What the services need from persistence.  Callers depend on this,
    never on a concrete backend."""

    def atomic(
        self, func: Callable[Concatenate[Session, P], T], *args: P.args, **kwargs: P.kwargs
    ) -> T: ...

    def read(self) -> Any: ...


class LedgerStore:
    """SQLAlchemy-backed :class:`Store` — PostgreSQL in production,
    SQLite for development and tests."""

    def __init__(self, engine: Engine, *, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        self._engine = engine
        self.max_attempts = max_attempts

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def read(self) -> Iterator[Session]:
        """Yield a session for read-only queries (never committed)."""
        with Session(self._engine) as session:
            yield session

    def atomic(
        self,
        func: Callable[Concatenate[Session, P], T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Run ``func(session, *args, **kwargs)`` as one transaction.

        The function may be executed more than once, so it must derive
        everything from what it reads inside *session*.
        """
        for attempt in range(1, self.max_attempts + 1):
            session = Session(self._engine, expire_on_commit=False)
            try:
                result = func(session, *args, **kwargs)
                session.commit()
                return result
            except StaleDataError:
                session.rollback()
                logger.warning(
                    "Concurrent update in %s (attempt %d/%d) — retrying",
                    getattr(func, "__name__", func), attempt, self.max_attempts,
                )
            except OperationalError as exc:
                session.rollback()
                if not is_lock_conflict(exc):
                    logger.exception("Persistence failure in %s", getattr(func, "__name__", func))
                    raise PersistenceFailure("The ledger could not be updated.") from exc
                logger.warning(
                    "Lock conflict in %s (attempt %d/%d) — retrying",
                    getattr(func, "__name__", func), attempt, self.max_attempts,
                )
            except SpudError:
                session.rollback()
                raise
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception("Persistence failure in %s", getattr(func, "__name__", func))
                raise PersistenceFailure("The ledger could not be updated.") from exc
            finally:
                session.close()

        raise PersistenceFailure(
            "Too many concurrent updates to this account; please retry."
        )


# ---------------------------------------------------------------------------
# Session-level primitives used inside atomic units
# ---------------------------------------------------------------------------
def lock_account(session: Session, user_id: int) -> Account | None:
    """Fetch an account row with a write lock (``FOR UPDATE``).

    Returns ``None`` for unknown users.
    """
    return session.scalar(
        select(Account).where(Account.user_id == user_id).with_for_update()
    )


def require_account(session: Session, user_id: int) -> Account:
    """Like :func:`lock_account` but raises :class:`UserNotFound`."""
    account = lock_account(session, user_id)
    if account is None:
        raise UserNotFound(f"No account for user {user_id}.")
    return account


def insert_if_absent(session: Session, row: Any) -> bool:
    """Insert *row* unless a unique/PK constraint says it already exists.

    Uses a SAVEPOINT so a duplicate leaves the outer transaction alive.
    Returns True if the row was inserted.
    """
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(row)
            session.flush()
    except IntegrityError:
        return False
    return True


# ---------------------------------------------------------------------------
# Ledger arithmetic
# ---------------------------------------------------------------------------
def credit(account: Account, amount: int) -> None:
    """Earnings raise both the spendable balance and the lifetime total."""
    if amount < 0:
        raise ValueError("credit amount cannot be negative")
    account.balance += amount
    account.total_farmed += amount


def debit(account: Account, amount: int) -> None:
    """Spending lowers the balance only.  Raises :class:`InsufficientBalance`."""
    if amount < 0:
        raise ValueError("debit amount cannot be negative")
    if account.balance < amount:
        raise InsufficientBalance(account.balance, amount)
    account.balance -= amount


# ---------------------------------------------------------------------------
# Read primitives
# ---------------------------------------------------------------------------
def count_referrals(session: Session, user_id: int) -> int:
    return session.scalar(
        select(func.count()).select_from(Referral).where(Referral.referrer_id == user_id)
    ) or 0


def compute_rank(session: Session, balance: int) -> int:
    """1-based leaderboard position for *balance* (ties share a rank)."""
    ahead = session.scalar(
        select(func.count()).select_from(Account).where(Account.balance > balance)
    ) or 0
    return ahead + 1
