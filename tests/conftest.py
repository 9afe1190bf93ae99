"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import json
import os
import time

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET and BOT_TOKEN are always set for test runs.
# This must happen before any import of spudverse.api.security which
# validates the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
_TEST_BOT_TOKEN = "123456:TEST-bot-token-for-pytest"
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)
os.environ.setdefault("BOT_TOKEN", _TEST_BOT_TOKEN)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from spudverse.clock import FrozenClock  # noqa: E402
from spudverse.config import SpudConfig  # noqa: E402
from spudverse.database.engine import enable_sqlite_savepoints, init_db  # noqa: E402
from spudverse.database.models import Account  # noqa: E402
from spudverse.database.store import LedgerStore  # noqa: E402
from spudverse.services.verifier import StaticVerifier  # noqa: E402


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all tables and the default catalog.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used by ``run_db`` and the rate
    limiter).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    init_db(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def store(db_engine: Engine) -> LedgerStore:
    return LedgerStore(db_engine)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(1_700_000_000_000)


@pytest.fixture
def config() -> SpudConfig:
    return SpudConfig(
        game_name="SpudVerse",
        bot_username="SpudVerseBot",
        channel_chat_id="@spudverse_channel",
        api_port=8000,
    )


class RecordingVerifier(StaticVerifier):
    """A :class:`StaticVerifier` that remembers who it was asked about."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.calls: list[tuple[int, dict]] = []

    async def verify(self, user_id: int, requirements: dict) -> bool:
        self.calls.append((user_id, requirements))
        return await super().verify(user_id, requirements)


@pytest.fixture
def verifier() -> RecordingVerifier:
    return RecordingVerifier(default=True)


# ---------------------------------------------------------------------------
# Account factories
# ---------------------------------------------------------------------------
@pytest.fixture
def make_account(store, clock, config):
    """Factory: ``make_account(uid, referral_code=None, **profile)`` → snapshot."""
    from spudverse.services.account_service import create_account

    def _make(user_id: int, *, referral_code=None, username: str | None = None, **profile):
        snapshot, _ = create_account(
            store, clock, config, user_id,
            username=username or f"farmer{user_id}",
            referral_code=referral_code,
            **profile,
        )
        return snapshot

    return _make


@pytest.fixture
def patch_account(db_engine):
    """Factory: overwrite stored account columns, e.g. ``patch_account(1, balance=950)``."""

    def _patch(user_id: int, **columns) -> None:
        with Session(db_engine) as session:
            account = session.get(Account, user_id)
            for name, value in columns.items():
                setattr(account, name, value)
            session.commit()

    return _patch


@pytest.fixture
def load_account(db_engine):
    """Factory: fresh read of an account row."""

    def _load(user_id: int) -> Account | None:
        with Session(db_engine, expire_on_commit=False) as session:
            return session.get(Account, user_id)

    return _load


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------
def make_token(user_id: int = 4242, username: str = "fixture_farmer") -> str:
    """Create a session JWT.  Usable as both a fixture helper and a factory."""
    from spudverse.api.security import issue_session_token

    return issue_session_token({"id": user_id, "username": username, "first_name": "Fix"})


def make_init_data(
    user: dict,
    *,
    bot_token: str | None = None,
    auth_date: int | None = None,
) -> str:
    """Signed ``Telegram.WebApp.initData`` for *user*."""
    from urllib.parse import urlencode

    from spudverse.api.security import sign_init_data

    fields = {
        "auth_date": str(int(time.time()) if auth_date is None else auth_date),
        "query_id": "AAHdF6IQAAAAAN0XohDhrOrc",
        "user": json.dumps(user, separators=(",", ":")),
    }
    fields["hash"] = sign_init_data(fields, bot_token or os.environ["BOT_TOKEN"])
    return urlencode(fields)


@pytest.fixture
def auth_headers():
    """Factory: ``auth_headers(uid)`` → Bearer header dict."""

    def _headers(user_id: int = 4242, username: str = "fixture_farmer") -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, username)}"}

    return _headers


@pytest.fixture
def client(store, clock, config, verifier):
    """FastAPI TestClient wired to the in-memory store and frozen clock."""
    from fastapi.testclient import TestClient

    from spudverse.api import deps
    from spudverse.api.main import app

    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_config] = lambda: config
    app.dependency_overrides[deps.get_verifier] = lambda: verifier
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
