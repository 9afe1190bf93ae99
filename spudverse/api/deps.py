"""
spudverse.api.deps — FastAPI dependency injection
===================================================
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy import Engine

from spudverse.api.security import decode_session_token, verify_init_data
from spudverse.clock import Clock, SystemClock
from spudverse.config import SpudConfig, load_config
from spudverse.database.engine import create_db_engine
from spudverse.database.store import LedgerStore
from spudverse.errors import Unauthorized
from spudverse.services.verifier import StaticVerifier, TelegramChannelVerifier, Verifier

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


def get_store(engine: Annotated[Engine, Depends(get_engine)]) -> LedgerStore:
    return LedgerStore(engine)


@lru_cache(maxsize=1)
def get_config() -> SpudConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_clock() -> Clock:
    return SystemClock()


def bot_token() -> str:
    return os.getenv("BOT_TOKEN", "").strip()


@lru_cache(maxsize=1)
def get_verifier() -> Verifier:
    token = bot_token()
    if not token:
        logger.warning("BOT_TOKEN is not set — channel missions cannot be verified.")
        return StaticVerifier(fail=True)
    return TelegramChannelVerifier(token, default_chat_id=get_config().channel_chat_id)


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Resolve the caller from ``tma <initData>`` or ``Bearer <jwt>``.

    Returns a dict with ``id`` (int) and whatever profile fields the
    credential carries.  Raises 401 if missing or invalid.
    """
    if not authorization:
        raise Unauthorized("Missing credentials")

    scheme, _, credential = authorization.partition(" ")
    scheme = scheme.lower()
    if scheme == "tma" and credential:
        token = bot_token()
        if not token:
            raise Unauthorized("Telegram authentication is not configured")
        return verify_init_data(credential, token)

    if scheme == "bearer" and credential:
        payload = decode_session_token(credential)
        return {
            "id": int(payload["sub"]),
            "username": payload.get("username"),
            "first_name": payload.get("first_name"),
            "last_name": payload.get("last_name"),
        }

    raise Unauthorized("Unsupported authorization scheme")


def get_current_user_id(user: Annotated[dict, Depends(get_current_user)]) -> int:
    return int(user["id"])
