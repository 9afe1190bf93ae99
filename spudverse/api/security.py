"""
spudverse.api.security — Session Tokens & Telegram Init Data
=============================================================

Two ways to prove who you are:

* ``Authorization: tma <initData>`` — the raw ``Telegram.WebApp.initData``
  string, signed by Telegram with a key derived from ``BOT_TOKEN``.
* ``Authorization: Bearer <jwt>`` — an HS256 session token issued by
  ``POST /api/auth/telegram`` in exchange for valid init data.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import os
import time
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qsl

import jwt
from jwt.exceptions import InvalidTokenError

from spudverse.errors import Unauthorized

logger = logging.getLogger(__name__)

_WEAK_SECRETS = frozenset({
    "spudverse-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"

# Init data older than this is refused
INIT_DATA_MAX_AGE_SECONDS = 24 * 3600


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------
def issue_session_token(user: dict, *, hours: int = 24) -> str:
    payload = {
        "sub": str(user["id"]),
        "username": user.get("username"),
        "first_name": user.get("first_name"),
        "last_name": user.get("last_name"),
        "exp": datetime.now(UTC) + timedelta(hours=hours),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_session_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise Unauthorized("Invalid token")
    if not str(payload.get("sub", "")).isdigit():
        raise Unauthorized("Invalid token")
    return payload


# ---------------------------------------------------------------------------
# Telegram WebApp init data
# ---------------------------------------------------------------------------
def sign_init_data(fields: dict[str, str], bot_token: str) -> str:
    """Hash for *fields* the way Telegram computes it.

    secret_key = HMAC_SHA256(key=b"WebAppData", msg=bot_token)
    hash       = hex(HMAC_SHA256(key=secret_key, msg=data_check_string))
    """
    data_check_string = "\n".join(f"{k}={fields[k]}" for k in sorted(fields))
    secret_key = hmac.new(b"WebAppData", bot_token.encode("utf-8"), hashlib.sha256).digest()
    return hmac.new(secret_key, data_check_string.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_init_data(
    init_data: str,
    bot_token: str,
    *,
    max_age_seconds: int = INIT_DATA_MAX_AGE_SECONDS,
    now: float | None = None,
) -> dict:
    """Validate *init_data* and return the Telegram ``user`` object.

    Raises :class:`Unauthorized` on a bad signature, stale ``auth_date`` or
    missing user.
    """
    try:
        fields = dict(parse_qsl(init_data, strict_parsing=True))
    except ValueError:
        raise Unauthorized("Malformed init data")

    provided_hash = fields.pop("hash", "")
    if not provided_hash or not hmac.compare_digest(
        sign_init_data(fields, bot_token), provided_hash
    ):
        raise Unauthorized("Init data signature mismatch")

    auth_date = fields.get("auth_date", "")
    current = time.time() if now is None else now
    if not auth_date.isdigit() or current - int(auth_date) > max_age_seconds:
        raise Unauthorized("Init data expired")

    try:
        user = json.loads(fields.get("user", ""))
    except json.JSONDecodeError:
        raise Unauthorized("Init data carries no user")
    if not isinstance(user, dict) or not isinstance(user.get("id"), int):
        raise Unauthorized("Init data carries no user")
    return user
