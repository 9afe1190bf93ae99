"""
spudverse.api.auth — Telegram init data → session JWT
=======================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from spudverse.api.deps import bot_token, get_config, get_current_user
from spudverse.api.security import issue_session_token, verify_init_data
from spudverse.config import SpudConfig
from spudverse.errors import Unauthorized

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


class TelegramLogin(BaseModel):
    init_data: str


@router.post("/telegram")
async def telegram_login(body: TelegramLogin, cfg: SpudConfig = Depends(get_config)):
    """Exchange signed Mini App init data for a session token."""
    token = bot_token()
    if not token:
        raise Unauthorized("Telegram authentication is not configured")

    user = verify_init_data(body.init_data, token)
    session_token = issue_session_token(user, hours=cfg.session_hours)
    logger.info("Session issued for Telegram user %d", user["id"])
    return {"token": session_token, "user_id": user["id"], "expires_in": cfg.session_hours * 3600}


@router.get("/me")
async def me(user: dict = Depends(get_current_user)):
    """Return the identity the current credential resolves to."""
    return {
        "id": user["id"],
        "username": user.get("username"),
        "first_name": user.get("first_name"),
        "last_name": user.get("last_name"),
    }
