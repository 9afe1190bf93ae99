"""
spudverse.services.verifier — External Mission Verification
============================================================

Some mission requirements can only be answered by Telegram (is the user a
member of the channel?).  Services depend on the :class:`Verifier`
protocol; the API wires in :class:`TelegramChannelVerifier` when a bot
token is configured and a :class:`StaticVerifier` otherwise.

A verifier returns True/False for a definite answer and raises
:class:`ExternalVerificationFailure` when it cannot tell.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from spudverse.errors import ExternalVerificationFailure

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"

MEMBER_STATUSES = frozenset({"creator", "administrator", "member", "restricted"})


class Verifier(Protocol):
    async def verify(self, user_id: int, requirements: dict) -> bool: ...


class TelegramChannelVerifier:
    """Checks channel membership with the Bot API ``getChatMember`` call."""

    def __init__(
        self,
        bot_token: str,
        *,
        default_chat_id: str | None = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._bot_token = bot_token
        self.default_chat_id = default_chat_id
        self.timeout = timeout
        self._transport = transport

    async def verify(self, user_id: int, requirements: dict) -> bool:
        chat_id = requirements.get("chat_id") or self.default_chat_id
        if not chat_id:
            raise ExternalVerificationFailure("No channel configured for this mission.")

        url = f"{TELEGRAM_API}/bot{self._bot_token}/getChatMember"
        try:
            transport = self._transport or httpx.AsyncHTTPTransport(retries=1)
            async with httpx.AsyncClient(timeout=self.timeout, transport=transport) as client:
                resp = await client.get(url, params={"chat_id": chat_id, "user_id": user_id})
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("getChatMember failed for user %d in %s: %s", user_id, chat_id, exc)
            raise ExternalVerificationFailure(
                "Channel membership could not be checked; try again later."
            ) from exc

        if data.get("ok"):
            status = data.get("result", {}).get("status", "")
            if status == "restricted":
                return bool(data["result"].get("is_member", False))
            return status in MEMBER_STATUSES

        description = str(data.get("description", ""))
        # Telegram answers 400 "user not found" for users who never joined
        if resp.status_code == 400 and "user not found" in description.lower():
            return False

        logger.warning(
            "getChatMember error for user %d in %s: %s %s",
            user_id, chat_id, resp.status_code, description,
        )
        raise ExternalVerificationFailure(
            "Channel membership could not be checked; try again later.",
        )


class StaticVerifier:
    """Answers from a fixed membership set (development and tests).

    ``StaticVerifier(default=True)`` approves everyone;
    ``StaticVerifier(members={42})`` approves only user 42;
    ``StaticVerifier(fail=True)`` behaves like an outage.
    """

    def __init__(
        self,
        members: set[int] | None = None,
        *,
        default: bool = False,
        fail: bool = False,
    ) -> None:
        self.members = members or set()
        self.default = default
        self.fail = fail

    async def verify(self, user_id: int, requirements: dict) -> bool:
        if self.fail:
            raise ExternalVerificationFailure("Verifier unavailable.")
        return self.default or user_id in self.members
