"""
tests/test_verifier.py — Channel Membership Verification
=========================================================

The Bot API is replaced by an ``httpx.MockTransport`` so every answer
Telegram can give (member, left, unknown user, outage) is exercised
without the network.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from spudverse.errors import ExternalVerificationFailure
from spudverse.services.verifier import StaticVerifier, TelegramChannelVerifier

REQUIREMENTS = {"kind": "telegram_channel", "chat_id": "@spudverse_channel"}


def _run(coro):
    return asyncio.run(coro)


def _verifier(handler) -> TelegramChannelVerifier:
    return TelegramChannelVerifier(
        "123:ABC", default_chat_id="@fallback", transport=httpx.MockTransport(handler),
    )


def _member(status: str, **extra):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True, "result": {"status": status, **extra}})

    return handler


class TestTelegramChannelVerifier:
    @pytest.mark.parametrize("status", ["creator", "administrator", "member"])
    def test_members_pass(self, status):
        assert _run(_verifier(_member(status)).verify(42, REQUIREMENTS)) is True

    @pytest.mark.parametrize("status", ["left", "kicked"])
    def test_non_members_fail(self, status):
        assert _run(_verifier(_member(status)).verify(42, REQUIREMENTS)) is False

    def test_restricted_uses_is_member(self):
        assert _run(_verifier(_member("restricted", is_member=True)).verify(42, REQUIREMENTS))
        assert not _run(
            _verifier(_member("restricted", is_member=False)).verify(42, REQUIREMENTS)
        )

    def test_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"ok": True, "result": {"status": "member"}})

        _run(_verifier(handler).verify(42, {"kind": "telegram_channel"}))
        assert seen["path"] == "/bot123:ABC/getChatMember"
        assert seen["params"] == {"chat_id": "@fallback", "user_id": "42"}

    def test_user_not_found_is_a_definite_no(self):
        def handler(request):
            return httpx.Response(
                400, json={"ok": False, "description": "Bad Request: user not found"},
            )

        assert _run(_verifier(handler).verify(42, REQUIREMENTS)) is False

    def test_api_error_is_unavailable(self):
        def handler(request):
            return httpx.Response(
                403, json={"ok": False, "description": "Forbidden: bot is not a member"},
            )

        with pytest.raises(ExternalVerificationFailure):
            _run(_verifier(handler).verify(42, REQUIREMENTS))

    def test_network_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ExternalVerificationFailure):
            _run(_verifier(handler).verify(42, REQUIREMENTS))

    def test_non_json_is_unavailable(self):
        def handler(request):
            return httpx.Response(502, text="<html>Bad Gateway</html>")

        with pytest.raises(ExternalVerificationFailure):
            _run(_verifier(handler).verify(42, REQUIREMENTS))

    def test_no_channel_configured(self):
        verifier = TelegramChannelVerifier(
            "123:ABC", transport=httpx.MockTransport(_member("member")),
        )
        with pytest.raises(ExternalVerificationFailure):
            _run(verifier.verify(42, {"kind": "telegram_channel"}))


class TestStaticVerifier:
    def test_members(self):
        verifier = StaticVerifier(members={7})
        assert _run(verifier.verify(7, REQUIREMENTS)) is True
        assert _run(verifier.verify(8, REQUIREMENTS)) is False

    def test_keeps_no_per_call_state(self):
        verifier = StaticVerifier(fail=True)
        before = dict(vars(verifier))
        for uid in range(200):
            with pytest.raises(ExternalVerificationFailure):
                _run(verifier.verify(uid, REQUIREMENTS))
        assert vars(verifier) == before

    def test_outage(self):
        with pytest.raises(ExternalVerificationFailure):
            _run(StaticVerifier(fail=True).verify(7, REQUIREMENTS))
