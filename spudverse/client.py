"""
spudverse.client — Async HTTP Client for the Economy API
=========================================================

What a Mini App (or a bot, or a load test) needs to play against the API:

* taps are predicted locally with the same energy math the server uses
  and flushed in batches by :class:`~spudverse.engine.reward.TapBatcher`;
* every response replaces the local state wholesale, so prediction drift
  never outlives one round-trip;
* a timed-out flush is resolved by re-reading the account and checking
  whether ``last_tap_time`` moved, so taps are neither lost nor sent twice.

Usage::

    async with SpudClient("https://spud.example", init_data=raw) as client:
        await client.refresh()
        client.tap()
        await client.flush_if_due()
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from spudverse.clock import Clock, SystemClock
from spudverse.engine.energy import compute_current_energy
from spudverse.engine.reward import ComboMeter, TapBatcher, predicted_tap_reward
from spudverse.errors import SpudError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


class ClientError(SpudError):
    """Non-2xx answer from the API that the client cannot recover from."""

    def __init__(self, status_code: int, payload: dict[str, Any]) -> None:
        details = {k: v for k, v in payload.items() if k not in ("error", "message")}
        super().__init__(payload.get("message", f"HTTP {status_code}"), **details)
        self.status_code = status_code
        self.code = payload.get("error", "error")


class SpudClient:
    def __init__(
        self,
        base_url: str,
        *,
        init_data: str | None = None,
        token: str | None = None,
        clock: Clock | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif init_data:
            headers["Authorization"] = f"tma {init_data}"
        self._http = httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=timeout, transport=transport,
        )
        self.clock = clock or SystemClock()
        self.batcher = TapBatcher()
        self.combo = ComboMeter()
        self.state: dict[str, Any] = {}
        self._tap_mark_before_flush: int | None = None

    async def __aenter__(self) -> SpudClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    async def _request(self, method: str, path: str, **kwargs) -> dict:
        resp = await self._http.request(method, path, **kwargs)
        payload = resp.json() if resp.content else {}
        if resp.is_success:
            return payload
        raise ClientError(resp.status_code, payload if isinstance(payload, dict) else {})

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------
    async def refresh(self) -> dict:
        """Replace local state with the server's snapshot."""
        self.state = await self._request("GET", "/api/user")
        self.state["energy_mark"] = self.clock.now_ms()
        return self.state

    async def create(self, referral_code: str | None = None) -> dict:
        self.state = await self._request(
            "POST", "/api/user/create", json={"referral_code": referral_code},
        )
        self.state["energy_mark"] = self.clock.now_ms()
        return self.state

    async def login(self, init_data: str) -> str:
        """Swap init data for a session token and use it from now on."""
        data = await self._request("POST", "/api/auth/telegram", json={"init_data": init_data})
        self._http.headers["Authorization"] = f"Bearer {data['token']}"
        return data["token"]

    # ------------------------------------------------------------------
    # Local prediction
    # ------------------------------------------------------------------
    def predicted_energy(self) -> int:
        """Energy the player sees: server state regenerated to now, minus
        taps not yet confirmed."""
        if not self.state:
            return 0
        reading = compute_current_energy(
            self.state["energy"],
            self.state.get("energy_mark", self.clock.now_ms()),
            self.state["regen_rate"],
            self.state["max_energy"],
            self.clock.now_ms(),
        )
        return max(0, reading.energy - self._unconfirmed_taps())

    def predicted_balance(self) -> int:
        return self.state.get("balance", 0) + self._unconfirmed_taps() * self.state.get("per_tap", 1)

    def _unconfirmed_taps(self) -> int:
        count = self.batcher.pending
        if self.batcher.in_flight is not None:
            count += self.batcher.in_flight.tap_count
        if self.batcher.ambiguous is not None:
            count += self.batcher.ambiguous.tap_count
        return count

    def tap(self) -> int:
        """Register one tap locally.  Returns the SPUD shown, 0 if no energy."""
        if self.predicted_energy() < 1:
            return 0
        combo = self.combo.tap(self.clock.now_ms())
        self.batcher.add(1)
        return predicted_tap_reward(self.state.get("per_tap", 1), combo)

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------
    async def flush_if_due(self) -> dict | None:
        if self.batcher.ambiguous is not None:
            await self.reconcile()
        if not self.batcher.due(self.clock.now_ms()):
            return None
        return await self.flush()

    async def flush(self) -> dict | None:
        """Send pending taps as one batch.

        Returns the server's tap result, or ``None`` if nothing was
        confirmed.
        """
        ticket = self.batcher.begin_flush(self.clock.now_ms())
        if ticket is None:
            return None

        self._tap_mark_before_flush = self.state.get("last_tap_time")
        body = {
            "tap_count": ticket.tap_count,
            "per_tap": self.state.get("per_tap"),
            "combo": self.combo.combo,
        }
        try:
            resp = await self._http.post("/api/tap", json=body)
        except httpx.TimeoutException:
            logger.warning("Tap flush of %d timed out — reconciling", ticket.tap_count)
            self.batcher.mark_ambiguous()
            return None
        except httpx.HTTPError as exc:
            logger.warning("Tap flush of %d failed: %s — requeued", ticket.tap_count, exc)
            self.batcher.requeue()
            return None

        payload = resp.json() if resp.content else {}
        if resp.is_success:
            self.batcher.confirm()
            self._apply_tap_result(payload)
            return payload

        if resp.status_code == 400 and payload.get("error") == "insufficient_energy":
            self.batcher.discard()
            self.state["energy"] = payload.get("current_energy", 0)
            self.state["energy_mark"] = self.clock.now_ms()
            return None

        logger.warning("Tap flush rejected (%d) — requeued", resp.status_code)
        self.batcher.requeue()
        return None

    async def reconcile(self) -> bool:
        """Decide whether a timed-out batch reached the server.

        Returns True if the batch was applied.
        """
        if self.batcher.ambiguous is None:
            return False
        try:
            await self.refresh()
        except httpx.HTTPError:
            return False
        applied = self.state.get("last_tap_time") != self._tap_mark_before_flush
        self.batcher.reconcile(applied)
        return applied

    def _apply_tap_result(self, result: dict) -> None:
        self.state.update(
            balance=result["new_balance"],
            energy=result["new_energy"],
            max_energy=result["max_energy"],
            total_farmed=result.get("total_farmed", self.state.get("total_farmed", 0)),
            level=result.get("level", self.state.get("level", 1)),
            per_tap=result.get("per_tap", self.state.get("per_tap", 1)),
            energy_mark=self.clock.now_ms(),
        )
        if "last_tap_time" in result:
            self.state["last_tap_time"] = result["last_tap_time"]

    # ------------------------------------------------------------------
    # Everything else
    # ------------------------------------------------------------------
    async def energy(self) -> dict:
        return await self._request("GET", "/api/energy")

    async def missions(self) -> list[dict]:
        return await self._request("GET", "/api/missions")

    async def verify_mission(self, mission_id: int) -> dict:
        return await self._request(
            "POST", "/api/missions/verify-channel", json={"mission_id": mission_id},
        )

    async def claim_mission(self, mission_id: int) -> dict:
        result = await self._request("POST", "/api/missions/claim", json={"mission_id": mission_id})
        self.state["balance"] = result["new_balance"]
        return result

    async def buy_upgrade(self, upgrade_name: str) -> dict:
        return await self._request(
            "POST", "/api/upgrades/purchase", json={"upgrade_name": upgrade_name},
        )

    async def buy_item(self, item_id: str) -> dict:
        return await self._request("POST", "/api/shop/buy", json={"item_id": item_id})

    async def leaderboard(self, limit: int = 10) -> dict:
        return await self._request("GET", "/api/leaderboard", params={"limit": limit})
