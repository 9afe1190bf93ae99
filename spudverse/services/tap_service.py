"""
spudverse.services.tap_service — Tap Batches & Energy Status
=============================================================

The only path by which taps turn into SPUD.  A batch is all-or-nothing:
either every tap is paid for with energy and credited, or the batch is
rejected and nothing changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from spudverse.database.models import Account
from spudverse.database.store import credit, require_account
from spudverse.engine.energy import (
    EnergyReading,
    compute_current_energy,
    time_to_full,
    try_consume_energy,
)
from spudverse.engine.reward import ENERGY_PER_TAP, MAX_TAPS_PER_BATCH, tap_reward
from spudverse.errors import InvalidInput, UserNotFound
from spudverse.services.progression_service import apply_progression

if TYPE_CHECKING:
    from spudverse.clock import Clock
    from spudverse.database.store import Store

logger = logging.getLogger(__name__)


@dataclass
class TapResult:
    new_balance: int
    new_energy: int
    max_energy: int
    earned: int
    time_to_full_ms: int
    total_farmed: int = 0
    leveled_up: bool = False
    level: int = 1
    per_tap: int = 1
    last_tap_time: int | None = None
    unlocked_achievements: list[str] = field(default_factory=list)


def record_taps(
    store: Store,
    clock: Clock,
    user_id: int,
    tap_count: int,
    *,
    client_per_tap: int | None = None,
    combo: float | None = None,
) -> TapResult:
    """Credit a batch of *tap_count* taps.

    ``client_per_tap`` and ``combo`` are what the client displayed; they are
    only compared against the server's values, never credited.

    Raises
    ------
    InvalidInput
        *tap_count* outside ``1..MAX_TAPS_PER_BATCH``.
    InsufficientEnergy
        Not enough energy for the whole batch.
    UserNotFound
        No account for *user_id*.
    """
    if not 1 <= tap_count <= MAX_TAPS_PER_BATCH:
        raise InvalidInput(
            f"tap_count must be between 1 and {MAX_TAPS_PER_BATCH}.", tap_count=tap_count,
        )

    def _record(session: Session) -> TapResult:
        account = require_account(session, user_id)
        now = clock.now_ms()

        reading = compute_current_energy(
            account.energy, account.last_energy_update,
            account.energy_regen_rate, account.max_energy, now,
        )
        reading = try_consume_energy(
            reading, tap_count * ENERGY_PER_TAP, account.max_energy, now,
        )

        if client_per_tap is not None and client_per_tap != account.per_tap:
            logger.debug(
                "Client per_tap mismatch for user %d: client=%s server=%d (combo=%s)",
                user_id, client_per_tap, account.per_tap, combo,
            )

        earned = tap_reward(account.per_tap, tap_count)
        account.energy = reading.energy
        account.last_energy_update = reading.last_update_ms
        account.last_tap_time = now
        credit(account, earned)

        outcome = apply_progression(session, account, now)

        final = compute_current_energy(
            account.energy, account.last_energy_update,
            account.energy_regen_rate, account.max_energy, now,
        )
        return TapResult(
            new_balance=account.balance,
            new_energy=account.energy,
            max_energy=account.max_energy,
            earned=earned,
            time_to_full_ms=time_to_full(final, account.energy_regen_rate, account.max_energy),
            total_farmed=account.total_farmed,
            leveled_up=outcome.level.leveled_up,
            level=account.level,
            per_tap=account.per_tap,
            last_tap_time=account.last_tap_time,
            unlocked_achievements=outcome.unlocked_achievements,
        )

    return store.atomic(_record)


def energy_status(store: Store, clock: Clock, user_id: int) -> dict:
    """Current energy recomputed from the stored mark.  Read-only."""
    with store.read() as session:
        account = session.get(Account, user_id)
        if account is None:
            raise UserNotFound(f"No account for user {user_id}.")
        reading = compute_current_energy(
            account.energy, account.last_energy_update,
            account.energy_regen_rate, account.max_energy, clock.now_ms(),
        )
        return energy_payload(reading, account.energy_regen_rate, account.max_energy)


def energy_payload(reading: EnergyReading, regen_rate: int, max_energy: int) -> dict:
    return {
        "current_energy": reading.energy,
        "max_energy": max_energy,
        "regen_rate": regen_rate,
        "time_to_full": time_to_full(reading, regen_rate, max_energy),
        "next_tick_in": reading.next_tick_ms,
    }
