"""
spudverse.services.account_service — Accounts, Referrals & Leaderboard
=======================================================================

Account creation is the only moment a referral can be recorded.  Creating
the account, the referral edge, both bonuses and the welcome-mission
completion all commit in one transaction, or none of it does.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from spudverse.database.models import Account, Referral
from spudverse.database.store import (
    compute_rank,
    count_referrals,
    credit,
    insert_if_absent,
    lock_account,
    require_account,
)
from spudverse.engine.energy import compute_current_energy
from spudverse.engine.progression import LEVELS, level_progress
from spudverse.errors import UserNotFound
from spudverse.services.mission_service import complete_welcome_missions
from spudverse.services.progression_service import apply_level_ups, apply_progression
from spudverse.services.shop_service import apply_passive
from spudverse.services.tap_service import energy_payload

if TYPE_CHECKING:
    from spudverse.clock import Clock
    from spudverse.config import SpudConfig
    from spudverse.database.store import Store

logger = logging.getLogger(__name__)

REFERRAL_PREFIX = "ref_"


class ReferralOutcome(enum.StrEnum):
    SUCCESS = "success"
    ALREADY_REFERRED = "already_referred"
    SELF_REFERRAL = "self_referral"
    UNKNOWN_REFERRER = "unknown_referrer"


# ---------------------------------------------------------------------------
# Referral codes
# ---------------------------------------------------------------------------
def parse_referral_code(code: str | int | None) -> int | None:
    """``"ref_123"`` / ``"123"`` / ``123`` → ``123``.  Anything else → None."""
    if code is None:
        return None
    text = str(code).strip()
    if text.startswith(REFERRAL_PREFIX):
        text = text[len(REFERRAL_PREFIX):]
    if not text.isdigit():
        return None
    value = int(text)
    return value if value > 0 else None


def build_referral_link(bot_username: str, user_id: int) -> str:
    """Mini App deep link carrying the referral code as ``startapp``."""
    return f"https://t.me/{bot_username.lstrip('@')}?startapp={REFERRAL_PREFIX}{user_id}"


def register_referral(
    session: Session,
    referrer_id: int,
    referred_id: int,
    *,
    referral_bonus: int,
    referred_bonus: int,
    now_ms: int,
) -> ReferralOutcome:
    """Record ``referrer → referred`` and pay both bonuses.

    Must run inside the transaction that created the referred account.
    The unique constraint on ``referrals.referred_id`` is the final guard
    against a second bonus.
    """
    if referrer_id == referred_id:
        return ReferralOutcome.SELF_REFERRAL

    referred = require_account(session, referred_id)
    if referred.referrer_id is not None:
        return ReferralOutcome.ALREADY_REFERRED

    referrer = lock_account(session, referrer_id)
    if referrer is None:
        return ReferralOutcome.UNKNOWN_REFERRER

    edge = Referral(referrer_id=referrer_id, referred_id=referred_id, bonus_claimed=True)
    if not insert_if_absent(session, edge):
        return ReferralOutcome.ALREADY_REFERRED

    referred.referrer_id = referrer_id
    credit(referrer, referral_bonus)
    credit(referred, referred_bonus)
    # Referrer achievements are evaluated on their own next earning event
    apply_level_ups(session, referrer, now_ms)

    logger.info(
        "Referral recorded: %d → %d (+%d / +%d)",
        referrer_id, referred_id, referral_bonus, referred_bonus,
    )
    return ReferralOutcome.SUCCESS


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------
def _snapshot(session: Session, account: Account, now_ms: int) -> dict:
    reading = compute_current_energy(
        account.energy, account.last_energy_update,
        account.energy_regen_rate, account.max_energy, now_ms,
    )
    return {
        "user_id": account.user_id,
        "username": account.username,
        "first_name": account.first_name,
        "last_name": account.last_name,
        "balance": account.balance,
        "total_farmed": account.total_farmed,
        "per_tap": account.per_tap,
        "sph": account.sph,
        "last_tap_time": account.last_tap_time,
        "referral_count": count_referrals(session, account.user_id),
        **level_progress(account.total_farmed),
        "level": account.level,
        "energy": reading.energy,
        **energy_payload(reading, account.energy_regen_rate, account.max_energy),
    }


def get_snapshot(store: Store, clock: Clock, user_id: int) -> dict:
    """Authoritative account state, with pending passive income applied.

    Raises :class:`UserNotFound` for unknown users.
    """

    def _get(session: Session) -> dict:
        account = require_account(session, user_id)
        now = clock.now_ms()
        credited = apply_passive(session, account, now)
        if credited:
            apply_progression(session, account, now)
        snapshot = _snapshot(session, account, now)
        snapshot["passive_credited"] = credited
        return snapshot

    return store.atomic(_get)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------
def create_account(
    store: Store,
    clock: Clock,
    config: SpudConfig,
    user_id: int,
    *,
    username: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    referral_code: str | int | None = None,
) -> tuple[dict, ReferralOutcome | None]:
    """Create the account for *user_id* (no-op if it already exists).

    Returns ``(snapshot, referral_outcome)``; the outcome is ``None`` when
    no referral code was given or the account already existed.
    """

    def _create(session: Session) -> tuple[dict, ReferralOutcome | None]:
        now = clock.now_ms()
        base = LEVELS[0]
        account = Account(
            user_id=user_id,
            username=username,
            first_name=first_name,
            last_name=last_name,
            balance=0,
            total_farmed=0,
            level=base.level,
            per_tap=base.per_tap,
            energy=base.max_energy,
            max_energy=base.max_energy,
            energy_regen_rate=1,
            last_energy_update=now,
            sph=0,
            last_passive_sync=now,
        )
        if not insert_if_absent(session, account):
            existing = require_account(session, user_id)
            return _snapshot(session, existing, now), None

        logger.info("Account created: %d (@%s)", user_id, username or "-")
        complete_welcome_missions(session, user_id)

        outcome = None
        referrer_id = parse_referral_code(referral_code)
        if referral_code is not None and str(referral_code).strip():
            if referrer_id is None:
                outcome = ReferralOutcome.UNKNOWN_REFERRER
            else:
                outcome = register_referral(
                    session, referrer_id, user_id,
                    referral_bonus=config.referral_bonus,
                    referred_bonus=config.referred_bonus,
                    now_ms=now,
                )
            if outcome != ReferralOutcome.SUCCESS:
                logger.info("Referral code %r for %d ignored: %s", referral_code, user_id, outcome)

        apply_progression(session, account, now)
        return _snapshot(session, account, now), outcome

    return store.atomic(_create)


# ---------------------------------------------------------------------------
# Leaderboard & referrals
# ---------------------------------------------------------------------------
def display_name(account: Account) -> str:
    if account.username:
        return f"@{account.username}"
    return account.first_name or "Anonymous"


def leaderboard(store: Store, user_id: int, limit: int = 10) -> dict:
    """Top accounts by balance plus the caller's own position."""
    with store.read() as session:
        rows = session.scalars(
            select(Account).order_by(Account.balance.desc(), Account.user_id).limit(limit)
        ).all()
        me = session.get(Account, user_id)
        return {
            "entries": [
                {
                    "rank": index + 1,
                    "user_id": a.user_id,
                    "name": display_name(a),
                    "balance": a.balance,
                    "level": a.level,
                }
                for index, a in enumerate(rows)
            ],
            "me": None if me is None else {
                "rank": compute_rank(session, me.balance),
                "balance": me.balance,
            },
        }


def referral_info(store: Store, config: SpudConfig, user_id: int) -> dict:
    with store.read() as session:
        if session.get(Account, user_id) is None:
            raise UserNotFound(f"No account for user {user_id}.")
        return {
            "referral_count": count_referrals(session, user_id),
            "referral_code": f"{REFERRAL_PREFIX}{user_id}",
            "referral_link": build_referral_link(config.bot_username, user_id),
            "referral_bonus": config.referral_bonus,
            "referred_bonus": config.referred_bonus,
        }
