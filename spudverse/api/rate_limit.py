"""
spudverse.api.rate_limit — Per-User Mutation Rate Limiting
===========================================================

120 mutations per minute per Telegram user.

Uses a sliding-window counter keyed by user ID, stored in the
``rate_limit_events`` table so the limit holds across restarts and
across API instances.  Returns HTTP 429 with a ``Retry-After`` header when
the limit is exceeded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated, Any

from fastapi import Depends, Request
from sqlalchemy import Engine, delete, func, select
from sqlalchemy.orm import Session

from spudverse.api.deps import get_clock, get_current_user_id, get_store
from spudverse.clock import Clock
from spudverse.database.models import RateLimitEvent
from spudverse.database.store import LedgerStore
from spudverse.errors import RateLimited

logger = logging.getLogger(__name__)

# Default: 120 mutations per 60-second sliding window
DEFAULT_RATE_LIMIT = 120
DEFAULT_WINDOW_SECONDS = 60

# HTTP methods considered "mutations"
_MUTATION_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class UserRateLimiter:
    """Sliding-window rate limiter keyed by user ID.

    DB-backed only — timestamps are epoch milliseconds from the injected
    clock.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_RATE_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        *,
        engine: Engine,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.engine = engine

    @property
    def window_ms(self) -> int:
        return self.window_seconds * 1000

    def check(self, user_id: int, now_ms: int) -> tuple[bool, dict[str, Any]]:
        """Check if the user is within rate limits.

        Returns (allowed, info) where info contains:
          - remaining: requests remaining in the window
          - reset: seconds until the oldest request expires
          - limit: the max requests per window
        """
        cutoff = now_ms - self.window_ms

        with Session(self.engine) as session:
            count = session.scalar(
                select(func.count()).select_from(RateLimitEvent).where(
                    RateLimitEvent.user_id == user_id,
                    RateLimitEvent.timestamp_ms > cutoff,
                )
            ) or 0
            oldest = session.scalar(
                select(func.min(RateLimitEvent.timestamp_ms)).where(
                    RateLimitEvent.user_id == user_id,
                    RateLimitEvent.timestamp_ms > cutoff,
                )
            )

        if count >= self.max_requests:
            reset_ms = oldest + self.window_ms - now_ms
            return False, {
                "remaining": 0,
                "reset": max(1, reset_ms // 1000 + 1),
                "limit": self.max_requests,
            }

        return True, {
            "remaining": self.max_requests - count,
            "reset": self.window_seconds,
            "limit": self.max_requests,
        }

    def record(self, user_id: int, now_ms: int) -> dict[str, Any]:
        """Record a request and prune this user's expired entries."""
        cutoff = now_ms - self.window_ms

        with Session(self.engine) as session:
            session.execute(
                delete(RateLimitEvent).where(
                    RateLimitEvent.user_id == user_id,
                    RateLimitEvent.timestamp_ms <= cutoff,
                )
            )
            session.add(RateLimitEvent(user_id=user_id, timestamp_ms=now_ms))
            session.flush()

            count = session.scalar(
                select(func.count()).select_from(RateLimitEvent).where(
                    RateLimitEvent.user_id == user_id
                )
            ) or 0
            session.commit()

        return {
            "remaining": max(0, self.max_requests - count),
            "reset": self.window_seconds,
            "limit": self.max_requests,
        }

    def reset(self, user_id: int | None = None) -> None:
        """Clear rate limit state. If user_id is None, clear all."""
        with Session(self.engine) as session:
            if user_id is None:
                session.execute(delete(RateLimitEvent))
            else:
                session.execute(delete(RateLimitEvent).where(RateLimitEvent.user_id == user_id))
            session.commit()


def get_rate_limiter(store: Annotated[LedgerStore, Depends(get_store)]) -> UserRateLimiter:
    return UserRateLimiter(engine=store.engine)


# ---------------------------------------------------------------------------
# FastAPI dependency — chains after get_current_user_id
# ---------------------------------------------------------------------------
async def rate_limited_user(
    request: Request,
    user_id: Annotated[int, Depends(get_current_user_id)],
    limiter: Annotated[UserRateLimiter, Depends(get_rate_limiter)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> int:
    """Resolve the caller *and* enforce the per-user mutation limit.

    GET/HEAD/OPTIONS requests pass through uncounted.  Use
    ``Depends(rate_limited_user)`` in place of
    ``Depends(get_current_user_id)`` on mutating routes.
    """
    if request.method not in _MUTATION_METHODS:
        return user_id

    now = clock.now_ms()
    allowed, info = await asyncio.to_thread(limiter.check, user_id, now)

    if not allowed:
        logger.warning(
            "Rate limit exceeded for user %d: %d requests in %ds",
            user_id, limiter.max_requests, limiter.window_seconds,
        )
        raise RateLimited(
            f"Rate limit exceeded: {limiter.max_requests} requests per minute.",
            retry_after=info["reset"],
        )

    await asyncio.to_thread(limiter.record, user_id, now)
    return user_id
