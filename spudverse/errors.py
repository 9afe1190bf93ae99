"""
spudverse.errors — Domain Error Taxonomy
=========================================

Every failure the economy can report maps to one class here.  Each class
knows its HTTP status and a machine-readable ``code``; the API turns them
into JSON responses in a single exception handler (see
:mod:`spudverse.api.main`).

Expected, user-facing conditions (insufficient energy, claiming twice) are
*not* faults and must never be logged as errors.
"""

from __future__ import annotations

from typing import Any


class SpudError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class Unauthorized(SpudError):
    status_code = 401
    code = "unauthorized"


class NotFound(SpudError):
    status_code = 404
    code = "not_found"


class UserNotFound(NotFound):
    """Unknown account — the client's cue to start the onboarding flow."""

    code = "new_user"


class InsufficientResource(SpudError):
    code = "insufficient_resource"


class InsufficientEnergy(InsufficientResource):
    code = "insufficient_energy"

    def __init__(self, current: int, maximum: int, required: int) -> None:
        super().__init__(
            f"Not enough energy: {current}/{maximum}, need {required}.",
            current_energy=current,
            max_energy=maximum,
            required=required,
        )
        self.current = current
        self.maximum = maximum
        self.required = required


class InsufficientBalance(InsufficientResource):
    code = "insufficient_balance"

    def __init__(self, balance: int, cost: int) -> None:
        super().__init__(
            f"Not enough SPUD: have {balance}, need {cost}.",
            balance=balance,
            cost=cost,
        )
        self.balance = balance
        self.cost = cost


class InvalidStateTransition(SpudError):
    code = "invalid_state"


class MaxLevelReached(InvalidStateTransition):
    code = "max_level_reached"


class ExternalVerificationFailure(SpudError):
    """The external verifier could not give an answer (outage, timeout)."""

    status_code = 503
    code = "verification_unavailable"


class PersistenceFailure(SpudError):
    status_code = 500
    code = "persistence_failure"


class RateLimited(SpudError):
    status_code = 429
    code = "rate_limit_exceeded"


class InvalidInput(SpudError):
    """A request value outside its allowed range (e.g. tap batch size)."""

    code = "invalid_input"
