"""
Error hierarchy for the TierStake ledger.

Every failure aborts the triggering operation and leaves the ledger
exactly as it was before the call.  Nothing is retried automatically.

Each class carries a stable ``code`` string that the REST API and the
CLI surface to callers.
"""

from __future__ import annotations


class StakingError(Exception):
    """Base class for all ledger errors."""
    code = "staking_error"

    def to_dict(self) -> dict:
        return {"error": self.code, "message": str(self)}


class InvalidParameter(StakingError, ValueError):
    """Zero amount, out-of-range tier or position index, malformed input."""
    code = "invalid_parameter"


class InvalidState(StakingError):
    """Operation not allowed in the position's current state (e.g. still locked)."""
    code = "invalid_state"


class NotFound(StakingError, LookupError):
    """Position index out of range or already closed."""
    code = "not_found"


class CapacityExceeded(StakingError):
    """Tier table full, or a deposit would push total stake above the cap."""
    code = "capacity_exceeded"


class Unauthorized(StakingError):
    """A non-administrator called a gated operation."""
    code = "unauthorized"


class TransferFailure(StakingError):
    """The custodial collaborator could not move the requested amount."""
    code = "transfer_failure"


class ArithmeticOverflow(StakingError):
    """An intermediate product exceeded the 256-bit word."""
    code = "arithmetic_overflow"


class ReentrantCall(InvalidState):
    """A mutating entry point was invoked while another one was in progress."""
    code = "reentrant_call"


class InvariantViolation(StakingError):
    """A post-operation ledger invariant failed; the operation was rolled back."""
    code = "invariant_violation"
