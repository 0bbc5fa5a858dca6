"""
TierStake - a tiered, time-weighted staking reward ledger.

Key features:
- Lazy global reward-per-share accumulator (integer fixed point)
- Per-position reward-debt checkpoints, harvest before re-deposit
- Lock-duration tiers with reward multipliers
- Early exit with a fixed principal fee and forfeited reward
- All-or-nothing operations with a ledger-wide reentrancy guard
- Signed REST API and interactive CLI
"""

__version__ = "1.0.0"
__all__ = [
    "precision",
    "errors",
    "tiers",
    "accumulator",
    "positions",
    "custody",
    "guard",
    "invariants",
    "engine",
    "access",
    "identity",
    "service",
    "config",
    "api",
    "logging_config",
]
