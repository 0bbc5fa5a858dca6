"""
Lock-duration tiers for TierStake.

A tier pairs a lock duration (seconds) with a reward multiplier in
fixed point (``PRECISION`` == 1x).  The table is append-only and holds at
most ``MAX_TIERS`` entries; insertion order is both the tier index a
depositor picks and the lookup order for multiplier resolution.

Multiplier resolution is keyed on the *duration*, not the index:

    resolve_multiplier(position.unlocks_at - position.opened_at)

scans for an exact duration match and falls back to 1x when none is
found, so positions opened under a tier that no longer matches keep
accruing at the neutral rate instead of failing lookups.
"""

from __future__ import annotations

from dataclasses import dataclass

from tierstake_core.errors import CapacityExceeded, InvalidParameter
from tierstake_core.precision import PRECISION, format_ratio, require_int

MAX_TIERS: int = 5

# Multiplier applied when no tier matches a position's lock duration.
NEUTRAL_MULTIPLIER: int = PRECISION


@dataclass(frozen=True)
class Tier:
    lock_duration: int      # seconds
    multiplier: int         # fixed point, PRECISION == 1x

    def to_dict(self) -> dict:
        return {
            "lock_duration": self.lock_duration,
            "lock_days": self.lock_duration // 86_400,
            "multiplier": self.multiplier,
            "multiplier_display": format_ratio(self.multiplier),
        }


class TierTable:
    """Ordered, bounded, append-only collection of tiers."""

    def __init__(self, max_tiers: int = MAX_TIERS) -> None:
        self.max_tiers = max_tiers
        self._tiers: list[Tier] = []

    def add_tier(self, lock_duration: int, multiplier: int) -> int:
        """Append a tier and return its index."""
        if len(self._tiers) >= self.max_tiers:
            raise CapacityExceeded(f"Tier table is full ({self.max_tiers} tiers)")
        lock_duration = require_int(lock_duration, "lock_duration")
        multiplier = require_int(multiplier, "multiplier")
        if lock_duration <= 0:
            raise InvalidParameter("lock_duration must be positive")
        if multiplier <= 0:
            raise InvalidParameter("multiplier must be positive")
        self._tiers.append(Tier(lock_duration, multiplier))
        return len(self._tiers) - 1

    def get(self, index: int) -> Tier:
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidParameter("tier index must be an integer")
        if index < 0 or index >= len(self._tiers):
            raise InvalidParameter(f"Unknown tier: {index}")
        return self._tiers[index]

    def resolve_multiplier(self, lock_duration: int) -> int:
        for tier in self._tiers:
            if tier.lock_duration == lock_duration:
                return tier.multiplier
        return NEUTRAL_MULTIPLIER

    @property
    def count(self) -> int:
        return len(self._tiers)

    def __len__(self) -> int:
        return len(self._tiers)

    def __iter__(self):
        return iter(self._tiers)

    def to_list(self) -> list[dict]:
        return [
            {"tier": i, **tier.to_dict()}
            for i, tier in enumerate(self._tiers)
        ]

    # ── rollback support ────────────────────────────────────────────

    def snapshot(self) -> tuple[Tier, ...]:
        return tuple(self._tiers)

    def restore(self, snap: tuple[Tier, ...]) -> None:
        self._tiers = list(snap)
