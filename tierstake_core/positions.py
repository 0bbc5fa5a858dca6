"""
Per-account position ledger.

Each deposit opens one ``Position``.  A position never stores a reward
balance; it stores a *reward debt* checkpoint, the accumulator share it
has already been credited with:

    reward_debt = amount × acc_reward_per_share / PRECISION

Pending reward is the growth of that share since the checkpoint, scaled
by the multiplier of the tier whose lock duration matches the position:

    pending = (amount × acc / PRECISION − reward_debt) × multiplier / PRECISION

Settlement resets the checkpoint to the current share rather than adding
the harvested amount, so repeated harvests never accumulate rounding
drift.

Handles are list indices.  Closing a position leaves a zero-valued
tombstone in its slot; indices are never compacted or reused.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass

from tierstake_core.accumulator import AccrualAccumulator
from tierstake_core.errors import InvalidParameter, NotFound
from tierstake_core.precision import PRECISION, mul_div, require_int
from tierstake_core.tiers import TierTable

STATUS_LOCKED = "locked"
STATUS_UNLOCKABLE = "unlockable"
STATUS_CLOSED = "closed"


@dataclass
class Position:
    amount: int = 0
    opened_at: int = 0
    unlocks_at: int = 0
    last_settled_at: int = 0
    reward_debt: int = 0

    @property
    def is_open(self) -> bool:
        return self.amount > 0

    @property
    def lock_duration(self) -> int:
        return self.unlocks_at - self.opened_at

    def is_unlocked(self, now: int) -> bool:
        return now >= self.unlocks_at

    def status(self, now: int) -> str:
        if not self.is_open:
            return STATUS_CLOSED
        return STATUS_UNLOCKABLE if self.is_unlocked(now) else STATUS_LOCKED

    def to_dict(self) -> dict:
        return asdict(self)


class PositionLedger:
    """
    Mapping of account → ordered list of positions.

    ``open`` and ``close`` are the only places ``total_staked`` on the
    shared accumulator changes.
    """

    def __init__(self, accumulator: AccrualAccumulator, tiers: TierTable) -> None:
        self.accumulator = accumulator
        self.tiers = tiers
        self.positions: dict[str, list[Position]] = {}

    # ── lifecycle ───────────────────────────────────────────────────

    def open(self, account: str, amount: int, tier_index: int, now: int) -> int:
        """Open a position and return its index.  Caller refreshes first."""
        amount = require_int(amount, "amount")
        if amount <= 0:
            raise InvalidParameter("amount must be positive")
        tier = self.tiers.get(tier_index)
        position = Position(
            amount=amount,
            opened_at=now,
            unlocks_at=now + tier.lock_duration,
            last_settled_at=now,
            reward_debt=mul_div(amount, self.accumulator.acc_reward_per_share, PRECISION),
        )
        self.accumulator.add_stake(amount)
        slots = self.positions.setdefault(account, [])
        slots.append(position)
        return len(slots) - 1

    def get(self, account: str, index: int) -> Position:
        """Return the open position at *index* or raise ``NotFound``."""
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidParameter("position index must be an integer")
        slots = self.positions.get(account, [])
        if index < 0 or index >= len(slots):
            raise NotFound(f"{account} has no position {index}")
        position = slots[index]
        if not position.is_open:
            raise NotFound(f"Position {index} of {account} is closed")
        return position

    def _accrued(self, position: Position, acc: int) -> int:
        share = mul_div(position.amount, acc, PRECISION)
        net = share - position.reward_debt
        if net <= 0:
            return 0
        multiplier = self.tiers.resolve_multiplier(position.lock_duration)
        return mul_div(net, multiplier, PRECISION)

    def pending_reward(self, account: str, index: int, now: int) -> int:
        """Projected reward for one position; pure read."""
        position = self.get(account, index)
        return self._accrued(position, self.accumulator.projected(now))

    def settle(self, account: str, index: int, now: int) -> int:
        """Harvest one position against the (already refreshed) accumulator."""
        position = self.get(account, index)
        acc = self.accumulator.acc_reward_per_share
        reward = self._accrued(position, acc)
        position.reward_debt = mul_div(position.amount, acc, PRECISION)
        position.last_settled_at = min(now, position.unlocks_at)
        return reward

    def close(self, account: str, index: int) -> Position:
        """Tombstone the slot, release its stake, and return the closed position."""
        position = self.get(account, index)
        self.accumulator.remove_stake(position.amount)
        self.positions[account][index] = Position()
        return position

    # ── reads ───────────────────────────────────────────────────────

    def open_indices(self, account: str) -> list[int]:
        return [
            i for i, p in enumerate(self.positions.get(account, []))
            if p.is_open
        ]

    def count(self, account: str) -> int:
        """Number of slots, tombstones included."""
        return len(self.positions.get(account, []))

    def total_for(self, account: str) -> int:
        return sum(p.amount for p in self.positions.get(account, []) if p.is_open)

    def sum_open(self) -> int:
        return sum(
            p.amount
            for slots in self.positions.values()
            for p in slots
            if p.is_open
        )

    def iter_open(self):
        for account, slots in self.positions.items():
            for index, position in enumerate(slots):
                if position.is_open:
                    yield account, index, position

    # ── rollback support ────────────────────────────────────────────

    def snapshot(self) -> dict[str, list[Position]]:
        return copy.deepcopy(self.positions)

    def restore(self, snap: dict[str, list[Position]]) -> None:
        self.positions = snap
