"""
Global reward-per-share accumulator.

Accrual is lazy: nothing ticks in the background.  Every mutating ledger
operation calls ``refresh(now)`` first, which folds the time elapsed
since the previous refresh into ``acc_reward_per_share``:

    acc += elapsed × reward_rate × PRECISION / total_staked

While nothing is staked the clock still advances but no reward accrues.
Rate and stake changes therefore only ever affect accrual from the
moment they are applied onward.

The rate is capped at ``MAX_REWARD_RATE`` so a refresh cannot overflow
for any gap up to ``MAX_ACCRUAL_SECONDS``; a rate change or an early
exit stays possible after any idle period within that horizon.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tierstake_core.errors import InvalidParameter, InvariantViolation
from tierstake_core.precision import MAX_REWARD_RATE, PRECISION, checked_mul, require_int

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccumulatorState:
    """Immutable copy of the accumulator used for rollback."""
    total_staked: int
    reward_rate: int
    last_update: int
    acc_reward_per_share: int


def _validate_rate(rate: int) -> int:
    rate = require_int(rate, "reward_rate")
    if rate < 0:
        raise InvalidParameter("reward rate must be non-negative")
    if rate > MAX_REWARD_RATE:
        raise InvalidParameter(f"reward rate {rate} exceeds the maximum {MAX_REWARD_RATE}")
    return rate


class AccrualAccumulator:

    def __init__(self, reward_rate: int = 0, start_time: int = 0) -> None:
        self.reward_rate: int = _validate_rate(reward_rate)
        self.total_staked: int = 0
        self.last_update: int = start_time
        self.acc_reward_per_share: int = 0

    def _delta(self, now: int) -> int:
        if now <= self.last_update or self.total_staked == 0:
            return 0
        elapsed = now - self.last_update
        return checked_mul(checked_mul(elapsed, self.reward_rate), PRECISION) // self.total_staked

    def refresh(self, now: int) -> None:
        if now <= self.last_update:
            return
        delta = self._delta(now)
        if delta:
            self.acc_reward_per_share += delta
            logger.debug(
                "accumulator +%d over %ds (acc=%d, staked=%d)",
                delta, now - self.last_update, self.acc_reward_per_share,
                self.total_staked,
            )
        self.last_update = now

    def projected(self, now: int) -> int:
        """Accumulator value a ``refresh(now)`` would produce, without mutating."""
        return self.acc_reward_per_share + self._delta(now)

    def set_rate(self, rate: int, now: int) -> int:
        """Refresh under the old rate, then switch.  Returns the previous rate."""
        rate = _validate_rate(rate)
        self.refresh(now)
        previous, self.reward_rate = self.reward_rate, rate
        return previous

    def add_stake(self, amount: int) -> None:
        self.total_staked += amount

    def remove_stake(self, amount: int) -> None:
        if amount > self.total_staked:
            raise InvariantViolation(
                f"Cannot remove {amount} from total stake {self.total_staked}"
            )
        self.total_staked -= amount

    # ── rollback support ────────────────────────────────────────────

    def snapshot(self) -> AccumulatorState:
        return AccumulatorState(
            total_staked=self.total_staked,
            reward_rate=self.reward_rate,
            last_update=self.last_update,
            acc_reward_per_share=self.acc_reward_per_share,
        )

    def restore(self, state: AccumulatorState) -> None:
        self.total_staked = state.total_staked
        self.reward_rate = state.reward_rate
        self.last_update = state.last_update
        self.acc_reward_per_share = state.acc_reward_per_share

    def to_dict(self) -> dict:
        return {
            "total_staked": self.total_staked,
            "reward_rate": self.reward_rate,
            "last_update": self.last_update,
            "acc_reward_per_share": self.acc_reward_per_share,
        }
