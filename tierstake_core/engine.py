"""
Staking engine: the orchestration layer over tiers, accumulator and
position ledger.

Position state machine
──────────────────────
    OPEN(locked) ──(now >= unlocks_at)──► OPEN(unlockable) ──withdraw──► CLOSED
         │                                      │
         └───────────── emergency_withdraw ─────┴──────────────────────► CLOSED

Every mutating entry point follows the same shape:

  1. enter the ledger-wide reentrancy guard
  2. snapshot engine (and custodian) state
  3. validate, refresh the accumulator, mutate positions
  4. move assets through the custodian, last
  5. verify ledger invariants

Any exception in steps 3-5 restores the snapshot and is re-raised, so
an operation either applies completely or not at all.

Early exit
──────────
``emergency_withdraw`` skips the unlock check, forfeits all reward
(the position is closed without being settled) and pays a fixed share
of principal to the treasury:

    fee    = floor(amount × early_exit_fee_bps / 10_000)     (default 10 %)
    payout = amount − fee

The fee rounds down, so the payout rounds up: 15 units at 10 % pay out
14 with a fee of 1, and a principal under 10 units pays no fee at all.
"""

from __future__ import annotations

import contextlib
import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, Iterator, Optional

from tierstake_core.accumulator import AccrualAccumulator
from tierstake_core.custody import Custodian
from tierstake_core.errors import (
    CapacityExceeded,
    InvalidParameter,
    InvalidState,
    InvariantViolation,
    TransferFailure,
)
from tierstake_core.guard import ReentrancyGuard
from tierstake_core.invariants import LedgerInvariantChecker
from tierstake_core.positions import PositionLedger
from tierstake_core.precision import BPS_DENOMINATOR, mul_div, require_int
from tierstake_core.tiers import TierTable

logger = logging.getLogger(__name__)

EARLY_EXIT_FEE_BPS: int = 1_000


@dataclass
class Receipt:
    """Outcome of one mutating operation."""
    operation: str
    account: str
    timestamp: int
    index: Optional[int] = None
    principal: int = 0
    reward: int = 0
    fee: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class _EngineState:
    accumulator: object
    positions: object
    tiers: object
    staking_cap: int
    total_rewards_paid: int
    total_fees_collected: int
    custody: object = None


class StakingEngine:
    """
    Tiered, time-weighted reward ledger.

    ``account`` arguments are trusted: the boundary layer
    (``StakingService``) authenticates callers and gates the
    administrative operations before they reach the engine.
    """

    def __init__(
        self,
        custodian: Custodian,
        tiers: Optional[TierTable] = None,
        *,
        staking_cap: int,
        treasury: str,
        reward_rate: int = 0,
        early_exit_fee_bps: int = EARLY_EXIT_FEE_BPS,
        clock: Optional[Callable[[], int]] = None,
        check_invariants: bool = True,
    ) -> None:
        if not 0 <= early_exit_fee_bps <= BPS_DENOMINATOR:
            raise InvalidParameter("early_exit_fee_bps must be within 0..10000")
        self.custodian = custodian
        self.tiers = tiers if tiers is not None else TierTable()
        self.staking_cap: int = require_int(staking_cap, "staking_cap")
        self.treasury = treasury
        self.early_exit_fee_bps = early_exit_fee_bps
        self.check_invariants = check_invariants
        self._clock = clock or (lambda: int(time.time()))

        self.accumulator = AccrualAccumulator(reward_rate, start_time=self._clock())
        self.ledger = PositionLedger(self.accumulator, self.tiers)
        self.total_rewards_paid: int = 0
        self.total_fees_collected: int = 0

        self._guard = ReentrancyGuard()
        self._checker = LedgerInvariantChecker()

    # ── atomic scope ────────────────────────────────────────────────

    def _now(self, now: Optional[int]) -> int:
        if now is None:
            now = self._clock()
        return require_int(now, "now")

    def _snapshot(self) -> _EngineState:
        custody = None
        if hasattr(self.custodian, "snapshot"):
            custody = self.custodian.snapshot()
        return _EngineState(
            accumulator=self.accumulator.snapshot(),
            positions=self.ledger.snapshot(),
            tiers=self.tiers.snapshot(),
            staking_cap=self.staking_cap,
            total_rewards_paid=self.total_rewards_paid,
            total_fees_collected=self.total_fees_collected,
            custody=custody,
        )

    def _restore(self, state: _EngineState) -> None:
        self.accumulator.restore(state.accumulator)
        self.ledger.restore(state.positions)
        self.tiers.restore(state.tiers)
        self.staking_cap = state.staking_cap
        self.total_rewards_paid = state.total_rewards_paid
        self.total_fees_collected = state.total_fees_collected
        if state.custody is not None:
            self.custodian.restore(state.custody)

    @contextlib.contextmanager
    def _transaction(self, operation: str, *, deposit: bool = False) -> Iterator[None]:
        with self._guard(operation):
            state = self._snapshot()
            self._checker.capture(self)
            try:
                yield
                if self.check_invariants:
                    ok, msg = self._checker.verify(self, deposit=deposit)
                    if not ok:
                        raise InvariantViolation(msg)
            except BaseException as exc:
                self._restore(state)
                logger.info("%s rolled back: %s", operation, exc)
                raise

    # ── payouts ─────────────────────────────────────────────────────

    def _pay_reward(self, account: str, amount: int) -> None:
        if amount <= 0:
            return
        asset = self.custodian.reward_asset
        if asset == self.custodian.staking_asset:
            # Shared asset: rewards may only come from holdings above staked principal.
            available = self.custodian.holdings(asset) - self.accumulator.total_staked
            if available < amount:
                raise TransferFailure(
                    f"Reward reserve exhausted: {available} {asset} available, {amount} owed"
                )
        self.custodian.transfer_out(account, amount, asset)
        self.total_rewards_paid += amount

    def _settle_all(self, account: str, now: int) -> int:
        return sum(
            self.ledger.settle(account, index, now)
            for index in self.ledger.open_indices(account)
        )

    # ── user operations ─────────────────────────────────────────────

    def deposit(
        self, account: str, amount: int, tier_index: int, now: Optional[int] = None,
    ) -> Receipt:
        """Open a new position, harvesting the account's existing ones first."""
        now = self._now(now)
        with self._transaction("deposit", deposit=True):
            amount = require_int(amount, "amount")
            if amount <= 0:
                raise InvalidParameter("amount must be positive")
            self.tiers.get(tier_index)
            if self.accumulator.total_staked + amount > self.staking_cap:
                raise CapacityExceeded(
                    f"Deposit of {amount} would exceed staking cap {self.staking_cap} "
                    f"(currently staked {self.accumulator.total_staked})"
                )

            self.accumulator.refresh(now)
            harvested = self._settle_all(account, now)
            index = self.ledger.open(account, amount, tier_index, now)
            self.custodian.transfer_in(account, amount, self.custodian.staking_asset)
            self._pay_reward(account, harvested)

        return Receipt("deposit", account, now, index=index, principal=amount, reward=harvested)

    def withdraw(self, account: str, index: int, now: Optional[int] = None) -> Receipt:
        """Close an unlocked position, paying principal plus final reward."""
        now = self._now(now)
        with self._transaction("withdraw"):
            position = self.ledger.get(account, index)
            if not position.is_unlocked(now):
                raise InvalidState(
                    f"Position {index} is locked until {position.unlocks_at} (now {now})"
                )

            self.accumulator.refresh(now)
            reward = self.ledger.settle(account, index, now)
            closed = self.ledger.close(account, index)
            self.custodian.transfer_out(account, closed.amount, self.custodian.staking_asset)
            self._pay_reward(account, reward)

        return Receipt("withdraw", account, now, index=index, principal=closed.amount, reward=reward)

    def emergency_withdraw(self, account: str, index: int, now: Optional[int] = None) -> Receipt:
        """Close a position at any time, forfeiting reward and paying the exit fee."""
        now = self._now(now)
        with self._transaction("emergency-withdraw"):
            self.ledger.get(account, index)
            self.accumulator.refresh(now)
            closed = self.ledger.close(account, index)
            fee = mul_div(closed.amount, self.early_exit_fee_bps, BPS_DENOMINATOR)
            payout = closed.amount - fee
            asset = self.custodian.staking_asset
            if payout:
                self.custodian.transfer_out(account, payout, asset)
            if fee:
                self.custodian.transfer_out(self.treasury, fee, asset)
                self.total_fees_collected += fee

        return Receipt("emergency-withdraw", account, now, index=index, principal=payout, fee=fee)

    def claim(self, account: str, now: Optional[int] = None) -> Receipt:
        """Harvest every open position of *account*.  Zero total is a no-op payout."""
        now = self._now(now)
        with self._transaction("claim"):
            self.accumulator.refresh(now)
            total = self._settle_all(account, now)
            self._pay_reward(account, total)
        return Receipt("claim", account, now, reward=total)

    # ── administrative operations ───────────────────────────────────

    def set_reward_rate(self, rate: int, now: Optional[int] = None) -> int:
        """Switch the reward rate going forward.  Returns the previous rate."""
        now = self._now(now)
        with self._transaction("set-reward-rate"):
            previous = self.accumulator.set_rate(rate, now)
        return previous

    def set_staking_cap(self, cap: int) -> int:
        cap = require_int(cap, "cap")
        if cap < 0:
            raise InvalidParameter("staking cap must be non-negative")
        with self._transaction("set-staking-cap"):
            previous, self.staking_cap = self.staking_cap, cap
        return previous

    def add_tier(self, lock_duration: int, multiplier: int) -> int:
        with self._transaction("add-tier"):
            index = self.tiers.add_tier(lock_duration, multiplier)
        return index

    def fund_rewards(self, source: str, amount: int) -> None:
        """Move reward asset from *source* into the vault."""
        amount = require_int(amount, "amount")
        if amount <= 0:
            raise InvalidParameter("amount must be positive")
        with self._transaction("fund-rewards"):
            self.custodian.transfer_in(source, amount, self.custodian.reward_asset)

    def recover_asset(self, asset: str, amount: int, to: str) -> None:
        """Transfer out a non-staking asset that ended up in the vault."""
        if asset == self.custodian.staking_asset:
            raise InvalidParameter(f"Cannot recover the staking asset {asset}")
        amount = require_int(amount, "amount")
        if amount <= 0:
            raise InvalidParameter("amount must be positive")
        with self._transaction("recover-asset"):
            self.custodian.transfer_out(to, amount, asset)

    # ── reads ───────────────────────────────────────────────────────

    def total_staked_for(self, account: str) -> int:
        return self.ledger.total_for(account)

    def position_count(self, account: str) -> int:
        """Slots ever opened by *account*, tombstones included."""
        return self.ledger.count(account)

    def open_position_indices(self, account: str) -> list[int]:
        return self.ledger.open_indices(account)

    def tier_count(self) -> int:
        return self.tiers.count

    def pending_reward(self, account: str, index: int, now: Optional[int] = None) -> int:
        return self.ledger.pending_reward(account, index, self._now(now))

    def position_info(self, account: str, index: int, now: Optional[int] = None) -> dict:
        now = self._now(now)
        position = self.ledger.get(account, index)
        info = position.to_dict()
        info.update({
            "index": index,
            "lock_duration": position.lock_duration,
            "tier_multiplier": self.tiers.resolve_multiplier(position.lock_duration),
            "pending_reward": self.ledger.pending_reward(account, index, now),
            "status": position.status(now),
        })
        return info

    def positions_for(self, account: str, now: Optional[int] = None) -> list[dict]:
        now = self._now(now)
        return [
            self.position_info(account, index, now)
            for index in self.open_position_indices(account)
        ]

    def pool_summary(self, now: Optional[int] = None) -> dict:
        now = self._now(now)
        summary = self.accumulator.to_dict()
        summary.update({
            "projected_acc_reward_per_share": self.accumulator.projected(now),
            "staking_cap": self.staking_cap,
            "total_rewards_paid": self.total_rewards_paid,
            "total_fees_collected": self.total_fees_collected,
            "early_exit_fee_bps": self.early_exit_fee_bps,
            "tier_count": self.tiers.count,
            "staking_asset": self.custodian.staking_asset,
            "reward_asset": self.custodian.reward_asset,
        })
        return summary
