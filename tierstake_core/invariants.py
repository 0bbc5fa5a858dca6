"""
Post-operation invariant checks for the TierStake ledger.

Checked after every mutating engine operation:
  - Total stake equals the sum of open position amounts
  - The reward-per-share accumulator never decreases
  - The accumulator clock never moves backwards
  - Total stake does not exceed the cap after a deposit
  - No position carries a negative amount or reward debt
  - Vault holds at least the staked principal

If any invariant fails the engine rolls the operation back and raises
``InvariantViolation``.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class LedgerSnapshot:
    """Key engine fields captured before an operation."""
    total_staked: int = 0
    acc_reward_per_share: int = 0
    last_update: int = 0


class LedgerInvariantChecker:
    """
    Captures a pre-operation snapshot of the engine and validates
    invariants once the operation has been applied.
    """

    def __init__(self):
        self._snapshot: LedgerSnapshot | None = None

    def capture(self, engine) -> None:
        acc = engine.accumulator
        self._snapshot = LedgerSnapshot(
            total_staked=acc.total_staked,
            acc_reward_per_share=acc.acc_reward_per_share,
            last_update=acc.last_update,
        )

    def verify(self, engine, *, deposit: bool = False) -> tuple[bool, str]:
        """Return ``(passed, error_message)``."""
        if self._snapshot is None:
            return True, ""

        errors: list[str] = []
        for check in (
            self._check_conservation,
            self._check_accumulator_monotonic,
            self._check_clock_monotonic,
            self._check_non_negative,
            self._check_custody_covers_principal,
        ):
            ok, msg = check(engine)
            if not ok:
                errors.append(msg)
        if deposit:
            ok, msg = self._check_cap(engine)
            if not ok:
                errors.append(msg)

        self._snapshot = None
        if errors:
            return False, "; ".join(errors)
        return True, ""

    def _check_conservation(self, engine) -> tuple[bool, str]:
        total = engine.accumulator.total_staked
        summed = engine.ledger.sum_open()
        if total != summed:
            return False, f"Stake mismatch: total_staked={total}, open positions sum to {summed}"
        return True, ""

    def _check_accumulator_monotonic(self, engine) -> tuple[bool, str]:
        before = self._snapshot.acc_reward_per_share
        after = engine.accumulator.acc_reward_per_share
        if after < before:
            return False, f"Accumulator decreased: {before} -> {after}"
        return True, ""

    def _check_clock_monotonic(self, engine) -> tuple[bool, str]:
        before = self._snapshot.last_update
        after = engine.accumulator.last_update
        if after < before:
            return False, f"Accumulator clock moved backwards: {before} -> {after}"
        return True, ""

    def _check_non_negative(self, engine) -> tuple[bool, str]:
        for account, index, position in engine.ledger.iter_open():
            if position.reward_debt < 0:
                return False, f"Negative reward debt on {account}[{index}]"
        for account, slots in engine.ledger.positions.items():
            for index, position in enumerate(slots):
                if position.amount < 0:
                    return False, f"Negative amount on {account}[{index}]"
        return True, ""

    def _check_custody_covers_principal(self, engine) -> tuple[bool, str]:
        custodian = engine.custodian
        held = custodian.holdings(custodian.staking_asset)
        if held < engine.accumulator.total_staked:
            return (False,
                    f"Vault holds {held} {custodian.staking_asset} "
                    f"but {engine.accumulator.total_staked} is staked")
        return True, ""

    def _check_cap(self, engine) -> tuple[bool, str]:
        total = engine.accumulator.total_staked
        if total > engine.staking_cap:
            return False, f"Total stake {total} exceeds cap {engine.staking_cap}"
        return True, ""
