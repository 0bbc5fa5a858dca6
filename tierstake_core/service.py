"""
Boundary layer between callers (REST API, CLI) and the staking engine.

``StakingService`` binds each verb to the authenticated caller, runs the
administrator capability check for gated verbs, and logs the outcome.
``build_service`` wires a loaded ``TierStakeConfig`` into a vault,
engine and service.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from tierstake_core.access import AccessPolicy
from tierstake_core.config import TierStakeConfig
from tierstake_core.custody import TokenVault
from tierstake_core.engine import Receipt, StakingEngine
from tierstake_core.identity import Identity
from tierstake_core.tiers import TierTable

logger = logging.getLogger(__name__)


class StakingService:

    def __init__(self, engine: StakingEngine, policy: AccessPolicy) -> None:
        self.engine = engine
        self.policy = policy

    @property
    def vault(self):
        return self.engine.custodian

    def _log(self, receipt: Receipt, level: int = logging.INFO) -> Receipt:
        logger.log(
            level,
            "%s index=%s principal=%d reward=%d fee=%d",
            receipt.account, receipt.index, receipt.principal, receipt.reward, receipt.fee,
            extra={"verb": receipt.operation, "account": receipt.account},
        )
        return receipt

    # ── account verbs ───────────────────────────────────────────────

    def deposit(self, caller: str, amount: int, tier: int, now: Optional[int] = None) -> Receipt:
        return self._log(self.engine.deposit(caller, amount, tier, now))

    def withdraw(self, caller: str, index: int, now: Optional[int] = None) -> Receipt:
        return self._log(self.engine.withdraw(caller, index, now))

    def emergency_withdraw(self, caller: str, index: int, now: Optional[int] = None) -> Receipt:
        return self._log(self.engine.emergency_withdraw(caller, index, now), logging.WARNING)

    def claim(self, caller: str, now: Optional[int] = None) -> Receipt:
        return self._log(self.engine.claim(caller, now))

    # ── administrative verbs ────────────────────────────────────────

    def add_tier(self, caller: str, lock_duration: int, multiplier: int) -> int:
        self.policy.require_admin(caller, "add-tier")
        index = self.engine.add_tier(lock_duration, multiplier)
        logger.info("tier %d: %ds at %d", index, lock_duration, multiplier,
                    extra={"verb": "add-tier", "account": caller})
        return index

    def set_staking_cap(self, caller: str, cap: int) -> int:
        self.policy.require_admin(caller, "set-staking-cap")
        previous = self.engine.set_staking_cap(cap)
        logger.info("staking cap %d -> %d", previous, cap,
                    extra={"verb": "set-staking-cap", "account": caller})
        return previous

    def set_reward_rate(self, caller: str, rate: int, now: Optional[int] = None) -> int:
        self.policy.require_admin(caller, "set-reward-rate")
        previous = self.engine.set_reward_rate(rate, now)
        logger.info("reward rate %d -> %d", previous, rate,
                    extra={"verb": "set-reward-rate", "account": caller})
        return previous

    def fund_rewards(self, caller: str, amount: int) -> None:
        self.policy.require_admin(caller, "fund-rewards")
        self.engine.fund_rewards(caller, amount)
        logger.info("funded %d %s", amount, self.vault.reward_asset,
                    extra={"verb": "fund-rewards", "account": caller})

    def recover_asset(self, caller: str, asset: str, amount: int, to: Optional[str] = None) -> None:
        self.policy.require_admin(caller, "recover-asset")
        destination = to or caller
        self.engine.recover_asset(asset, amount, destination)
        logger.warning("recovered %d %s to %s", amount, asset, destination,
                       extra={"verb": "recover-asset", "account": caller})

    def faucet(self, caller: str, account: str, amount: int, asset: Optional[str] = None) -> None:
        """Mint test balances (dev nodes only, administrator gated)."""
        self.policy.require_admin(caller, "faucet")
        self.vault.mint(account, amount, asset)
        logger.info("minted %d %s to %s", amount, asset or self.vault.staking_asset, account,
                    extra={"verb": "faucet", "account": caller})

    # ── reads ───────────────────────────────────────────────────────

    def account_summary(self, account: str) -> dict:
        engine = self.engine
        return {
            "account": account,
            "total_staked": engine.total_staked_for(account),
            "position_count": engine.position_count(account),
            "open_positions": engine.open_position_indices(account),
            "balances": {
                self.vault.staking_asset: self.vault.balance_of(account, self.vault.staking_asset),
                self.vault.reward_asset: self.vault.balance_of(account, self.vault.reward_asset),
            },
            "is_admin": self.policy.is_admin(account),
        }

    def position_info(self, account: str, index: int, now: Optional[int] = None) -> dict:
        return self.engine.position_info(account, index, now)

    def positions(self, account: str, now: Optional[int] = None) -> list[dict]:
        return self.engine.positions_for(account, now)

    def tiers(self) -> list[dict]:
        return self.engine.tiers.to_list()

    def pool(self, now: Optional[int] = None) -> dict:
        summary = self.engine.pool_summary(now)
        summary["vault"] = self.vault.to_dict()
        summary["admin"] = self.policy.admin
        summary["treasury"] = self.engine.treasury
        return summary


def build_service(
    cfg: TierStakeConfig,
    clock: Optional[Callable[[], int]] = None,
) -> StakingService:
    """Construct vault, tier table, engine and service from configuration."""
    ledger_cfg = cfg.ledger
    admin = ledger_cfg.admin
    if not admin and ledger_cfg.admin_seed:
        admin = Identity.from_seed(ledger_cfg.admin_seed).address
    if not admin:
        raise ValueError("Configure [ledger] admin or admin_seed")

    vault = TokenVault(ledger_cfg.staking_asset, ledger_cfg.reward_asset)
    for asset, allocations in cfg.genesis.balances.items():
        for address, amount in allocations.items():
            vault.mint(address, int(amount), asset)

    tiers = TierTable()
    for tier in cfg.tiers:
        tiers.add_tier(tier.lock_duration, tier.multiplier)

    engine = StakingEngine(
        vault,
        tiers,
        staking_cap=ledger_cfg.staking_cap,
        treasury=ledger_cfg.treasury or admin,
        reward_rate=ledger_cfg.reward_rate,
        early_exit_fee_bps=ledger_cfg.early_exit_fee_bps,
        clock=clock,
        check_invariants=ledger_cfg.check_invariants,
    )
    logger.info(
        "ledger ready: %d tiers, cap=%d, rate=%d/s, admin=%s",
        tiers.count, engine.staking_cap, engine.accumulator.reward_rate, admin,
    )
    return StakingService(engine, AccessPolicy(admin))
