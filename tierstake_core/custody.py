"""
Custodial asset ledger consumed by the staking engine.

The engine never touches balances directly; it calls ``transfer_in`` to
take custody of a deposit and ``transfer_out`` to pay principal, rewards
and fees.  ``TokenVault`` is the in-memory custodian used by the node
and the tests: a per-asset balance table in which the vault itself is
just another address.

Any custodian that also offers ``snapshot()`` / ``restore()`` takes part
in the engine's all-or-nothing rollback.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Optional, Protocol, runtime_checkable

from tierstake_core.errors import InvalidParameter, TransferFailure
from tierstake_core.precision import require_int

logger = logging.getLogger(__name__)

VAULT_ADDRESS = "rTierStakeVault"


@runtime_checkable
class Custodian(Protocol):

    staking_asset: str
    reward_asset: str

    def transfer_in(self, account: str, amount: int, asset: Optional[str] = None) -> None:
        ...

    def transfer_out(self, account: str, amount: int, asset: Optional[str] = None) -> None:
        ...

    def holdings(self, asset: Optional[str] = None) -> int:
        ...


class TokenVault:
    """In-memory multi-asset custodian."""

    def __init__(
        self,
        staking_asset: str = "STK",
        reward_asset: str = "RWD",
        vault_address: str = VAULT_ADDRESS,
    ) -> None:
        self.staking_asset = staking_asset
        self.reward_asset = reward_asset
        self.vault_address = vault_address
        self.balances: dict[str, dict[str, int]] = {}

    # ── balances ────────────────────────────────────────────────────

    def balance_of(self, account: str, asset: Optional[str] = None) -> int:
        asset = asset or self.staking_asset
        return self.balances.get(asset, {}).get(account, 0)

    def holdings(self, asset: Optional[str] = None) -> int:
        """Amount of *asset* currently held by the vault."""
        return self.balance_of(self.vault_address, asset)

    def mint(self, account: str, amount: int, asset: Optional[str] = None) -> None:
        """Credit *account* out of thin air (genesis allocations, faucet)."""
        amount = require_int(amount, "amount")
        if amount <= 0:
            raise InvalidParameter("mint amount must be positive")
        asset = asset or self.staking_asset
        book = self.balances.setdefault(asset, {})
        book[account] = book.get(account, 0) + amount

    def transfer(self, asset: str, source: str, destination: str, amount: int) -> None:
        if amount <= 0:
            raise TransferFailure(f"Transfer amount must be positive, got {amount}")
        book = self.balances.setdefault(asset, {})
        have = book.get(source, 0)
        if have < amount:
            raise TransferFailure(
                f"Insufficient {asset} balance on {source}: have {have}, need {amount}"
            )
        book[source] = have - amount
        book[destination] = book.get(destination, 0) + amount
        logger.debug("transfer %d %s %s -> %s", amount, asset, source, destination)

    def transfer_in(self, account: str, amount: int, asset: Optional[str] = None) -> None:
        self.transfer(asset or self.staking_asset, account, self.vault_address, amount)

    def transfer_out(self, account: str, amount: int, asset: Optional[str] = None) -> None:
        self.transfer(asset or self.staking_asset, self.vault_address, account, amount)

    # ── rollback support ────────────────────────────────────────────

    def snapshot(self) -> dict[str, dict[str, int]]:
        return copy.deepcopy(self.balances)

    def restore(self, snap: dict[str, dict[str, int]]) -> None:
        self.balances = snap

    def to_dict(self) -> dict[str, Any]:
        return {
            "vault_address": self.vault_address,
            "staking_asset": self.staking_asset,
            "reward_asset": self.reward_asset,
            "holdings": {
                asset: book.get(self.vault_address, 0)
                for asset, book in self.balances.items()
            },
        }
