"""
Shared pytest fixtures for the TierStake test suite.
"""

import pytest

from tierstake_core.access import AccessPolicy
from tierstake_core.custody import TokenVault
from tierstake_core.engine import StakingEngine
from tierstake_core.identity import Identity
from tierstake_core.precision import PRECISION
from tierstake_core.service import StakingService
from tierstake_core.tiers import TierTable

DAY = 86_400
T0 = 1_700_000_000

# (lock_duration, multiplier) used by the default engine fixture
TEST_TIERS = [
    (30 * DAY, PRECISION),              # tier 0: 1x
    (90 * DAY, PRECISION * 3 // 2),     # tier 1: 1.5x
    (180 * DAY, PRECISION * 2),         # tier 2: 2x
]


class FakeClock:
    """Manually advanced integer clock."""

    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


def make_engine(clock, vault=None, *, staking_cap=1_000_000, reward_rate=10, **kwargs):
    vault = vault if vault is not None else TokenVault("STK", "RWD")
    tiers = TierTable()
    for duration, multiplier in TEST_TIERS:
        tiers.add_tier(duration, multiplier)
    return StakingEngine(
        vault,
        tiers,
        staking_cap=staking_cap,
        treasury="rTreasury",
        reward_rate=reward_rate,
        clock=clock,
        **kwargs,
    )


def fund(vault, *, stake=100_000, reserve=10 ** 12, accounts=("rAlice", "rBob", "rCarol")):
    for account in accounts:
        vault.mint(account, stake, "STK")
    vault.mint(vault.vault_address, reserve, "RWD")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def vault():
    return TokenVault("STK", "RWD")


@pytest.fixture
def engine(clock, vault):
    """Engine at 10 reward units/second with funded accounts and reserve."""
    fund(vault)
    return make_engine(clock, vault)


@pytest.fixture
def admin_identity():
    return Identity.from_seed("admin-fixture-seed")


@pytest.fixture
def alice_identity():
    return Identity.from_seed("alice-fixture-seed")


@pytest.fixture
def service(engine, admin_identity):
    engine.custodian.mint(admin_identity.address, 10 ** 9, "RWD")
    return StakingService(engine, AccessPolicy(admin_identity.address))
