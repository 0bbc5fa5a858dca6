"""
Tests for tierstake_core.accumulator: lazy reward-per-share accrual.
"""

import pytest

from tierstake_core.accumulator import AccrualAccumulator
from tierstake_core.errors import ArithmeticOverflow, InvalidParameter, InvariantViolation
from tierstake_core.precision import MAX_ACCRUAL_SECONDS, MAX_REWARD_RATE, PRECISION


@pytest.fixture
def acc():
    return AccrualAccumulator(reward_rate=10, start_time=1000)


class TestRefresh:
    def test_accrues_rate_times_elapsed_per_share(self, acc):
        acc.add_stake(1000)
        acc.refresh(1100)
        assert acc.acc_reward_per_share == 100 * 10 * PRECISION // 1000
        assert acc.last_update == 1100

    def test_no_accrual_while_nothing_staked(self, acc):
        acc.refresh(5000)
        assert acc.acc_reward_per_share == 0
        assert acc.last_update == 5000

    def test_past_or_equal_time_is_noop(self, acc):
        acc.add_stake(1000)
        acc.refresh(1100)
        value = acc.acc_reward_per_share
        acc.refresh(1100)
        acc.refresh(1050)
        assert acc.acc_reward_per_share == value
        assert acc.last_update == 1100

    def test_monotonic_over_many_refreshes(self, acc):
        acc.add_stake(7)
        seen = []
        for t in range(1001, 1100, 7):
            acc.refresh(t)
            seen.append(acc.acc_reward_per_share)
        assert seen == sorted(seen)

    def test_overflow_past_accrual_horizon_is_reported(self):
        acc = AccrualAccumulator(reward_rate=MAX_REWARD_RATE, start_time=0)
        acc.add_stake(1)
        with pytest.raises(ArithmeticOverflow):
            acc.refresh(2 * MAX_ACCRUAL_SECONDS)

    def test_max_rate_survives_full_horizon(self):
        acc = AccrualAccumulator(reward_rate=MAX_REWARD_RATE, start_time=0)
        acc.add_stake(1)
        acc.refresh(MAX_ACCRUAL_SECONDS)
        assert acc.acc_reward_per_share == MAX_ACCRUAL_SECONDS * MAX_REWARD_RATE * PRECISION


class TestProjected:
    def test_projected_matches_refresh_without_mutating(self, acc):
        acc.add_stake(400)
        projected = acc.projected(1300)
        assert acc.acc_reward_per_share == 0
        assert acc.last_update == 1000
        acc.refresh(1300)
        assert acc.acc_reward_per_share == projected


class TestRate:
    def test_set_rate_settles_old_rate_first(self, acc):
        acc.add_stake(1000)
        previous = acc.set_rate(20, 1100)
        assert previous == 10
        assert acc.acc_reward_per_share == PRECISION       # 100s × 10 / 1000
        acc.refresh(1150)
        assert acc.acc_reward_per_share == 2 * PRECISION   # + 50s × 20 / 1000

    def test_negative_rate_rejected(self, acc):
        with pytest.raises(InvalidParameter):
            acc.set_rate(-1, 1100)
        assert acc.reward_rate == 10

    def test_rate_above_maximum_rejected(self, acc):
        acc.add_stake(1000)
        with pytest.raises(InvalidParameter):
            acc.set_rate(MAX_REWARD_RATE + 1, 1100)
        assert acc.reward_rate == 10
        assert acc.last_update == 1000
        assert acc.set_rate(MAX_REWARD_RATE, 1100) == 10

    def test_constructor_rejects_rate_above_maximum(self):
        with pytest.raises(InvalidParameter):
            AccrualAccumulator(reward_rate=2 ** 200)

    def test_zero_rate_stops_accrual(self, acc):
        acc.add_stake(1000)
        acc.set_rate(0, 1000)
        acc.refresh(9999)
        assert acc.acc_reward_per_share == 0


class TestStake:
    def test_remove_more_than_staked(self, acc):
        acc.add_stake(10)
        with pytest.raises(InvariantViolation):
            acc.remove_stake(11)

    def test_snapshot_restore(self, acc):
        acc.add_stake(10)
        state = acc.snapshot()
        acc.refresh(2000)
        acc.add_stake(5)
        acc.restore(state)
        assert acc.to_dict() == {
            "total_staked": 10,
            "reward_rate": 10,
            "last_update": 1000,
            "acc_reward_per_share": 0,
        }
