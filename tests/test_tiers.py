"""
Tests for tierstake_core.tiers: the bounded, append-only tier table.
"""

import pytest

from tierstake_core.errors import CapacityExceeded, InvalidParameter
from tierstake_core.precision import PRECISION
from tierstake_core.tiers import MAX_TIERS, NEUTRAL_MULTIPLIER, Tier, TierTable


@pytest.fixture
def table():
    return TierTable()


class TestAddTier:
    def test_returns_insertion_index(self, table):
        assert table.add_tier(100, PRECISION) == 0
        assert table.add_tier(200, 2 * PRECISION) == 1
        assert table.count == 2
        assert table.get(1) == Tier(200, 2 * PRECISION)

    def test_capacity(self, table):
        for i in range(MAX_TIERS):
            table.add_tier(100 + i, PRECISION)
        with pytest.raises(CapacityExceeded):
            table.add_tier(999, PRECISION)
        assert table.count == MAX_TIERS

    def test_capacity_checked_before_values(self, table):
        for i in range(MAX_TIERS):
            table.add_tier(100 + i, PRECISION)
        with pytest.raises(CapacityExceeded):
            table.add_tier(0, 0)

    @pytest.mark.parametrize("duration, multiplier", [
        (0, PRECISION), (-5, PRECISION), (100, 0), (100, -1),
    ])
    def test_non_positive_values_rejected(self, table, duration, multiplier):
        with pytest.raises(InvalidParameter):
            table.add_tier(duration, multiplier)
        assert table.count == 0

    def test_float_rejected(self, table):
        with pytest.raises(InvalidParameter):
            table.add_tier(100.0, PRECISION)


class TestLookup:
    def test_get_out_of_range(self, table):
        table.add_tier(100, PRECISION)
        for bad in (-1, 1, 7):
            with pytest.raises(InvalidParameter):
                table.get(bad)

    def test_resolve_exact_match(self, table):
        table.add_tier(100, PRECISION)
        table.add_tier(200, 3 * PRECISION)
        assert table.resolve_multiplier(200) == 3 * PRECISION

    def test_resolve_falls_back_to_neutral(self, table):
        table.add_tier(100, 3 * PRECISION)
        assert table.resolve_multiplier(101) == NEUTRAL_MULTIPLIER == PRECISION

    def test_first_match_wins_for_duplicate_durations(self, table):
        table.add_tier(100, 2 * PRECISION)
        table.add_tier(100, 5 * PRECISION)
        assert table.resolve_multiplier(100) == 2 * PRECISION

    def test_to_list(self, table):
        table.add_tier(30 * 86_400, PRECISION * 3 // 2)
        [entry] = table.to_list()
        assert entry["tier"] == 0
        assert entry["lock_days"] == 30
        assert entry["multiplier_display"] == "1.5x"

    def test_snapshot_restore(self, table):
        table.add_tier(100, PRECISION)
        snap = table.snapshot()
        table.add_tier(200, PRECISION)
        table.restore(snap)
        assert table.count == 1
