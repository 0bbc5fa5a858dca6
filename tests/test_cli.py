"""Tests for the node CLI command dispatcher."""

import pytest

from run_ledger import run_command
from tierstake_core.errors import Unauthorized
from tierstake_core.precision import PRECISION


class TestRunCommand:
    def test_account_verbs(self, service, clock):
        receipt = run_command(service, "rAlice", ["deposit", "1000", "0"])
        assert receipt["index"] == 0
        clock.advance(100)
        assert run_command(service, "rAlice", ["claim"])["reward"] == 1000
        assert run_command(service, "rAlice", ["emergency-withdraw", "0"])["fee"] == 100

    def test_reads(self, service):
        run_command(service, "rBob", ["deposit", "500", "1"])
        assert [p["index"] for p in run_command(service, "rAlice", ["positions", "rBob"])] == [0]
        assert run_command(service, "rAlice", ["info", "0", "rBob"])["amount"] == 500
        assert run_command(service, "rBob", ["account"])["total_staked"] == 500
        assert run_command(service, "rBob", ["balance"]) == {"STK": 100_000 - 500}
        assert run_command(service, "rBob", ["balance", "RWD"]) == {"RWD": 0}
        assert run_command(service, "rBob", ["pool"])["total_staked"] == 500
        assert run_command(service, "rBob", ["tiers"])[1].endswith("1.5x")

    def test_admin_verbs(self, service, admin_identity):
        admin = admin_identity.address
        assert run_command(service, admin, ["add-tier", "600", "2.5"]) == {"tier": 3}
        assert service.engine.tiers.get(3).multiplier == PRECISION * 5 // 2
        assert run_command(service, admin, ["set-cap", "10"]) == {"previous": 1_000_000}
        assert run_command(service, admin, ["faucet", "rDave", "5"]) == "minted"
        assert service.vault.balance_of("rDave", "STK") == 5

    def test_admin_verb_rejected(self, service):
        with pytest.raises(Unauthorized):
            run_command(service, "rAlice", ["set-rate", "1"])

    def test_unknown_command(self, service):
        with pytest.raises(KeyError):
            run_command(service, "rAlice", ["frobnicate"])

    def test_missing_arguments(self, service):
        with pytest.raises(IndexError):
            run_command(service, "rAlice", ["withdraw"])
