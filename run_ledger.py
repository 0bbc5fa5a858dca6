#!/usr/bin/env python3
"""
TierStake Node Runner: starts an in-memory staking ledger with:
  - REST API (aiohttp) for signed deposit / withdraw / claim requests
  - Interactive CLI acting as a local identity

Usage:
    python run_ledger.py --config tierstake.toml --port 8080 --seed alice

Environment variables (alternative to flags):
    TIERSTAKE_API_HOST, TIERSTAKE_API_PORT, TIERSTAKE_ADMIN, TIERSTAKE_LOG_LEVEL
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import sys

# ---------------------------------------------------------------------------
# Ensure the project root is in sys.path so imports work before pip install
# ---------------------------------------------------------------------------
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from tierstake_core.api import APIServer  # noqa: E402
from tierstake_core.config import load_config  # noqa: E402
from tierstake_core.errors import StakingError  # noqa: E402
from tierstake_core.identity import Identity  # noqa: E402
from tierstake_core.logging_config import setup_logging  # noqa: E402
from tierstake_core.precision import format_ratio, multiplier_from_ratio  # noqa: E402
from tierstake_core.service import StakingService, build_service  # noqa: E402

logger = logging.getLogger("node")

DEV_STAKE_BALANCE = 1_000_000
DEV_REWARD_RESERVE = 10_000_000


# ===================================================================
#  Interactive CLI
# ===================================================================

HELP = """
╔══════════════════════════════════════════════════════════════╗
║  TierStake CLI                                                ║
╠══════════════════════════════════════════════════════════════╣
║  deposit <amount> <tier>      - Open a position               ║
║  withdraw <index>             - Withdraw an unlocked position ║
║  emergency-withdraw <index>   - Exit early: 10% fee, no reward║
║  claim                        - Harvest all pending rewards   ║
║  positions [account]          - List open positions           ║
║  info <index> [account]       - Show one position             ║
║  account [account]            - Stake total and balances      ║
║  balance [asset]              - Your custodial balance        ║
║  pool                         - Global accrual state          ║
║  tiers                        - Tier table                    ║
║  ── administrator ──                                          ║
║  add-tier <seconds> <mult>    - e.g. add-tier 2592000 1.5     ║
║  set-cap <cap>                - Set the staking cap           ║
║  set-rate <rate>              - Set reward units per second   ║
║  fund-rewards <amount>        - Move reward asset into vault  ║
║  recover <asset> <amt> [to]   - Recover a non-staking asset   ║
║  faucet <account> <amt> [asset] - Mint dev balances           ║
║  help / quit                                                  ║
╚══════════════════════════════════════════════════════════════╝
Position indices are stable: closed positions leave a tombstone and
their index is never reused.
"""


def run_command(service: StakingService, me: str, parts: list[str]) -> object:
    """Execute one CLI verb and return something printable."""
    cmd, args = parts[0].lower(), parts[1:]

    if cmd == "deposit":
        return service.deposit(me, int(args[0]), int(args[1])).to_dict()
    if cmd == "withdraw":
        return service.withdraw(me, int(args[0])).to_dict()
    if cmd == "emergency-withdraw":
        return service.emergency_withdraw(me, int(args[0])).to_dict()
    if cmd == "claim":
        return service.claim(me).to_dict()
    if cmd == "positions":
        return service.positions(args[0] if args else me)
    if cmd == "info":
        return service.position_info(args[1] if len(args) > 1 else me, int(args[0]))
    if cmd == "account":
        return service.account_summary(args[0] if args else me)
    if cmd == "balance":
        asset = args[0] if args else service.vault.staking_asset
        return {asset: service.vault.balance_of(me, asset)}
    if cmd == "pool":
        return service.pool()
    if cmd == "tiers":
        return [
            f"{t['tier']}: {t['lock_days']}d ({t['lock_duration']}s) at {format_ratio(t['multiplier'])}"
            for t in service.tiers()
        ]
    if cmd == "add-tier":
        return {"tier": service.add_tier(me, int(args[0]), multiplier_from_ratio(args[1]))}
    if cmd == "set-cap":
        return {"previous": service.set_staking_cap(me, int(args[0]))}
    if cmd == "set-rate":
        return {"previous": service.set_reward_rate(me, int(args[0]))}
    if cmd == "fund-rewards":
        service.fund_rewards(me, int(args[0]))
        return "funded"
    if cmd == "recover":
        service.recover_asset(me, args[0], int(args[1]), args[2] if len(args) > 2 else None)
        return "recovered"
    if cmd == "faucet":
        service.faucet(me, args[0], int(args[1]), args[2] if len(args) > 2 else None)
        return "minted"
    raise KeyError(cmd)


async def interactive_cli(service: StakingService, identity: Identity, api: APIServer | None):
    """Simple async CLI for interacting with the running ledger."""
    loop = asyncio.get_event_loop()
    me = identity.address
    print(HELP)
    print(f"Acting as {me}" + (" (administrator)" if service.policy.is_admin(me) else ""))

    while True:
        try:
            line = await loop.run_in_executor(None, lambda: input("\n[tierstake] > "))
            parts = line.strip().split()
            if not parts:
                continue
            cmd = parts[0].lower()

            if cmd == "help":
                print(HELP)
                continue
            if cmd in ("quit", "exit", "q"):
                print("Shutting down...")
                break

            result = run_command(service, me, parts)
            if isinstance(result, (dict, list)):
                print(json.dumps(result, indent=2, default=str))
            else:
                print(f"  {result}")

        except (EOFError, KeyboardInterrupt):
            print("\nShutting down...")
            break
        except StakingError as e:
            print(f"  Error [{e.code}]: {e}")
        except KeyError as e:
            print(f"  Unknown command: {e.args[0]}. Type 'help'.")
        except (IndexError, ValueError):
            print("  Bad arguments. Type 'help'.")

    if api is not None:
        await api.stop()


# ===================================================================
#  Main entry point
# ===================================================================

def parse_args():
    p = argparse.ArgumentParser(description="TierStake staking ledger node")
    p.add_argument("--config", default=None, help="Path to tierstake.toml config file")
    p.add_argument("--host", default=None, help="API listen host")
    p.add_argument("--port", type=int, default=None, help="API listen port")
    p.add_argument("--seed", default=os.environ.get("TIERSTAKE_SEED", "local-operator"),
                   help="Seed for the CLI's local identity")
    p.add_argument("--no-cli", action="store_true", help="Run without interactive CLI")
    p.add_argument("--no-api", action="store_true", help="Do not start the REST API")
    return p.parse_args()


async def main():
    args = parse_args()

    cfg = load_config(args.config)
    setup_logging(cfg.logging.level, cfg.logging.format, cfg.logging.file)

    identity = Identity.from_seed(args.seed)
    dev_mode = not cfg.ledger.admin and not cfg.ledger.admin_seed
    if dev_mode:
        logger.warning(
            "No administrator configured: running in dev mode with the local "
            "identity %s as administrator", identity.address,
        )
        cfg.ledger.admin = identity.address

    service = build_service(cfg)

    if dev_mode and not cfg.genesis.balances:
        service.faucet(identity.address, identity.address, DEV_STAKE_BALANCE)
        service.faucet(identity.address, identity.address, DEV_REWARD_RESERVE,
                       service.vault.reward_asset)
        service.fund_rewards(identity.address, DEV_REWARD_RESERVE)

    api = None
    if not args.no_api:
        host = args.host or cfg.api.host
        port = args.port or cfg.api.port
        api = APIServer(service, host=host, port=port, api_config=cfg.api)
        await api.start()

    if args.no_cli:
        try:
            while True:
                await asyncio.sleep(1)
        except (KeyboardInterrupt, asyncio.CancelledError):
            if api is not None:
                await api.stop()
    else:
        await interactive_cli(service, identity, api)


def main_sync():
    """Synchronous entry point for console_scripts."""
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())


if __name__ == "__main__":
    main_sync()
