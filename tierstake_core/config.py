"""
TOML-based configuration for TierStake nodes.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from tierstake_core.config import load_config
    cfg = load_config("tierstake.toml")

Example file:

    [ledger]
    staking_cap = 1_000_000_000
    reward_rate = 10
    admin_seed = "operator"

    [[tiers]]
    lock_duration = 2_592_000
    multiplier = "1.0"

    [genesis.balances.STK]
    rAlice = 5000
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from tierstake_core.precision import multiplier_from_ratio

DAY = 86_400


@dataclass
class LedgerConfig:
    """Ledger economics and administrator identity."""
    staking_asset: str = "STK"
    reward_asset: str = "RWD"
    staking_cap: int = 1_000_000_000_000
    reward_rate: int = 10                 # reward units per second, pool-wide
    early_exit_fee_bps: int = 1_000       # 10 % of principal
    admin: str = ""                       # administrator address
    admin_seed: str = ""                  # derive admin address from this seed when admin is empty
    treasury: str = ""                    # early-exit fee recipient (empty = admin)
    check_invariants: bool = True


@dataclass
class TierConfig:
    lock_duration: int
    multiplier: int                       # fixed point, PRECISION == 1x


def _default_tiers() -> list[TierConfig]:
    return [
        TierConfig(30 * DAY, multiplier_from_ratio("1.0")),
        TierConfig(90 * DAY, multiplier_from_ratio("1.25")),
        TierConfig(180 * DAY, multiplier_from_ratio("1.5")),
        TierConfig(365 * DAY, multiplier_from_ratio("2.0")),
    ]


@dataclass
class APIConfig:
    """REST API settings."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8080
    api_key: str = ""                 # require this key on POST endpoints (empty = no auth)
    rate_limit_rpm: int = 120          # max requests per minute per IP (0 = unlimited)
    max_body_bytes: int = 65_536


@dataclass
class GenesisConfig:
    """
    Initial custodial balances.

    ``balances`` maps asset → {address: amount}.  The vault's own
    address may appear here to pre-fund the reward reserve.
    """
    balances: dict[str, dict[str, int]] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class TierStakeConfig:
    """Top-level configuration container."""
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    tiers: list[TierConfig] = field(default_factory=_default_tiers)
    api: APIConfig = field(default_factory=APIConfig)
    genesis: GenesisConfig = field(default_factory=GenesisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def _parse_tiers(raw: list[dict[str, Any]]) -> list[TierConfig]:
    tiers = []
    for entry in raw:
        duration = entry.get("lock_duration")
        if duration is None and "lock_days" in entry:
            duration = int(entry["lock_days"]) * DAY
        if duration is None:
            raise ValueError(f"Tier entry needs lock_duration or lock_days: {entry!r}")
        tiers.append(TierConfig(
            lock_duration=int(duration),
            multiplier=multiplier_from_ratio(entry.get("multiplier", "1.0")),
        ))
    return tiers


def load_config(path: str | None = None) -> TierStakeConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        TIERSTAKE_ADMIN        -> ledger.admin
        TIERSTAKE_STAKING_CAP  -> ledger.staking_cap
        TIERSTAKE_REWARD_RATE  -> ledger.reward_rate
        TIERSTAKE_API_HOST     -> api.host
        TIERSTAKE_API_PORT     -> api.port (and enables the API)
        TIERSTAKE_API_KEY      -> api.api_key
        TIERSTAKE_LOG_LEVEL    -> logging.level
        TIERSTAKE_LOG_FMT      -> logging.format
    """
    cfg = TierStakeConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("ledger", cfg.ledger),
                ("api", cfg.api),
                ("genesis", cfg.genesis),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])
            if "tiers" in data:
                cfg.tiers = _parse_tiers(data["tiers"])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("TIERSTAKE_ADMIN"):
        cfg.ledger.admin = v
    if v := os.environ.get("TIERSTAKE_STAKING_CAP"):
        cfg.ledger.staking_cap = int(v)
    if v := os.environ.get("TIERSTAKE_REWARD_RATE"):
        cfg.ledger.reward_rate = int(v)
    if v := os.environ.get("TIERSTAKE_API_HOST"):
        cfg.api.host = v
    if v := os.environ.get("TIERSTAKE_API_PORT"):
        cfg.api.port = int(v)
        cfg.api.enabled = True
    if v := os.environ.get("TIERSTAKE_API_KEY"):
        cfg.api.api_key = v
    if v := os.environ.get("TIERSTAKE_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("TIERSTAKE_LOG_FMT"):
        cfg.logging.format = v

    return cfg
