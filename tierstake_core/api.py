"""
REST / HTTP API server for TierStake nodes.

Built on ``aiohttp``.

Endpoints
---------
GET  /health                                  Liveness + headline numbers
GET  /pool                                    Global accrual state and vault holdings
GET  /tiers                                   Tier table
GET  /accounts/{account}                      Stake total, position count, balances
GET  /accounts/{account}/positions            Open positions with pending reward
GET  /accounts/{account}/positions/{index}    One position
POST /deposit                {amount, tier}
POST /withdraw               {index}
POST /emergency-withdraw     {index}
POST /claim                  {}
POST /admin/tiers            {lock_duration, multiplier}      (administrator)
POST /admin/staking-cap      {cap}                            (administrator)
POST /admin/reward-rate      {rate}                           (administrator)
POST /admin/fund-rewards     {amount}                         (administrator)
POST /admin/recover          {asset, amount, to}              (administrator)

Position indices are stable: a closed position leaves a tombstone in its
slot and reads of it return 404; indices are never reused.

Authentication
--------------
Every POST must carry ``X-Public-Key`` (hex, uncompressed secp256k1) and
``X-Signature`` (hex DER ECDSA over SHA-256 of
``METHOD + " " + path + "\\n" + body``), so a signature is valid for one
route only.  The caller account is derived from the public key.  The JSON
body must contain an integer ``nonce`` strictly greater than the caller's
previous one.  A nonce is consumed once the signature and nonce check
pass, before the operation runs: a request that then fails (bad
parameters, insufficient balance, locked position) cannot be re-sent
with the same nonce and must be re-signed with a fresh one.

Security
--------
- Optional shared ``X-API-Key`` on POST endpoints (timing-safe compare).
- Per-IP token-bucket rate limiter (configurable RPM).
- Request body size cap (``max_body_bytes``).
- Amounts, indices and rates must be JSON integers; floats are rejected.

Errors are returned as ``{"error": code, "message": text}`` with an HTTP
status chosen by error kind.

Usage:
    api = APIServer(service, host="127.0.0.1", port=8080)
    await api.start()    # call inside existing event loop
    ...
    await api.stop()
"""

from __future__ import annotations

import hmac
import json
import logging
import time
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from aiohttp import web

from tierstake_core.errors import (
    ArithmeticOverflow,
    CapacityExceeded,
    InvalidParameter,
    InvalidState,
    InvariantViolation,
    NotFound,
    StakingError,
    TransferFailure,
    Unauthorized,
)
from tierstake_core.identity import derive_address, request_message, verify_signature
from tierstake_core.precision import multiplier_from_ratio

if TYPE_CHECKING:
    from tierstake_core.config import APIConfig
    from tierstake_core.service import StakingService

logger = logging.getLogger("tierstake_api")

_STATUS_BY_ERROR: dict[type, int] = {
    InvalidParameter: 400,
    TransferFailure: 402,
    Unauthorized: 403,
    NotFound: 404,
    InvalidState: 409,
    CapacityExceeded: 409,
    ArithmeticOverflow: 422,
    InvariantViolation: 500,
}


def _status_for(exc: StakingError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]
    return 400


# ═══════════════════════════════════════════════════════════════════
#  Input helpers
# ═══════════════════════════════════════════════════════════════════

def _safe_int(value: Any, name: str = "value") -> int:
    """Accept JSON integers (or integer strings); reject floats and bools."""
    if isinstance(value, bool) or isinstance(value, float):
        raise web.HTTPBadRequest(text=f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise web.HTTPBadRequest(text=f"{name} must be an integer")


def _require(body: dict, name: str) -> Any:
    if name not in body:
        raise web.HTTPBadRequest(text=f"{name} required")
    return body[name]


# ═══════════════════════════════════════════════════════════════════
#  Rate Limiter (per-IP token bucket)
# ═══════════════════════════════════════════════════════════════════

class _TokenBucket:
    """Simple per-IP token-bucket rate limiter."""

    __slots__ = ("_buckets", "_rpm")

    def __init__(self, rpm: int):
        self._rpm = rpm  # 0 = unlimited
        # ip -> (tokens, last_refill_timestamp)
        self._buckets: dict[str, list[float]] = defaultdict(lambda: [float(rpm), time.monotonic()])

    def allow(self, ip: str) -> bool:
        if self._rpm <= 0:
            return True
        bucket = self._buckets[ip]
        now = time.monotonic()
        elapsed = now - bucket[1]
        bucket[0] = min(float(self._rpm), bucket[0] + elapsed * (self._rpm / 60.0))
        bucket[1] = now
        if bucket[0] >= 1.0:
            bucket[0] -= 1.0
            return True
        return False


# ═══════════════════════════════════════════════════════════════════
#  Middleware factories
# ═══════════════════════════════════════════════════════════════════

def _make_rate_limit_middleware(bucket: _TokenBucket):
    """aiohttp middleware that enforces per-IP rate limits."""

    @web.middleware
    async def rate_limit_middleware(request: web.Request, handler):
        ip = request.remote or "unknown"
        if not bucket.allow(ip):
            raise web.HTTPTooManyRequests(
                text="Rate limit exceeded. Try again later.",
                headers={"Retry-After": "5"},
            )
        return await handler(request)

    return rate_limit_middleware


def _make_api_key_middleware(api_key: str):
    """aiohttp middleware that requires a shared API key on POST."""

    @web.middleware
    async def api_key_middleware(request: web.Request, handler):
        if request.method == "POST":
            key = request.headers.get("X-API-Key", "")
            if not hmac.compare_digest(key, api_key):
                raise web.HTTPUnauthorized(text="Invalid or missing API key")
        return await handler(request)

    return api_key_middleware


@web.middleware
async def _staking_error_middleware(request: web.Request, handler):
    """Translate ledger errors into JSON responses."""
    try:
        return await handler(request)
    except StakingError as exc:
        status = _status_for(exc)
        if status >= 500:
            logger.error(f"{request.method} {request.path}: {exc}")
        return web.json_response(exc.to_dict(), status=status)


class APIServer:
    """Thin aiohttp wrapper around a ``StakingService``."""

    def __init__(
        self,
        service: StakingService,
        host: str = "127.0.0.1",
        port: int = 8080,
        *,
        api_config: APIConfig | None = None,
    ):
        self.service = service
        self.host = host
        self.port = port
        self._api_config = api_config
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._nonces: dict[str, int] = {}

    # ── lifecycle ────────────────────────────────────────────────

    def build_app(self) -> web.Application:
        middlewares: list = []
        max_body = 65_536

        if self._api_config is not None:
            cfg = self._api_config
            max_body = cfg.max_body_bytes
            if cfg.rate_limit_rpm > 0:
                middlewares.append(_make_rate_limit_middleware(_TokenBucket(cfg.rate_limit_rpm)))
            if cfg.api_key:
                middlewares.append(_make_api_key_middleware(cfg.api_key))

        middlewares.append(_staking_error_middleware)
        app = web.Application(middlewares=middlewares, client_max_size=max_body)
        self._register_routes(app)
        self._app = app
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"API listening on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()

    # ── routes ───────────────────────────────────────────────────

    def _register_routes(self, app: web.Application) -> None:
        app.router.add_get("/health", self._health)
        app.router.add_get("/pool", self._pool)
        app.router.add_get("/tiers", self._tiers)
        app.router.add_get("/accounts/{account}", self._account)
        app.router.add_get("/accounts/{account}/positions", self._positions)
        app.router.add_get("/accounts/{account}/positions/{index}", self._position)
        # Account verbs
        app.router.add_post("/deposit", self._deposit)
        app.router.add_post("/withdraw", self._withdraw)
        app.router.add_post("/emergency-withdraw", self._emergency_withdraw)
        app.router.add_post("/claim", self._claim)
        # Administrative verbs
        app.router.add_post("/admin/tiers", self._admin_add_tier)
        app.router.add_post("/admin/staking-cap", self._admin_staking_cap)
        app.router.add_post("/admin/reward-rate", self._admin_reward_rate)
        app.router.add_post("/admin/fund-rewards", self._admin_fund_rewards)
        app.router.add_post("/admin/recover", self._admin_recover)

    # ── authentication ───────────────────────────────────────────

    async def _signed_body(self, request: web.Request) -> tuple[str, dict]:
        """Verify the request signature; return ``(caller, body)``."""
        raw = await request.read()
        try:
            public_key = bytes.fromhex(request.headers.get("X-Public-Key", ""))
            signature = bytes.fromhex(request.headers.get("X-Signature", ""))
        except ValueError as exc:
            raise web.HTTPUnauthorized(text="Malformed signature headers") from exc
        message = request_message(request.method, request.path, raw)
        if not public_key or not signature or not verify_signature(public_key, message, signature):
            raise web.HTTPUnauthorized(text="Invalid or missing request signature")

        try:
            body = json.loads(raw or b"{}")
        except json.JSONDecodeError as exc:
            raise web.HTTPBadRequest(text="Invalid JSON body") from exc
        if not isinstance(body, dict):
            raise web.HTTPBadRequest(text="JSON body must be an object")

        caller = derive_address(public_key)
        nonce = _safe_int(_require(body, "nonce"), "nonce")
        if nonce <= self._nonces.get(caller, -1):
            raise web.HTTPConflict(text="Stale nonce")
        self._nonces[caller] = nonce
        return caller, body

    # ── read handlers ────────────────────────────────────────────

    async def _health(self, _request: web.Request) -> web.Response:
        engine = self.service.engine
        return web.json_response({
            "ok": True,
            "tier_count": engine.tier_count(),
            "total_staked": engine.accumulator.total_staked,
        })

    async def _pool(self, _request: web.Request) -> web.Response:
        return web.json_response(self.service.pool(), dumps=_json_dumps)

    async def _tiers(self, _request: web.Request) -> web.Response:
        return web.json_response({"tiers": self.service.tiers()}, dumps=_json_dumps)

    async def _account(self, request: web.Request) -> web.Response:
        account = request.match_info["account"]
        return web.json_response(self.service.account_summary(account), dumps=_json_dumps)

    async def _positions(self, request: web.Request) -> web.Response:
        account = request.match_info["account"]
        positions = self.service.positions(account)
        return web.json_response(
            {"account": account, "positions": positions}, dumps=_json_dumps,
        )

    async def _position(self, request: web.Request) -> web.Response:
        account = request.match_info["account"]
        index = _safe_int(request.match_info["index"], "index")
        return web.json_response(self.service.position_info(account, index), dumps=_json_dumps)

    # ── account verb handlers ────────────────────────────────────

    async def _deposit(self, request: web.Request) -> web.Response:
        caller, body = await self._signed_body(request)
        amount = _safe_int(_require(body, "amount"), "amount")
        tier = _safe_int(_require(body, "tier"), "tier")
        receipt = self.service.deposit(caller, amount, tier)
        return web.json_response(receipt.to_dict(), dumps=_json_dumps)

    async def _withdraw(self, request: web.Request) -> web.Response:
        caller, body = await self._signed_body(request)
        index = _safe_int(_require(body, "index"), "index")
        receipt = self.service.withdraw(caller, index)
        return web.json_response(receipt.to_dict(), dumps=_json_dumps)

    async def _emergency_withdraw(self, request: web.Request) -> web.Response:
        caller, body = await self._signed_body(request)
        index = _safe_int(_require(body, "index"), "index")
        receipt = self.service.emergency_withdraw(caller, index)
        return web.json_response(receipt.to_dict(), dumps=_json_dumps)

    async def _claim(self, request: web.Request) -> web.Response:
        caller, _body = await self._signed_body(request)
        receipt = self.service.claim(caller)
        return web.json_response(receipt.to_dict(), dumps=_json_dumps)

    # ── administrative handlers ──────────────────────────────────

    async def _admin_add_tier(self, request: web.Request) -> web.Response:
        caller, body = await self._signed_body(request)
        lock_duration = _safe_int(_require(body, "lock_duration"), "lock_duration")
        multiplier = multiplier_from_ratio(_require(body, "multiplier"))
        index = self.service.add_tier(caller, lock_duration, multiplier)
        return web.json_response({"status": "added", "tier": index, "multiplier": multiplier})

    async def _admin_staking_cap(self, request: web.Request) -> web.Response:
        caller, body = await self._signed_body(request)
        cap = _safe_int(_require(body, "cap"), "cap")
        previous = self.service.set_staking_cap(caller, cap)
        return web.json_response({"status": "updated", "previous": previous, "cap": cap})

    async def _admin_reward_rate(self, request: web.Request) -> web.Response:
        caller, body = await self._signed_body(request)
        rate = _safe_int(_require(body, "rate"), "rate")
        previous = self.service.set_reward_rate(caller, rate)
        return web.json_response({"status": "updated", "previous": previous, "rate": rate})

    async def _admin_fund_rewards(self, request: web.Request) -> web.Response:
        caller, body = await self._signed_body(request)
        amount = _safe_int(_require(body, "amount"), "amount")
        self.service.fund_rewards(caller, amount)
        return web.json_response({"status": "funded", "amount": amount})

    async def _admin_recover(self, request: web.Request) -> web.Response:
        caller, body = await self._signed_body(request)
        asset = str(_require(body, "asset"))
        amount = _safe_int(_require(body, "amount"), "amount")
        to = body.get("to") or caller
        self.service.recover_asset(caller, asset, amount, to)
        return web.json_response({"status": "recovered", "asset": asset, "amount": amount, "to": to})


def _json_dumps(obj: Any) -> str:
    """JSON serialiser that handles non-standard types."""
    return json.dumps(obj, default=str)
