"""
Administrator gating.

A single designated administrator may add tiers, change the staking cap
or reward rate, fund rewards and recover stray assets.  The check is an
explicit capability test run by the boundary layer before the engine is
invoked.
"""

from __future__ import annotations

import hmac
import logging

from tierstake_core.errors import Unauthorized

logger = logging.getLogger(__name__)


class AccessPolicy:

    def __init__(self, admin: str) -> None:
        if not admin:
            raise ValueError("An administrator address is required")
        self.admin = admin

    def is_admin(self, caller: str) -> bool:
        return hmac.compare_digest(caller.encode(), self.admin.encode())

    def require_admin(self, caller: str, operation: str = "") -> None:
        if not self.is_admin(caller):
            logger.warning("Rejected %s from non-administrator %s", operation or "admin call", caller)
            raise Unauthorized(f"{operation or 'operation'} is restricted to the administrator")
