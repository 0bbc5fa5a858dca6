"""
Caller identities for TierStake.

An identity is a secp256k1 key pair.  Its account address is derived
from the uncompressed public key:

    address = "r" + sha256(public_key).hex()[:40]

The REST API authenticates every mutating request with a DER ECDSA
signature over SHA-256 of the request message:

    message = METHOD + " " + path + "\\n" + body

so a signed body is only valid for the route it was signed for.  The
verified public key determines which account the request acts for.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from ecdsa import (
    BadSignatureError,
    MalformedPointError,
    SECP256k1,
    SigningKey,
    VerifyingKey,
)
from ecdsa.util import sigdecode_der, sigencode_der


def derive_address(public_key: bytes) -> str:
    return "r" + hashlib.sha256(public_key).hexdigest()[:40]


def request_message(method: str, path: str, body: bytes) -> bytes:
    """Bytes covered by a request signature."""
    return f"{method.upper()} {path}\n".encode() + body


@dataclass(frozen=True)
class Identity:
    private_key: bytes
    public_key: bytes       # 65 bytes, 0x04 || X || Y

    @classmethod
    def generate(cls) -> Identity:
        sk = SigningKey.generate(curve=SECP256k1)
        return cls(sk.to_string(), b"\x04" + sk.get_verifying_key().to_string())

    @classmethod
    def from_seed(cls, seed: str) -> Identity:
        """Deterministic identity for a seed phrase (dev / test use)."""
        secret = hashlib.sha256(seed.encode("utf-8")).digest()
        sk = SigningKey.from_string(secret, curve=SECP256k1)
        return cls(secret, b"\x04" + sk.get_verifying_key().to_string())

    @property
    def address(self) -> str:
        return derive_address(self.public_key)

    def sign(self, message: bytes) -> bytes:
        sk = SigningKey.from_string(self.private_key, curve=SECP256k1)
        return sk.sign_deterministic(
            message, hashfunc=hashlib.sha256, sigencode=sigencode_der,
        )

    def signed_headers(self, body: bytes, path: str, method: str = "POST") -> dict[str, str]:
        """HTTP headers that authenticate *body* sent to *method* *path*."""
        return {
            "X-Public-Key": self.public_key.hex(),
            "X-Signature": self.sign(request_message(method, path, body)).hex(),
        }


def verify_signature(public_key: bytes, message: bytes, signature: bytes) -> bool:
    try:
        vk = VerifyingKey.from_string(public_key, curve=SECP256k1)
        return vk.verify(
            signature, message, hashfunc=hashlib.sha256, sigdecode=sigdecode_der,
        )
    except (BadSignatureError, MalformedPointError, ValueError):
        return False
