"""Tests for caller identities and request signatures."""

import pytest

from tierstake_core.identity import Identity, derive_address, request_message, verify_signature


class TestIdentity:
    def test_seed_is_deterministic(self):
        a = Identity.from_seed("seed")
        b = Identity.from_seed("seed")
        assert a == b
        assert a.address == b.address
        assert Identity.from_seed("other").address != a.address

    def test_address_format(self):
        ident = Identity.generate()
        assert len(ident.public_key) == 65
        assert ident.public_key[0] == 0x04
        assert ident.address.startswith("r")
        assert len(ident.address) == 41
        assert ident.address == derive_address(ident.public_key)

    def test_signatures_are_deterministic(self):
        ident = Identity.from_seed("seed")
        assert ident.sign(b"body") == ident.sign(b"body")


class TestVerify:
    @pytest.fixture
    def ident(self):
        return Identity.from_seed("verifier")

    def test_valid_signature(self, ident):
        sig = ident.sign(b'{"nonce": 1}')
        assert verify_signature(ident.public_key, b'{"nonce": 1}', sig)

    def test_tampered_message(self, ident):
        sig = ident.sign(b'{"amount": 1}')
        assert not verify_signature(ident.public_key, b'{"amount": 9}', sig)

    def test_wrong_key(self, ident):
        sig = ident.sign(b"x")
        other = Identity.from_seed("someone-else")
        assert not verify_signature(other.public_key, b"x", sig)

    @pytest.mark.parametrize("public_key", [b"", b"\x04" + b"\x00" * 64, b"junk"])
    def test_malformed_key(self, ident, public_key):
        assert not verify_signature(public_key, b"x", ident.sign(b"x"))

    def test_malformed_signature(self, ident):
        assert not verify_signature(ident.public_key, b"x", b"\x30\x01")

    def test_signed_headers(self, ident):
        headers = ident.signed_headers(b"payload", "/claim")
        signature = bytes.fromhex(headers["X-Signature"])
        assert bytes.fromhex(headers["X-Public-Key"]) == ident.public_key
        assert verify_signature(
            ident.public_key, request_message("POST", "/claim", b"payload"), signature,
        )
        assert not verify_signature(ident.public_key, b"payload", signature)

    def test_signed_headers_bound_to_route(self, ident):
        signature = bytes.fromhex(ident.signed_headers(b"{}", "/withdraw")["X-Signature"])
        for method, path in (("POST", "/emergency-withdraw"), ("GET", "/withdraw")):
            assert not verify_signature(
                ident.public_key, request_message(method, path, b"{}"), signature,
            )


class TestRequestMessage:
    def test_layout(self):
        assert request_message("post", "/deposit", b"{}") == b"POST /deposit\n{}"

    def test_path_and_body_cannot_be_shifted(self):
        assert request_message("POST", "/a", b"b") != request_message("POST", "/ab", b"")
