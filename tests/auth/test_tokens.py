"""Tests for basestack.auth.tokens - HS256 signing built from primitives."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json

import pytest

from basestack.auth.tokens import (
    HEADER,
    TokenSigner,
    b64url_decode,
    b64url_encode,
    canonical_json,
    decode,
    mint,
    verify,
)
from basestack.core.errors import EmptySecret, InvalidClaims, MalformedToken, TokenError

ANON_CLAIMS = {"role": "anon", "iss": "supabase", "iat": 1643806800, "exp": 1801573200}


class TestEncodingHelpers:
    def test_b64url_has_no_padding(self):
        assert b64url_encode(b"a") == "YQ"
        assert b64url_encode(b"ab") == "YWI"
        assert "=" not in b64url_encode(b"\xff\xfe\xfd\xfc")

    def test_b64url_uses_url_alphabet(self):
        encoded = b64url_encode(b"\xfb\xff\xbf")
        assert "+" not in encoded and "/" not in encoded
        assert b64url_decode(encoded) == b"\xfb\xff\xbf"

    def test_canonical_json_is_compact_and_sorted(self):
        assert canonical_json({"b": 1, "a": "x"}) == b'{"a":"x","b":1}'

    def test_header_canonical_form(self):
        assert canonical_json(HEADER) == b'{"alg":"HS256","typ":"JWT"}'


class TestMint:
    def test_scenario_token_verifies(self):
        """secret "s3cr3t" with the anon claims verifies; a changed secret does not."""
        token = mint("s3cr3t", ANON_CLAIMS)

        header = json.loads(b64url_decode(token.encoded.split(".")[0]))
        assert header == {"alg": "HS256", "typ": "JWT"}
        assert token.header_segment == "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9"
        assert verify(token, "s3cr3t")
        assert not verify(token, "s3cr3T")
        assert not verify(token, "s3cr4t")

    def test_signature_matches_reference_hmac(self):
        token = mint("s3cr3t", ANON_CLAIMS)
        expected = hmac.new(
            b"s3cr3t", token.signing_input.encode("ascii"), hashlib.sha256
        ).digest()
        assert token.signature == base64.urlsafe_b64encode(expected).rstrip(b"=").decode()

    def test_deterministic(self):
        assert mint("k", ANON_CLAIMS).encoded == mint("k", ANON_CLAIMS).encoded

    def test_claim_order_does_not_matter(self):
        reordered = dict(reversed(list(ANON_CLAIMS.items())))
        assert mint("k", reordered).encoded == mint("k", ANON_CLAIMS).encoded

    def test_payload_round_trip(self):
        token = mint("k", ANON_CLAIMS)
        assert json.loads(b64url_decode(token.payload_segment)) == ANON_CLAIMS
        assert token.role == "anon"

    def test_three_segments(self):
        parts = mint("k", ANON_CLAIMS).encoded.split(".")
        assert len(parts) == 3
        assert all(parts)

    def test_str_is_encoded(self):
        token = mint("k", ANON_CLAIMS)
        assert str(token) == token.encoded

    def test_extra_claims_are_signed(self):
        token = mint("k", {**ANON_CLAIMS, "aud": "authenticated"})
        assert token.payload["aud"] == "authenticated"
        assert verify(token.encoded, "k")

    @pytest.mark.parametrize("missing", ["role", "iss", "iat", "exp"])
    def test_missing_claim_raises(self, missing):
        claims = {k: v for k, v in ANON_CLAIMS.items() if k != missing}
        with pytest.raises(InvalidClaims) as exc_info:
            mint("k", claims)
        assert exc_info.value.missing == [missing]

    def test_empty_secret_raises(self):
        with pytest.raises(EmptySecret):
            mint("", ANON_CLAIMS)

    def test_token_errors_share_a_base(self):
        assert issubclass(InvalidClaims, TokenError)
        assert issubclass(EmptySecret, TokenError)


class TestDecodeAndVerify:
    def test_decode_round_trip(self):
        token = mint("k", ANON_CLAIMS)
        decoded = decode(token.encoded)
        assert decoded == token

    def test_verify_accepts_string(self):
        token = mint("k", ANON_CLAIMS)
        assert verify(token.encoded, "k")

    def test_tampered_payload_fails(self):
        token = mint("k", ANON_CLAIMS)
        forged_payload = b64url_encode(canonical_json({**ANON_CLAIMS, "role": "service_role"}))
        forged = f"{token.header_segment}.{forged_payload}.{token.signature}"
        assert not verify(forged, "k")

    def test_non_ascii_signature_fails(self):
        token = mint("k", ANON_CLAIMS)
        assert verify(f"{token.header_segment}.{token.payload_segment}.sigé", "k") is False

    @pytest.mark.parametrize("value", ["", "a.b", "a..c", "a.b.c.d"])
    def test_wrong_segment_count(self, value):
        with pytest.raises(MalformedToken):
            decode(value)

    def test_non_json_segments(self):
        with pytest.raises(MalformedToken):
            decode("bm90IGpzb24.bm90IGpzb24.sig")

    def test_non_object_json(self):
        seg = b64url_encode(b"[1,2]")
        with pytest.raises(MalformedToken):
            decode(f"{seg}.{seg}.sig")

    def test_verify_empty_secret_raises(self):
        token = mint("k", ANON_CLAIMS)
        with pytest.raises(EmptySecret):
            verify(token, "")


class TestTokenSigner:
    def test_mint_and_verify(self):
        signer = TokenSigner("s3cr3t")
        token = signer.mint(ANON_CLAIMS)
        assert signer.verify(token)
        assert token.encoded == mint("s3cr3t", ANON_CLAIMS).encoded

    def test_other_signer_rejects(self):
        token = TokenSigner("one").mint(ANON_CLAIMS)
        assert not TokenSigner("two").verify(token)

    def test_empty_secret_rejected_at_construction(self):
        with pytest.raises(EmptySecret):
            TokenSigner("")
