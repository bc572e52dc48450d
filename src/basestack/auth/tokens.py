"""HS256 token signing for service-to-service credentials.

Builds compact ``header.payload.signature`` tokens from a symmetric secret
using only ``hmac``/``hashlib``. The gateway, REST and storage services
all verify these tokens with the shared JWT secret, so the encoding must
match the JWT compact serialisation exactly: unpadded base64url segments
and an HMAC-SHA256 signature over ``segment1 + "." + segment2``.

Key Concepts:
    Token: Frozen value holding the decoded header, payload and the
        signature segment. ``str(token)`` is the compact string.
    mint: Pure function ``(secret, claims) -> Token``. Deterministic.
    verify: Recompute and constant-time compare the signature.
    TokenSigner: Binds one secret for minting several tokens.

Architecture Decisions:
    - Canonical compact JSON (``sort_keys=True``, no whitespace) so the
      same claims always yield byte-identical tokens.
    - No third-party JWT library: the signing protocol is three lines of
      stdlib and keeps the byte layout under our control.

Tags:
    jwt, hs256, hmac, tokens, credentials
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from basestack.core.errors import EmptySecret, InvalidClaims, MalformedToken

HEADER: dict[str, str] = {"alg": "HS256", "typ": "JWT"}

REQUIRED_CLAIMS: tuple[str, ...] = ("role", "iss", "iat", "exp")


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------


def b64url_encode(data: bytes) -> str:
    """Base64url-encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    """Decode an unpadded base64url segment."""
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def canonical_json(data: Mapping[str, Any]) -> bytes:
    """Serialize a mapping as compact, key-sorted JSON."""
    return json.dumps(dict(data), separators=(",", ":"), sort_keys=True).encode("utf-8")


def _secret_bytes(secret: str | bytes) -> bytes:
    key = secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)
    if not key:
        raise EmptySecret()
    return key


def _sign(signing_input: str, key: bytes) -> str:
    digest = hmac.new(key, signing_input.encode("ascii"), hashlib.sha256).digest()
    return b64url_encode(digest)


# ---------------------------------------------------------------------------
# Token
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Token:
    """A minted token: decoded header and payload plus its signature segment."""

    header: Mapping[str, Any]
    payload: Mapping[str, Any]
    signature: str
    header_segment: str
    payload_segment: str

    @property
    def signing_input(self) -> str:
        return f"{self.header_segment}.{self.payload_segment}"

    @property
    def encoded(self) -> str:
        """The compact three-segment string."""
        return f"{self.signing_input}.{self.signature}"

    @property
    def role(self) -> str:
        return str(self.payload.get("role", ""))

    def __str__(self) -> str:
        return self.encoded


def mint(secret: str | bytes, claims: Mapping[str, Any]) -> Token:
    """Mint a signed token for ``claims`` under ``secret``.

    Raises
    ------
    InvalidClaims
        If any of ``role``, ``iss``, ``iat``, ``exp`` is absent.
    EmptySecret
        If ``secret`` is zero-length.
    """
    missing = [key for key in REQUIRED_CLAIMS if key not in claims]
    if missing:
        raise InvalidClaims(missing)
    key = _secret_bytes(secret)

    header_segment = b64url_encode(canonical_json(HEADER))
    payload_segment = b64url_encode(canonical_json(claims))
    signature = _sign(f"{header_segment}.{payload_segment}", key)

    return Token(
        header=dict(HEADER),
        payload=dict(claims),
        signature=signature,
        header_segment=header_segment,
        payload_segment=payload_segment,
    )


def decode(encoded: str) -> Token:
    """Split a compact token string into a ``Token`` without verifying it."""
    parts = encoded.split(".")
    if len(parts) != 3 or not all(parts):
        raise MalformedToken("Token must have three non-empty dot-separated segments")
    header_segment, payload_segment, signature = parts
    try:
        header = json.loads(b64url_decode(header_segment))
        payload = json.loads(b64url_decode(payload_segment))
    except (ValueError, UnicodeDecodeError) as exc:
        raise MalformedToken(f"Token segments are not base64url JSON: {exc}", cause=exc) from exc
    if not isinstance(header, dict) or not isinstance(payload, dict):
        raise MalformedToken("Token header and payload must be JSON objects")
    return Token(
        header=header,
        payload=payload,
        signature=signature,
        header_segment=header_segment,
        payload_segment=payload_segment,
    )


def verify(token: Token | str, secret: str | bytes) -> bool:
    """Return True if the token's signature verifies under ``secret``."""
    if isinstance(token, str):
        token = decode(token)
    expected = _sign(token.signing_input, _secret_bytes(secret))
    # bytes: compare_digest raises TypeError on non-ASCII str
    return hmac.compare_digest(expected.encode("ascii"), token.signature.encode("utf-8"))


class TokenSigner:
    """Mints and verifies tokens under one bound secret.

    Example::

        signer = TokenSigner(secret)
        anon = signer.mint({"role": "anon", "iss": "supabase", "iat": 0, "exp": 1})
        assert signer.verify(anon)
    """

    def __init__(self, secret: str | bytes) -> None:
        self._key = _secret_bytes(secret)

    def mint(self, claims: Mapping[str, Any]) -> Token:
        return mint(self._key, claims)

    def verify(self, token: Token | str) -> bool:
        return verify(token, self._key)


__all__ = [
    "HEADER",
    "REQUIRED_CLAIMS",
    "Token",
    "TokenSigner",
    "b64url_decode",
    "b64url_encode",
    "canonical_json",
    "decode",
    "mint",
    "verify",
]
