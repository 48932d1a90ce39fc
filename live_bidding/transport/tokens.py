"""Bearer tokens signed with Ed25519 over canonical JSON claims.

A token is ``<claims>.<signature>`` where both parts are unpadded base64url;
``claims`` is the canonical JSON encoding of ``{"sub", "name", "exp"}``.
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timedelta
from typing import Any

import orjson
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from .canonical_json import canonical_dumps
from .timestamps import TimestampError, format_timestamp, parse_timestamp, utcnow


class TokenError(ValueError):
    """Raised when a bearer token is malformed, forged or expired."""


def load_public_key(pem: str) -> Ed25519PublicKey:
    if not pem:
        raise TokenError("public key missing")
    key = serialization.load_pem_public_key(pem.encode("utf-8"))
    if not isinstance(key, Ed25519PublicKey):
        raise TokenError("public key is not an Ed25519 key")
    return key


def load_private_key(pem: str) -> Ed25519PrivateKey:
    if not pem:
        raise TokenError("private key missing")
    key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    if not isinstance(key, Ed25519PrivateKey):
        raise TokenError("private key is not an Ed25519 key")
    return key


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def issue_token(
    user_id: str,
    name: str,
    private_key_pem: str,
    *,
    ttl_seconds: int = 3600,
    now: datetime | None = None,
) -> str:
    issued_at = now or utcnow()
    claims = {
        "sub": user_id,
        "name": name,
        "exp": format_timestamp(issued_at + timedelta(seconds=ttl_seconds)),
    }
    body = canonical_dumps(claims)
    signature = load_private_key(private_key_pem).sign(body)
    return f"{_b64encode(body)}.{_b64encode(signature)}"


def verify_token(
    token: str, public_key_pem: str, *, now: datetime | None = None
) -> dict[str, Any]:
    """Validate the signature and expiry of ``token`` and return its claims."""
    if not token:
        raise TokenError("token missing")
    body_part, sep, signature_part = token.partition(".")
    if not sep or not body_part or not signature_part:
        raise TokenError("token is malformed")
    try:
        body = _b64decode(body_part)
        signature = _b64decode(signature_part)
    except (ValueError, binascii.Error) as exc:
        raise TokenError("token is not base64url") from exc
    try:
        load_public_key(public_key_pem).verify(signature, body)
    except InvalidSignature as exc:
        raise TokenError("token signature verification failed") from exc
    try:
        claims = orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        raise TokenError("token claims are not JSON") from exc
    if not isinstance(claims, dict) or not claims.get("sub"):
        raise TokenError("token subject missing")
    try:
        expires_at = parse_timestamp(claims.get("exp", ""))
    except TimestampError as exc:
        raise TokenError(f"token expiry invalid: {exc}") from exc
    if expires_at <= (now or utcnow()):
        raise TokenError("token expired")
    return claims
