"""HMAC-SHA256 signing for webhook payloads.

Receivers verify a delivery by recomputing HMAC-SHA256 over the exact raw
request body with their stored secret and comparing in constant time
against the ``X-Webhook-Signature`` header.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import secrets
from typing import Any

SIGNATURE_PREFIX = "sha256="


def canonical_json(obj: Any) -> str:
    """Serialize to JSON with stable key order and no insignificant whitespace.

    The serialized string is what gets signed and sent, so identical
    payloads always produce identical bytes and signatures.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def sign(payload: str, secret: str) -> str:
    """Compute the HMAC-SHA256 hex digest of a serialized payload.

    Args:
        payload: Serialized payload to sign.
        secret: Shared secret for HMAC.

    Returns:
        Lowercase hex digest.
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=payload.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).hexdigest()


def signature_header(payload: str, secret: str) -> str:
    """Compute the signature header value: ``sha256=<hex_digest>``."""
    return f"{SIGNATURE_PREFIX}{sign(payload, secret)}"


def verify_signature(payload: str, signature: str, secret: str) -> bool:
    """Verify a signature in constant time.

    Args:
        payload: Raw payload that was signed.
        signature: Signature to check, with or without the ``sha256=`` prefix.
        secret: Shared secret for HMAC.

    Returns:
        True if the signature is valid, False otherwise.
    """
    if signature.startswith(SIGNATURE_PREFIX):
        signature = signature[len(SIGNATURE_PREFIX) :]
    return hmac.compare_digest(sign(payload, secret), signature)


def generate_secret() -> str:
    """Generate a new signing secret (32 random bytes, hex-encoded)."""
    return secrets.token_hex(32)


def generate_challenge() -> str:
    """Generate a verification challenge token."""
    return secrets.token_hex(16)


__all__ = [
    "SIGNATURE_PREFIX",
    "canonical_json",
    "generate_challenge",
    "generate_secret",
    "sign",
    "signature_header",
    "verify_signature",
]
