"""Webhook signature verification (HMAC-SHA256 over the raw body)."""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Mapping

# Header names gateways are known to sign with, checked in order
SIGNATURE_HEADERS = (
    "x-asaas-signature",
    "x-asaas-signature-256",
    "x-hub-signature-256",
    "x-signature-sha256",
    "x-signature",
    "signature",
)

_PREFIX = "sha256="


def extract_signature(headers: Mapping[str, str]) -> str | None:
    """Return the first signature header present, if any.

    Starlette headers are case-insensitive already; plain dicts are matched
    on lowercased keys.
    """
    lowered = {k.lower(): v for k, v in headers.items()}
    for name in SIGNATURE_HEADERS:
        value = lowered.get(name)
        if value:
            return value
    return None


def compute_signature(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of the body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str | None, secret: str | None) -> bool:
    """Check a signature against the raw, unparsed body.

    Accepts an optional ``sha256=`` prefix. With no secret configured every
    signature is rejected.
    """
    if not secret or not signature:
        return False
    candidate = signature.strip()
    if candidate.lower().startswith(_PREFIX):
        candidate = candidate[len(_PREFIX):]
    expected = compute_signature(secret, body)
    return hmac.compare_digest(candidate.lower().encode("utf-8"), expected.encode("utf-8"))
