"""HMAC helpers for webhook signature verification."""

from __future__ import annotations

import base64
import hashlib
import hmac


def compute_hmac(
    secret: str | bytes,
    message: str | bytes,
    *,
    digest: str = "sha256",
    encoding: str = "hex",
) -> str:
    """Compute an HMAC as a hex or base64 string."""
    key = secret.encode() if isinstance(secret, str) else secret
    body = message.encode() if isinstance(message, str) else message
    mac = hmac.new(key, body, getattr(hashlib, digest))
    if encoding == "base64":
        return base64.b64encode(mac.digest()).decode()
    return mac.hexdigest()


def verify_hmac_signature(
    secret: str | bytes | None,
    message: str | bytes,
    signature: str | None,
    *,
    digest: str = "sha256",
    encoding: str = "hex",
    prefix: str = "",
) -> bool:
    """
    Constant-time comparison of ``signature`` against the HMAC of ``message``.

    Fails closed: a missing secret or signature, or a signature without the
    expected prefix, never verifies.
    """
    if not secret or not signature:
        return False
    if prefix:
        if not signature.startswith(prefix):
            return False
        signature = signature[len(prefix):]
    expected = compute_hmac(secret, message, digest=digest, encoding=encoding)
    return hmac.compare_digest(expected.encode(), signature.strip().encode())
