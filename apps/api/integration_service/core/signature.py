"""Webhook signature verification (HMAC-SHA256 over the raw request body)."""

import hashlib
import hmac

from integration_service.core.errors import SignatureError


def compute_signature(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(secret: str, payload: bytes, signature: str | None) -> None:
    """Raise SignatureError unless `signature` is the hex HMAC of `payload`. No I/O."""
    if not signature:
        raise SignatureError("Missing signature")
    expected = compute_signature(secret, payload)
    if not hmac.compare_digest(signature.strip().lower().encode("utf-8"), expected.encode("utf-8")):
        raise SignatureError("Invalid signature")
