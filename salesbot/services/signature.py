"""HMAC-SHA256 signing and verification for webhook payloads.

Outbound deliveries carry ``X-Webhook-Signature: hex(HMAC-SHA256(body, secret))``.
Inbound calls are verified against the same construction before their body
is trusted. Comparison goes through ``hmac.compare_digest`` so its running
time does not depend on where the first differing byte sits; unequal lengths
return False instead of raising.

Example:
    secret = new_secret()
    tag = sign(body, secret)
    assert verify(body, tag, secret)
"""

import hashlib
import hmac
import secrets

# 32 bytes = 256 bits of randomness, rendered as 64 hex characters.
SECRET_BYTES = 32


def _as_bytes(value: bytes | str) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def sign(payload: bytes | str, secret: str) -> str:
    """Compute the lowercase hex HMAC-SHA256 tag of ``payload``.

    Args:
        payload: Exact bytes that will be sent (str is UTF-8 encoded).
        secret: Per-subscription shared secret used as the HMAC key.

    Returns:
        64-character lowercase hexadecimal digest.
    """
    return hmac.new(_as_bytes(secret), _as_bytes(payload), hashlib.sha256).hexdigest()


def verify(payload: bytes | str, supplied_tag: str | None, secret: str | None) -> bool:
    """Check ``supplied_tag`` against the tag recomputed from ``payload``.

    Both sides are compared as bytes so non-ASCII input cannot make
    ``compare_digest`` raise. Missing tag or secret is a failed check.

    Args:
        payload: Raw body as received.
        supplied_tag: Hex tag claimed by the caller.
        secret: Shared secret.

    Returns:
        True only if the tags match.
    """
    if not supplied_tag or not secret:
        return False
    expected = sign(payload, secret)
    return hmac.compare_digest(
        _as_bytes(expected), _as_bytes(supplied_tag.strip().lower())
    )


def new_secret() -> str:
    """Generate a 256-bit random webhook secret as hex."""
    return secrets.token_hex(SECRET_BYTES)
