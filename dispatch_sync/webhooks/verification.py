"""Request signing and webhook verification: constant-time HMAC per scheme.

Security contract:
- All comparisons use hmac.compare_digest() (constant-time)
- Verification failure -> 401 immediately, no payload processing
- Missing secret -> verification always fails (fail-closed)
- Paths are signed exactly as given; callers normalise before signing

Schemes:
- Shopify: base64(HMAC-SHA256(secret, raw_body)) in X-Shopify-Hmac-Sha256
- StopSuite: hex(HMAC-SHA256(secret, METHOD|PATH|TIMESTAMP|NONCE|BODY))
  in X-Signature, with X-Timestamp and X-Nonce alongside
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
import uuid

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-signature"
TIMESTAMP_HEADER = "x-timestamp"
NONCE_HEADER = "x-nonce"
SHOPIFY_HMAC_HEADER = "x-shopify-hmac-sha256"


def _as_text(body: bytes | str) -> str:
    if isinstance(body, bytes):
        return body.decode("utf-8")
    return body


def new_timestamp() -> str:
    """Current unix time in whole seconds, as sent in X-Timestamp."""
    return str(int(time.time()))


def new_nonce() -> str:
    """Random per-request nonce."""
    return uuid.uuid4().hex


def canonical_message(
    method: str, path: str, timestamp: str, nonce: str, body: bytes | str
) -> str:
    """Build the METHOD|PATH|TIMESTAMP|NONCE|BODY string that gets signed."""
    return f"{method.upper()}|{path}|{timestamp}|{nonce}|{_as_text(body)}"


def sign(
    method: str,
    path: str,
    timestamp: str,
    nonce: str,
    body: bytes | str,
    secret: str,
) -> str:
    """Compute the hex HMAC-SHA256 signature for a StopSuite request."""
    message = canonical_message(method, path, timestamp, nonce, body)
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify(
    provided: str | None,
    method: str,
    path: str,
    timestamp: str | None,
    nonce: str | None,
    body: bytes | str,
    secret: str,
) -> bool:
    """Check a StopSuite signature.

    Returns:
        True if the signature matches the canonical message
    """
    if not secret:
        logger.warning("STOPSUITE_SECRET_KEY not set, rejecting request")
        return False
    if not provided or not timestamp or not nonce:
        return False

    try:
        expected = sign(method, path, timestamp, nonce, body, secret)
        return hmac.compare_digest(expected, provided)
    except (UnicodeDecodeError, TypeError):
        # non-ASCII header values never match a hex digest
        return False


def sign_shopify(body: bytes | str, secret: str) -> str:
    """Compute the base64 HMAC-SHA256 Shopify uses for webhooks."""
    raw = body.encode("utf-8") if isinstance(body, str) else body
    digest = hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_shopify(body: bytes, provided: str | None, secret: str) -> bool:
    """Verify Shopify webhook HMAC-SHA256 signature.

    Args:
        body: Raw request body bytes
        provided: Value of X-Shopify-Hmac-Sha256 header
        secret: Shared webhook secret

    Returns:
        True if signature is valid
    """
    if not secret:
        logger.warning("SHOPIFY_WEBHOOK_SECRET not set, rejecting webhook")
        return False
    if not provided:
        return False

    try:
        return hmac.compare_digest(sign_shopify(body, secret), provided)
    except TypeError:
        return False


def verify_stopsuite_request(
    body: bytes,
    headers: dict[str, str],
    path: str,
    secret: str,
    tolerance: int = 0,
) -> bool:
    """Verify an inbound StopSuite webhook.

    Args:
        body: Raw request body
        headers: Request headers (lowercase keys)
        path: Canonical path the sender signed
        secret: Shared StopSuite secret
        tolerance: Maximum clock skew in seconds; 0 disables the check

    Returns:
        True if signature is valid (and timestamp inside the window)
    """
    timestamp = headers.get(TIMESTAMP_HEADER)

    if tolerance and timestamp:
        try:
            skew = abs(time.time() - int(timestamp))
        except ValueError:
            return False
        if skew > tolerance:
            logger.warning("StopSuite webhook timestamp outside window: %s", timestamp)
            return False

    return verify(
        headers.get(SIGNATURE_HEADER),
        "POST",
        path,
        timestamp,
        headers.get(NONCE_HEADER),
        body,
        secret,
    )
