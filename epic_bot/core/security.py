"""
Request signing utilities for inbound chat webhooks.
"""

import hashlib
import hmac
import time
from typing import Optional

from epic_bot.core.exceptions import SignatureVerificationError

SIGNATURE_VERSION = "v0"


def compute_signature(signing_secret: str, timestamp: str, body: bytes) -> str:
    """
    Compute the Slack v0 signature for a raw request body.

    Args:
        signing_secret: App signing secret
        timestamp: Value of the X-Slack-Request-Timestamp header
        body: Raw request body

    Returns:
        Signature in the form "v0=<hex digest>"
    """
    base = f"{SIGNATURE_VERSION}:{timestamp}:".encode() + body
    digest = hmac.new(signing_secret.encode(), base, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_slack_signature(
    signing_secret: str,
    body: bytes,
    timestamp: Optional[str],
    signature: Optional[str],
    max_age_seconds: int = 300,
    now: Optional[float] = None,
) -> None:
    """
    Verify a signed Slack request.

    Raises:
        SignatureVerificationError: If headers are missing, the timestamp is
            outside the allowed window or the signature does not match
    """
    if not timestamp or not signature:
        raise SignatureVerificationError("Missing signature headers")

    try:
        ts = int(timestamp)
    except ValueError:
        raise SignatureVerificationError("Malformed request timestamp") from None

    current = now if now is not None else time.time()
    if abs(current - ts) > max_age_seconds:
        raise SignatureVerificationError("Request timestamp outside allowed window")

    expected = compute_signature(signing_secret, timestamp, body)
    if not hmac.compare_digest(expected, signature):
        raise SignatureVerificationError()
