"""
Webhook signature validation - verify incoming Telnyx webhooks are authentic.

Telnyx signs "{telnyx-timestamp}|{raw body}" with Ed25519 and sends the base64
signature in telnyx-signature-ed25519. The public key (base64, 32 raw bytes)
comes from the Telnyx portal.
"""
import base64
import binascii
import logging
import time
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "telnyx-signature-ed25519"
TIMESTAMP_HEADER = "telnyx-timestamp"
DEFAULT_TOLERANCE_SECONDS = 300


def load_public_key(public_key_b64: str) -> Optional[Ed25519PublicKey]:
    """Decode the configured key. Returns None if it is not a valid Ed25519 key."""
    try:
        raw = base64.b64decode(public_key_b64, validate=True)
        return Ed25519PublicKey.from_public_bytes(raw)
    except (binascii.Error, ValueError) as e:
        logger.error("Telnyx public key could not be loaded: %s", str(e))
        return None


def validate_telnyx_signature(
    public_key_b64: str,
    signature: str,
    timestamp: str,
    body: Union[bytes, str],
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    """
    Validate a Telnyx webhook signature.
    Returns True if valid, False if missing, stale, malformed, or forged.
    """
    if not signature or not timestamp:
        logger.warning("Missing Telnyx signature or timestamp header")
        return False

    try:
        sent_at = int(timestamp)
    except ValueError:
        logger.warning("Telnyx timestamp is not an integer: %r", timestamp)
        return False

    current = time.time() if now is None else now
    if abs(current - sent_at) > tolerance_seconds:
        logger.warning("Telnyx webhook timestamp outside %ds window", tolerance_seconds)
        return False

    key = load_public_key(public_key_b64)
    if key is None:
        return False

    try:
        sig_bytes = base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Telnyx signature is not valid base64")
        return False

    raw_body = body if isinstance(body, bytes) else body.encode("utf-8")
    signed_payload = f"{timestamp}|".encode("utf-8") + raw_body

    try:
        key.verify(sig_bytes, signed_payload)
        return True
    except InvalidSignature:
        logger.warning("Telnyx webhook signature mismatch")
        return False


def validate_webhook_request(headers, body: bytes, settings) -> bool:
    """
    Check a Telnyx webhook request against the app settings.

    Enforcement only applies in production with TELNYX_PUBLIC_KEY set.
    Without a key the webhook is accepted with a warning.
    """

    if settings.app_env != "production":
        return True

    if not settings.telnyx_public_key:
        logger.warning(
            "TELNYX_PUBLIC_KEY not set - accepting Telnyx webhook without "
            "signature verification. Configure the key for production."
        )
        return True

    return validate_telnyx_signature(
        settings.telnyx_public_key,
        headers.get(SIGNATURE_HEADER, ""),
        headers.get(TIMESTAMP_HEADER, ""),
        body,
        tolerance_seconds=settings.webhook_tolerance_seconds,
    )
