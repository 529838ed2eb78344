import hashlib
import hmac
import logging

import stripe

from core.exceptions import SignatureError, ValidationError

logger = logging.getLogger(__name__)


def compute_signature(raw_payload: bytes, shared_secret: str) -> str:
    return hmac.new(shared_secret.encode(), raw_payload, hashlib.sha256).hexdigest()


def verify(raw_payload: bytes, provided_signature: str | None, shared_secret: str | None) -> bool:
    """Check a lowercase-hex HMAC-SHA256 of the raw body in constant time."""
    if not provided_signature or not shared_secret:
        return False
    expected = compute_signature(raw_payload, shared_secret)
    return hmac.compare_digest(expected.encode(), provided_signature.strip().lower().encode())


def verify_card_event(raw_payload: bytes, signature_header: str | None, shared_secret: str | None):
    """
    Verify a Stripe webhook and return the SDK's event object.

    Stripe signs ``<timestamp>.<body>`` and sends ``t=...,v1=...``; the SDK also
    enforces its replay tolerance window.
    """
    if not signature_header or not shared_secret:
        raise SignatureError("Missing card webhook signature or secret")
    try:
        return stripe.Webhook.construct_event(raw_payload, signature_header, shared_secret)
    except stripe.SignatureVerificationError as e:
        logger.warning("Card webhook signature verification failed: %s", e)
        raise SignatureError("Invalid card webhook signature") from e
    except ValueError as e:
        # construct_event parses the payload as JSON after checking the signature
        raise ValidationError("Unreadable card webhook payload") from e
