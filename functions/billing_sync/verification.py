"""
Webhook verification gate.

Turns a raw webhook body plus its Stripe-Signature header into an event
dict, or raises AuthenticationFailure. Nothing unauthenticated reaches the
dispatcher.
"""

import json
import logging
from typing import Optional, Union

import stripe

from .constants import WEBHOOK_TOLERANCE_SECONDS
from .errors import AuthenticationFailure

logger = logging.getLogger(__name__)


def construct_event(
    payload: Union[str, bytes],
    sig_header: Optional[str],
    secret: Optional[str],
    tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
) -> dict:
    """
    Verify a Stripe webhook and parse it.

    Args:
        payload: Raw request body, exactly as received
        sig_header: Value of the Stripe-Signature header
        secret: Webhook signing secret (whsec_...)
        tolerance: Maximum accepted age of the signed timestamp in seconds

    Returns:
        The event as a dict with ``id``, ``type`` and ``data.object``

    Raises:
        AuthenticationFailure: secret missing, signature missing or invalid,
            or the signed body is not a well-formed event
    """
    if not secret:
        logger.error("Stripe webhook secret not configured")
        raise AuthenticationFailure("webhook_not_configured", "Webhook secret not configured")

    if not sig_header:
        logger.warning("Missing Stripe signature")
        raise AuthenticationFailure("missing_signature", "Missing Stripe signature")

    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")

    try:
        stripe.WebhookSignature.verify_header(payload, sig_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Invalid Stripe signature: {e}")
        raise AuthenticationFailure() from e

    try:
        event = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.warning(f"Webhook payload is not JSON: {e}")
        raise AuthenticationFailure("invalid_webhook_payload", "Invalid webhook payload") from e

    data = event.get("data") if isinstance(event, dict) else None
    if not isinstance(event, dict) or not event.get("type") or not isinstance((data or {}).get("object"), dict):
        logger.warning("Webhook payload is missing type or data.object")
        raise AuthenticationFailure("invalid_webhook_payload", "Invalid webhook payload")

    return event
