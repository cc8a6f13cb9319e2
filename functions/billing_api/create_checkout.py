"""
Create Checkout Session Endpoint - POST /checkout/create

Creates a Stripe Checkout session for a single price. Caller authentication
is enforced upstream by the API Gateway authorizer.

Request body:
{
    "price_id": "price_...",
    "mode": "subscription",          # payment | subscription | setup
    "success_url": "https://...",
    "cancel_url": "https://...",
    "customer_id": "cus_...",         # optional
    "metadata": {"orgId": "..."}      # optional
}
"""

import json
import logging
import os

from billing_sync.billing_actions import create_checkout_session
from billing_sync.config import load_config
from billing_sync.errors import APIError
from billing_sync.logging_utils import configure_structured_logging, set_request_id
from billing_sync.response_utils import api_error_response, error_response, success_response
from billing_sync.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

BASE_URL = os.environ.get("BASE_URL", "")


def _get_origin(event: dict) -> str | None:
    """Extract Origin header from request."""
    headers = event.get("headers", {}) or {}
    return headers.get("origin") or headers.get("Origin")


def handler(event, context):
    """
    Lambda handler for POST /checkout/create.

    Returns:
    {
        "session_id": "cs_...",
        "url": "https://checkout.stripe.com/..."
    }
    """
    configure_structured_logging()
    set_request_id(event)
    origin = _get_origin(event)

    try:
        body = json.loads(event.get("body") or "{}")
    except json.JSONDecodeError:
        return error_response(400, "invalid_json", "Request body must be valid JSON", origin=origin)
    if not isinstance(body, dict):
        return error_response(400, "invalid_json", "Request body must be a JSON object", origin=origin)

    price_id = body.get("price_id")
    if not price_id:
        return error_response(400, "missing_price_id", "price_id is required", origin=origin)

    success_url = body.get("success_url") or (f"{BASE_URL}/checkout/success" if BASE_URL else None)
    cancel_url = body.get("cancel_url") or (f"{BASE_URL}/checkout/cancel" if BASE_URL else None)
    if not success_url or not cancel_url:
        return error_response(
            400, "missing_redirect_urls", "success_url and cancel_url are required", origin=origin
        )

    gateway = StripeGateway(load_config())
    try:
        session = create_checkout_session(
            gateway,
            price_id=price_id,
            mode=body.get("mode") or "subscription",
            success_url=success_url,
            cancel_url=cancel_url,
            customer_id=body.get("customer_id"),
            metadata=body.get("metadata"),
        )
    except APIError as e:
        logger.error(f"Checkout session creation failed: {e.message}")
        return api_error_response(e, origin=origin)

    logger.info(f"Created checkout session {session['session_id']}")
    return success_response(session, origin=origin)
