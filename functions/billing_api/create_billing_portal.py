"""
Create Billing Portal Session Endpoint - POST /billing-portal/create

Creates a Stripe Billing Portal session for subscription management.
Caller authentication is enforced upstream by the API Gateway authorizer.
"""

import json
import logging
import os

from billing_sync.billing_actions import create_customer_portal_session
from billing_sync.config import load_config
from billing_sync.errors import APIError
from billing_sync.logging_utils import configure_structured_logging, set_request_id
from billing_sync.response_utils import api_error_response, error_response, success_response
from billing_sync.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

BASE_URL = os.environ.get("BASE_URL", "")


def _get_origin(event: dict) -> str | None:
    headers = event.get("headers", {}) or {}
    return headers.get("origin") or headers.get("Origin")


def handler(event, context):
    """
    Lambda handler for POST /billing-portal/create.

    Body: {"customer_id": "cus_...", "return_url": "https://..."}

    Returns:
    {
        "url": "https://billing.stripe.com/..."
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

    customer_id = body.get("customer_id")
    if not customer_id:
        return error_response(400, "missing_customer_id", "customer_id is required", origin=origin)

    return_url = body.get("return_url") or (f"{BASE_URL}/dashboard" if BASE_URL else None)
    if not return_url:
        return error_response(400, "missing_return_url", "return_url is required", origin=origin)

    gateway = StripeGateway(load_config())
    try:
        portal = create_customer_portal_session(gateway, customer_id, return_url)
    except APIError as e:
        logger.error(f"Billing portal session creation failed for {customer_id}: {e.message}")
        return api_error_response(e, origin=origin)

    logger.info(f"Created billing portal session for {customer_id}")
    return success_response(portal, origin=origin)
