"""
Stripe Webhook Endpoint - POST /webhooks/stripe

Verifies the Stripe signature, applies the event to the local billing
tables and reports the outcome. Uses Stripe signature verification instead
of API key auth.

Responses:
- 200: event applied, or event type we do not sync
- 400: signature missing or invalid, or signing secret not configured
- 500: applying the event failed; Stripe will redeliver
"""

import base64
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import stripe
from botocore.exceptions import ClientError

from billing_sync.aws_clients import get_dynamodb
from billing_sync.config import load_config
from billing_sync.constants import BILLING_EVENT_TTL_DAYS
from billing_sync.dispatcher import EventDispatcher, build_dispatcher
from billing_sync.errors import AuthenticationFailure, RemoteServiceError
from billing_sync.logging_utils import configure_structured_logging, set_request_id
from billing_sync.metrics import emit_webhook_metric
from billing_sync.response_utils import error_response, success_response
from billing_sync.verification import construct_event

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# Built once per cold start; see get_dispatcher()
_dispatcher: Optional[EventDispatcher] = None


def get_dispatcher() -> EventDispatcher:
    """
    Dispatcher for this Lambda container.

    Applications register their hooks on it at import time, e.g.
    ``get_dispatcher().on("invoice.paid", notify_finance)``. A config without
    a signing secret is not cached so a later invocation can pick up a fixed
    secret.
    """
    global _dispatcher
    if _dispatcher is None:
        config = load_config()
        dispatcher = build_dispatcher(config)
        if not config.webhook_secret:
            return dispatcher
        _dispatcher = dispatcher
    return _dispatcher


def reset_dispatcher():
    """Drop the cached dispatcher. Used in tests for clean state."""
    global _dispatcher
    _dispatcher = None


# ===========================================
# Billing Event Audit Trail
# ===========================================


def _record_billing_event(
    stripe_event: dict,
    table_name: str,
    status: str,
    action: Optional[str] = None,
    error: Optional[str] = None,
):
    """Record webhook event for audit trail (best-effort).

    Uses event_id as PK. Failures are logged but do not affect the webhook
    response.

    Args:
        stripe_event: Verified Stripe event
        table_name: Billing events table
        status: "success" or "failed"
        action: Dispatcher outcome on success
        error: Error message if status is "failed"
    """
    try:
        table = get_dynamodb().Table(table_name)
        now = datetime.now(timezone.utc)
        customer = stripe_event.get("data", {}).get("object", {}).get("customer")
        item = {
            "pk": stripe_event.get("id") or "unknown",
            "sk": stripe_event["type"],
            "customer_id": customer if isinstance(customer, str) else "unknown",
            "processed_at": now.isoformat(),
            "event_created_at": stripe_event.get("created"),  # Stripe's event timestamp
            "livemode": stripe_event.get("livemode"),  # Distinguish test vs production
            "status": status,
            "action": action,
            "error": error,
            "ttl": int((now + timedelta(days=BILLING_EVENT_TTL_DAYS)).timestamp()),
        }
        table.put_item(Item={k: v for k, v in item.items() if v is not None})
    except Exception as e:
        # Best-effort - audit recording should not block webhook response
        logger.error(f"Failed to record billing event {stripe_event.get('id')}: {e}")


def _get_payload(event: dict) -> str:
    payload = event.get("body") or ""
    if event.get("isBase64Encoded"):
        payload = base64.b64decode(payload).decode("utf-8")
    return payload


def handler(event, context):
    """
    Lambda handler for Stripe webhooks.

    Syncs customers, subscriptions, checkout sessions, invoices and
    standalone payments into DynamoDB. Every event is applied idempotently,
    so duplicates and out-of-order deliveries are safe.
    """
    configure_structured_logging()
    set_request_id(event)

    dispatcher = get_dispatcher()
    config = dispatcher.store.config

    headers = event.get("headers") or {}
    sig_header = headers.get("stripe-signature") or headers.get("Stripe-Signature")

    try:
        stripe_event = construct_event(
            _get_payload(event),
            sig_header,
            config.webhook_secret,
            config.webhook_tolerance_seconds,
        )
    except AuthenticationFailure as e:
        return e.to_response()

    event_type = stripe_event["type"]
    logger.info(f"Processing Stripe event: {event_type} (id={stripe_event.get('id')})")

    try:
        result = dispatcher.dispatch(stripe_event)

    except ClientError as e:
        # DynamoDB errors are usually transient - Stripe retry can re-process
        _record_billing_event(stripe_event, config.billing_events_table, "failed", error=str(e))
        emit_webhook_metric(event_type, success=False)
        logger.error(f"Transient error handling {event_type}: {e}")
        return error_response(500, "temporary_error", "Temporary error, please retry")
    except (RemoteServiceError, stripe.StripeError) as e:
        _record_billing_event(stripe_event, config.billing_events_table, "failed", error=str(e))
        emit_webhook_metric(event_type, success=False)
        logger.error(f"Stripe error handling {event_type}: {e}")
        return error_response(500, "stripe_error", "Stripe error, please retry")
    except Exception as e:
        _record_billing_event(stripe_event, config.billing_events_table, "failed", error=str(e))
        emit_webhook_metric(event_type, success=False)
        logger.error(f"Unexpected error handling {event_type}: {e}", exc_info=True)
        return error_response(500, "processing_failed", "Processing failed")

    _record_billing_event(stripe_event, config.billing_events_table, "success", action=result.action)
    emit_webhook_metric(event_type, success=True)

    return success_response({"received": True})
