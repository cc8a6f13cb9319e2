"""
Operations that change Stripe first and the local store second.

The local patch only happens after Stripe accepted the change. A failed
Stripe call raises before anything local is touched, so Stripe and the
store never diverge in the "attempted remotely, applied locally" direction.
The matching webhook later re-applies the same values idempotently.
"""

import logging
from typing import Optional

from .constants import CHECKOUT_MODES, SUBSCRIPTION
from .errors import InvalidRequestError
from .store import RecordStore
from .stripe_gateway import StripeGateway
from .upsert import patch_if_present

logger = logging.getLogger(__name__)


def update_subscription_quantity(
    store: RecordStore,
    gateway: StripeGateway,
    stripe_subscription_id: str,
    quantity: int,
) -> None:
    """
    Change the seat count of a subscription in Stripe, then locally.

    Raises:
        InvalidRequestError: quantity below 1, or the subscription has no items
        RemoteServiceError: Stripe rejected or failed the call
    """
    if quantity < 1:
        raise InvalidRequestError("Quantity must be at least 1", details={"quantity": quantity})

    subscription = gateway.retrieve_subscription(stripe_subscription_id)
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        raise InvalidRequestError("Subscription has no items")

    gateway.update_subscription_item_quantity(items[0]["id"], quantity)
    logger.info(f"Updated quantity of {stripe_subscription_id} to {quantity} in Stripe")

    patch_if_present(store, SUBSCRIPTION, stripe_subscription_id, {"quantity": quantity})


def cancel_subscription(
    store: RecordStore,
    gateway: StripeGateway,
    stripe_subscription_id: str,
    cancel_at_period_end: bool = True,
) -> None:
    """
    Cancel a subscription at period end (default) or immediately.

    The local record takes status and cancel flag from Stripe's response.

    Raises:
        RemoteServiceError: Stripe rejected or failed the call
    """
    if cancel_at_period_end:
        subscription = gateway.schedule_cancellation(stripe_subscription_id)
    else:
        subscription = gateway.cancel_subscription(stripe_subscription_id)

    logger.info(
        f"Canceled {stripe_subscription_id} in Stripe "
        f"({'at period end' if cancel_at_period_end else 'immediately'})"
    )

    fields = {"cancel_at_period_end": bool(subscription.get("cancel_at_period_end", cancel_at_period_end))}
    if subscription.get("status"):
        fields["status"] = subscription["status"]
    patch_if_present(store, SUBSCRIPTION, stripe_subscription_id, fields)


def create_checkout_session(
    gateway: StripeGateway,
    price_id: str,
    mode: str,
    success_url: str,
    cancel_url: str,
    customer_id: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> dict:
    """
    Create a Stripe Checkout session for a single price.

    Returns:
        {"session_id": ..., "url": ...}; url may be None
    """
    if mode not in CHECKOUT_MODES:
        raise InvalidRequestError(
            f"Invalid checkout mode: {mode}",
            details={"allowed": list(CHECKOUT_MODES)},
        )

    params = {
        "mode": mode,
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": metadata or {},
    }
    if customer_id:
        params["customer"] = customer_id

    session = gateway.create_checkout_session(params)
    return {"session_id": session["id"], "url": session.get("url")}


def create_customer_portal_session(gateway: StripeGateway, customer_id: str, return_url: str) -> dict:
    """
    Create a Stripe Billing Portal session.

    Returns:
        {"url": ...}
    """
    session = gateway.create_billing_portal_session(customer_id, return_url)
    return {"url": session["url"]}
