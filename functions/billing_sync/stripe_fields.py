"""
Field extraction from Stripe webhook payloads.

Stripe objects reference each other either by id string or, when expanded,
by nested object, and some fields moved between API versions. These helpers
hide both differences from the handlers.
"""

from typing import Any, Optional


def ref_id(value: Any) -> Optional[str]:
    """Return the id of a Stripe reference that may be a string or an expanded object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("id") or None
    return None


def invoice_subscription_id(invoice: dict) -> Optional[str]:
    """
    Subscription an invoice belongs to, if any.

    Older API versions put it on ``invoice.subscription``; newer ones under
    ``invoice.parent.subscription_details.subscription``.
    """
    subscription = ref_id(invoice.get("subscription"))
    if subscription:
        return subscription

    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return ref_id(details.get("subscription"))


def subscription_item_fields(subscription: dict) -> dict:
    """
    Period, quantity and price taken from the first subscription item.

    Newer API versions carry current_period_end on the item only; older
    ones on the subscription itself.
    """
    items = (subscription.get("items") or {}).get("data") or []
    item = items[0] if items else {}
    price = item.get("price") or {}

    quantity = item.get("quantity")
    return {
        "current_period_end": item.get("current_period_end") or subscription.get("current_period_end") or 0,
        "quantity": quantity if quantity is not None else 1,
        "price_id": ref_id(price) or "",
    }


def metadata_of(obj: dict) -> dict:
    """Metadata bag of a Stripe object, always a dict."""
    metadata = obj.get("metadata")
    return dict(metadata) if isinstance(metadata, dict) else {}
