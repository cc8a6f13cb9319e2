"""
Read and local-write operations for calling applications.

These touch only the record store; operations that must also change
Stripe live in billing_actions.
"""

import logging
from typing import Any, Optional

from .constants import CHECKOUT_SESSION, CUSTOMER, ENTITY_TYPES, INVOICE, PAYMENT, SUBSCRIPTION
from .errors import RecordNotFoundError
from .store import RecordStore
from .types import CustomerRecord, InvoiceRecord, PaymentRecord, SubscriptionRecord
from .upsert import patch_if_present, project_metadata, set_if_unset, upsert

logger = logging.getLogger(__name__)


# ===========================================
# Customers
# ===========================================


def get_customer(store: RecordStore, stripe_customer_id: str) -> Optional[CustomerRecord]:
    return store.get(CUSTOMER, stripe_customer_id)


def create_or_update_customer(
    store: RecordStore,
    stripe_customer_id: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> str:
    """
    Create a customer, or patch the fields supplied for an existing one.

    Arguments left as None are not written.

    Returns:
        record_id of the customer
    """
    fields = {"email": email, "name": name, "metadata": metadata}
    return upsert(store, CUSTOMER, stripe_customer_id, {k: v for k, v in fields.items() if v is not None})


# ===========================================
# Subscriptions
# ===========================================


def get_subscription(store: RecordStore, stripe_subscription_id: str) -> Optional[SubscriptionRecord]:
    return store.get(SUBSCRIPTION, stripe_subscription_id)


def list_subscriptions(store: RecordStore, stripe_customer_id: str) -> list[SubscriptionRecord]:
    return store.query(SUBSCRIPTION, "stripe_customer_id", stripe_customer_id)


def get_subscription_by_org_id(store: RecordStore, org_id: str) -> Optional[SubscriptionRecord]:
    """First (oldest) subscription tagged with the organization id."""
    records = store.query(SUBSCRIPTION, "org_id", org_id, limit=1)
    return records[0] if records else None


def list_subscriptions_by_user_id(store: RecordStore, user_id: str) -> list[SubscriptionRecord]:
    return store.query(SUBSCRIPTION, "user_id", user_id)


def update_subscription_metadata(
    store: RecordStore,
    stripe_subscription_id: str,
    metadata: dict,
    org_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> SubscriptionRecord:
    """
    Replace a subscription's metadata and refresh its indexed org/user ids.

    Explicit org_id/user_id win over the reserved keys in metadata. Ids that
    are neither passed nor present in metadata are cleared.

    Raises:
        RecordNotFoundError: no subscription with that id
    """
    projected = project_metadata(metadata)
    fields: dict[str, Any] = {
        "metadata": metadata,
        "org_id": org_id or projected.get("org_id"),
        "user_id": user_id or projected.get("user_id"),
    }

    record = patch_if_present(store, SUBSCRIPTION, stripe_subscription_id, fields)
    if record is None:
        raise RecordNotFoundError(SUBSCRIPTION, stripe_subscription_id)
    return record


# ===========================================
# Payments
# ===========================================


def get_payment(store: RecordStore, stripe_payment_intent_id: str) -> Optional[PaymentRecord]:
    return store.get(PAYMENT, stripe_payment_intent_id)


def list_payments(store: RecordStore, stripe_customer_id: str) -> list[PaymentRecord]:
    return store.query(PAYMENT, "stripe_customer_id", stripe_customer_id)


def list_payments_by_user_id(store: RecordStore, user_id: str) -> list[PaymentRecord]:
    return store.query(PAYMENT, "user_id", user_id)


def list_payments_by_org_id(store: RecordStore, org_id: str) -> list[PaymentRecord]:
    return store.query(PAYMENT, "org_id", org_id)


def update_payment_customer(store: RecordStore, stripe_payment_intent_id: str, stripe_customer_id: str) -> bool:
    """
    Link a payment to its customer if it has none yet.

    The customer id is write-once: an already linked payment keeps its
    customer.

    Returns:
        True if the link was written
    """
    return set_if_unset(store, PAYMENT, stripe_payment_intent_id, "stripe_customer_id", stripe_customer_id)


# ===========================================
# Invoices
# ===========================================


def list_invoices(store: RecordStore, stripe_customer_id: str) -> list[InvoiceRecord]:
    return store.query(INVOICE, "stripe_customer_id", stripe_customer_id)


def get_all_data(store: RecordStore) -> dict[str, list[dict]]:
    """Every record of every collection, for debugging and demos."""
    collections = {
        CUSTOMER: "customers",
        SUBSCRIPTION: "subscriptions",
        CHECKOUT_SESSION: "checkout_sessions",
        PAYMENT: "payments",
        INVOICE: "invoices",
    }
    return {collections[entity]: store.scan(entity) for entity in ENTITY_TYPES}
