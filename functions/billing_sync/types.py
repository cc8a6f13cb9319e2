"""
Shared Type Definitions.

TypedDicts for stored records.
Every record also carries ``record_id`` (surrogate id) and ``created_at``
(local creation time, ISO-8601 UTC).
"""

from typing import Any, TypedDict


class CustomerRecord(TypedDict, total=False):
    stripe_customer_id: str
    email: str
    name: str
    metadata: dict[str, Any]
    record_id: str
    created_at: str


class SubscriptionRecord(TypedDict, total=False):
    stripe_subscription_id: str
    stripe_customer_id: str
    status: str  # trialing, active, past_due, canceled, ...
    current_period_end: int  # epoch seconds
    cancel_at_period_end: bool
    quantity: int
    price_id: str
    metadata: dict[str, Any]
    org_id: str
    user_id: str
    record_id: str
    created_at: str


class PaymentRecord(TypedDict, total=False):
    stripe_payment_intent_id: str
    stripe_customer_id: str  # write-once
    amount: int  # minor currency units
    currency: str
    status: str
    created: int  # epoch seconds
    metadata: dict[str, Any]
    org_id: str
    user_id: str
    record_id: str
    created_at: str


class InvoiceRecord(TypedDict, total=False):
    stripe_invoice_id: str
    stripe_customer_id: str
    stripe_subscription_id: str
    status: str
    amount_due: int
    amount_paid: int
    created: int
    record_id: str
    created_at: str
