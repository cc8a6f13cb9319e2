"""
Payment classifier for payment_intent.succeeded.

Stripe emits payment_intent.succeeded both for one-time payments and for
subscription invoice payments. Subscription money is already recorded via
the invoice handlers, so only standalone payments may become Payment rows.
No single signal is authoritative:

1. Invoice linkage. If the payment intent references an invoice, fetch it;
   an invoice that belongs to a subscription settles the question. A failed
   fetch is inconclusive and falls through.
2. Recency. Webhook order between customer.subscription.created and the
   first invoice's payment_intent.succeeded is not guaranteed, so a
   subscription created locally for the same customer within the trailing
   window is taken as evidence the payment belongs to it.
3. Otherwise the payment is standalone.

This is a heuristic. Under heavy subscription churn for one customer a
genuine one-time payment inside the window is dropped. The recency lookup
also reads the customer-index GSI, which is eventually consistent: a
subscription written milliseconds before the payment event can be missed,
and that payment is then recorded as standalone.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from .constants import RECENT_SUBSCRIPTION_WINDOW_SECONDS, SUBSCRIPTION
from .errors import RemoteServiceError, StripeNotConfiguredError
from .store import RecordStore
from .stripe_fields import invoice_subscription_id, ref_id
from .stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

INVOICE_SUBSCRIPTION = "invoice_subscription"
RECENT_SUBSCRIPTION = "recent_subscription"
STANDALONE = "standalone"


@dataclass(frozen=True)
class Classification:
    subscription_derived: bool
    reason: str


class PaymentClassifier:
    """Decides whether a captured payment is subscription-derived."""

    def __init__(
        self,
        store: RecordStore,
        gateway: StripeGateway,
        window_seconds: int = RECENT_SUBSCRIPTION_WINDOW_SECONDS,
    ):
        self.store = store
        self.gateway = gateway
        self.window = timedelta(seconds=window_seconds)

    def classify(self, payment_intent: dict, now: Optional[datetime] = None) -> Classification:
        """
        Classify a payment_intent.succeeded payload.

        Args:
            payment_intent: The event's data.object
            now: Reference time for the recency window (defaults to now, UTC)

        Returns:
            Classification with the first check that fired
        """
        payment_id = payment_intent.get("id")

        if self._invoice_belongs_to_subscription(payment_intent):
            logger.info(f"Skipping payment {payment_id}: invoice belongs to a subscription")
            return Classification(True, INVOICE_SUBSCRIPTION)

        if self._customer_has_recent_subscription(payment_intent, now or datetime.now(timezone.utc)):
            logger.info(f"Skipping payment {payment_id}: customer has a recent subscription")
            return Classification(True, RECENT_SUBSCRIPTION)

        return Classification(False, STANDALONE)

    def _invoice_belongs_to_subscription(self, payment_intent: dict) -> bool:
        invoice_ref = payment_intent.get("invoice")
        invoice_id = ref_id(invoice_ref)
        if not invoice_id:
            return False

        # Expanded invoices already carry the answer
        if isinstance(invoice_ref, dict) and invoice_subscription_id(invoice_ref):
            return True

        try:
            invoice = self.gateway.retrieve_invoice(invoice_id)
        except (RemoteServiceError, StripeNotConfiguredError) as e:
            logger.warning(
                f"Invoice lookup for {invoice_id} failed, falling back to recency check: {e}",
                extra={"invoice_id": invoice_id, "payment_intent_id": payment_intent.get("id")},
            )
            return False

        return invoice_subscription_id(invoice) is not None

    def _customer_has_recent_subscription(self, payment_intent: dict, now: datetime) -> bool:
        customer_id = ref_id(payment_intent.get("customer"))
        if not customer_id:
            return False

        cutoff = now - self.window
        for subscription in self.store.query(SUBSCRIPTION, "stripe_customer_id", customer_id):
            created_at = subscription.get("created_at")
            if created_at and datetime.fromisoformat(created_at) > cutoff:
                return True
        return False
