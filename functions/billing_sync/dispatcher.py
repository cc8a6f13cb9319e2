"""
Stripe event dispatcher.

Maps a verified event to exactly one handler by event type. Every handler is
an idempotent, natural-key-scoped insert or patch, so events may arrive
duplicated and in any order. Update and delete events for records we have
never seen are no-ops, and only creation events create subscriptions.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable

from .classifier import PaymentClassifier
from .config import SyncConfig
from .constants import (
    CHECKOUT_COMPLETE,
    CHECKOUT_SESSION,
    CUSTOMER,
    INVOICE,
    INVOICE_OPEN,
    INVOICE_PAID,
    PAYMENT,
    SUBSCRIPTION,
    SUBSCRIPTION_CANCELED,
)
from .metrics import emit_classification_metric
from .store import RecordStore
from .stripe_fields import invoice_subscription_id, metadata_of, ref_id, subscription_item_fields
from .stripe_gateway import StripeGateway
from .upsert import insert_if_absent, patch_if_present, project_metadata, set_if_unset

logger = logging.getLogger(__name__)

# Outcomes reported in DispatchResult.action
INSERTED = "inserted"
UPDATED = "updated"
UNCHANGED = "unchanged"
SKIPPED = "skipped"
IGNORED = "ignored"

EventHook = Callable[[dict], None]


@dataclass(frozen=True)
class DispatchResult:
    event_type: str
    handled: bool
    action: str


class EventDispatcher:
    """
    Applies Stripe events to the record store.

    Callers may register hooks that run after the default handling:
    ``on_any`` hooks for every event first, then ``on(event_type)`` hooks.
    A failing hook fails the event like a failing handler does.
    """

    def __init__(self, store: RecordStore, classifier: PaymentClassifier):
        self.store = store
        self.classifier = classifier
        self._hooks: dict[str, list[EventHook]] = defaultdict(list)
        self._any_hooks: list[EventHook] = []
        self._handlers = {
            "customer.created": self._handle_customer_created,
            "customer.updated": self._handle_customer_updated,
            "customer.subscription.created": self._handle_subscription_created,
            "customer.subscription.updated": self._handle_subscription_updated,
            "customer.subscription.deleted": self._handle_subscription_deleted,
            "checkout.session.completed": self._handle_checkout_completed,
            "invoice.created": self._handle_invoice_created,
            "invoice.finalized": self._handle_invoice_created,
            "invoice.paid": self._handle_invoice_paid,
            "invoice.payment_succeeded": self._handle_invoice_paid,
            "invoice.payment_failed": self._handle_invoice_payment_failed,
            "payment_intent.succeeded": self._handle_payment_intent_succeeded,
        }

    @property
    def handled_event_types(self) -> list[str]:
        return sorted(self._handlers)

    def on(self, event_type: str, hook: EventHook) -> None:
        """Register a hook for one event type."""
        self._hooks[event_type].append(hook)

    def on_any(self, hook: EventHook) -> None:
        """Register a hook for every event."""
        self._any_hooks.append(hook)

    def dispatch(self, event: dict) -> DispatchResult:
        """
        Apply one event.

        Unknown event types are acknowledged and ignored. Exceptions from
        handlers and hooks propagate so the webhook reports failure and
        Stripe redelivers.
        """
        event_type = event["type"]
        data = event["data"]["object"]

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info(f"Unhandled event type: {event_type}")
            action = IGNORED
        else:
            action = handler(data)

        for hook in self._any_hooks:
            hook(event)
        for hook in self._hooks.get(event_type, ()):
            hook(event)

        logger.info(
            f"Dispatched {event_type} (id={event.get('id')}): {action}",
            extra={"event_type": event_type, "action": action},
        )
        return DispatchResult(event_type=event_type, handled=handler is not None, action=action)

    # ===========================================
    # Customers
    # ===========================================

    def _handle_customer_created(self, customer: dict) -> str:
        record_id = insert_if_absent(
            self.store,
            CUSTOMER,
            customer["id"],
            {
                "email": customer.get("email") or None,
                "name": customer.get("name") or None,
                "metadata": metadata_of(customer),
            },
        )
        return INSERTED if record_id else UNCHANGED

    def _handle_customer_updated(self, customer: dict) -> str:
        """Patch a known customer. Stripe sends the full object, so a null
        email or name clears the stored value."""
        record = patch_if_present(
            self.store,
            CUSTOMER,
            customer["id"],
            {
                "email": customer.get("email") or None,
                "name": customer.get("name") or None,
                "metadata": metadata_of(customer),
            },
        )
        return UPDATED if record else SKIPPED

    # ===========================================
    # Subscriptions
    # ===========================================

    def _handle_subscription_created(self, subscription: dict) -> str:
        """Insert a subscription, projecting orgId/userId from metadata.

        This is the only path that creates subscription records.
        """
        metadata = metadata_of(subscription)
        fields = {
            "stripe_customer_id": ref_id(subscription["customer"]),
            "status": subscription["status"],
            "cancel_at_period_end": bool(subscription.get("cancel_at_period_end", False)),
            "metadata": metadata,
            **subscription_item_fields(subscription),
            **project_metadata(metadata),
        }
        record_id = insert_if_absent(self.store, SUBSCRIPTION, subscription["id"], fields)
        return INSERTED if record_id else UNCHANGED

    def _handle_subscription_updated(self, subscription: dict) -> str:
        """Patch lifecycle fields of a known subscription.

        Only fields present in the payload are written. When the payload
        carries a metadata key the bag is replaced verbatim, even when empty,
        and org/user ids missing from it are cleared.
        """
        fields = {}
        if subscription.get("status"):
            fields["status"] = subscription["status"]
        if subscription.get("cancel_at_period_end") is not None:
            fields["cancel_at_period_end"] = bool(subscription["cancel_at_period_end"])

        items = (subscription.get("items") or {}).get("data") or []
        item = items[0] if items else {}
        period_end = item.get("current_period_end") or subscription.get("current_period_end")
        if period_end:
            fields["current_period_end"] = period_end
        if item.get("quantity") is not None:
            fields["quantity"] = item["quantity"]

        if "metadata" in subscription:
            metadata = metadata_of(subscription)
            projected = project_metadata(metadata)
            fields["metadata"] = metadata
            fields["org_id"] = projected.get("org_id")
            fields["user_id"] = projected.get("user_id")

        record = patch_if_present(self.store, SUBSCRIPTION, subscription["id"], fields)
        return UPDATED if record else SKIPPED

    def _handle_subscription_deleted(self, subscription: dict) -> str:
        """Mark a subscription canceled. The record is kept."""
        record = patch_if_present(
            self.store, SUBSCRIPTION, subscription["id"], {"status": SUBSCRIPTION_CANCELED}
        )
        return UPDATED if record else SKIPPED

    # ===========================================
    # Checkout
    # ===========================================

    def _handle_checkout_completed(self, session: dict) -> str:
        """Record a completed checkout session.

        For one-time payments, also link the payment to the customer when
        the payment row was stored before the customer was known.
        """
        customer_id = ref_id(session.get("customer"))
        mode = session.get("mode") or "payment"

        record_id = insert_if_absent(
            self.store,
            CHECKOUT_SESSION,
            session["id"],
            {
                "stripe_customer_id": customer_id,
                "mode": mode,
                "status": CHECKOUT_COMPLETE,
                "metadata": metadata_of(session),
            },
        )
        if record_id:
            action = INSERTED
        else:
            patch = {"status": CHECKOUT_COMPLETE}
            if customer_id:
                patch["stripe_customer_id"] = customer_id
            patch_if_present(self.store, CHECKOUT_SESSION, session["id"], patch)
            action = UPDATED

        payment_intent_id = ref_id(session.get("payment_intent"))
        if mode == "payment" and customer_id and payment_intent_id:
            set_if_unset(self.store, PAYMENT, payment_intent_id, "stripe_customer_id", customer_id)

        return action

    # ===========================================
    # Invoices
    # ===========================================

    def _handle_invoice_created(self, invoice: dict) -> str:
        record_id = insert_if_absent(
            self.store,
            INVOICE,
            invoice["id"],
            {
                "stripe_customer_id": ref_id(invoice.get("customer")),
                "stripe_subscription_id": invoice_subscription_id(invoice),
                "status": invoice.get("status") or INVOICE_OPEN,
                "amount_due": invoice.get("amount_due") or 0,
                "amount_paid": invoice.get("amount_paid") or 0,
                "created": invoice.get("created"),
            },
        )
        return INSERTED if record_id else UNCHANGED

    def _handle_invoice_paid(self, invoice: dict) -> str:
        """invoice.paid and invoice.payment_succeeded both mean the money is in."""
        fields = {"status": INVOICE_PAID}
        if invoice.get("amount_paid") is not None:
            fields["amount_paid"] = invoice["amount_paid"]

        record = patch_if_present(self.store, INVOICE, invoice["id"], fields)
        return UPDATED if record else SKIPPED

    def _handle_invoice_payment_failed(self, invoice: dict) -> str:
        record = patch_if_present(self.store, INVOICE, invoice["id"], {"status": INVOICE_OPEN})
        return UPDATED if record else SKIPPED

    # ===========================================
    # Payments
    # ===========================================

    def _handle_payment_intent_succeeded(self, payment_intent: dict) -> str:
        """Record a standalone payment; subscription payments are skipped."""
        classification = self.classifier.classify(payment_intent)
        emit_classification_metric(classification.reason)
        if classification.subscription_derived:
            return SKIPPED

        customer_id = ref_id(payment_intent.get("customer"))
        metadata = metadata_of(payment_intent)
        record_id = insert_if_absent(
            self.store,
            PAYMENT,
            payment_intent["id"],
            {
                "stripe_customer_id": customer_id,
                "amount": payment_intent["amount"],
                "currency": payment_intent["currency"],
                "status": payment_intent["status"],
                "created": payment_intent["created"],
                "metadata": metadata,
                **project_metadata(metadata),
            },
        )
        if record_id:
            return INSERTED

        # Redelivery that now knows the customer: backfill, never overwrite
        if customer_id and set_if_unset(self.store, PAYMENT, payment_intent["id"], "stripe_customer_id", customer_id):
            return UPDATED
        return UNCHANGED


def build_dispatcher(config: SyncConfig, dynamodb=None, stripe_client=None) -> EventDispatcher:
    """Wire store, gateway and classifier for one SyncConfig."""
    store = RecordStore(config, dynamodb=dynamodb)
    gateway = StripeGateway(config, client=stripe_client)
    classifier = PaymentClassifier(store, gateway, config.recent_subscription_window_seconds)
    return EventDispatcher(store, classifier)
