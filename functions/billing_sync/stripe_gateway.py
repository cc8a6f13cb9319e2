"""
Outbound Stripe API calls.

All RPCs go through one StripeClient configured with a bounded HTTP timeout,
so a slow Stripe cannot hold a webhook invocation until the Lambda times out.
Results come back as plain dicts; failures are raised as RemoteServiceError
carrying Stripe's message.
"""

import logging
import time
from typing import Any, Optional

import stripe

from .config import SyncConfig
from .errors import RemoteServiceError, StripeNotConfiguredError
from .logging_utils import log_external_call

logger = logging.getLogger(__name__)


def _to_dict(obj: Any) -> dict:
    """Convert a StripeObject (or plain mapping) to a plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeGateway:
    """Thin wrapper around stripe.StripeClient for the calls billing-sync makes."""

    def __init__(self, config: SyncConfig, client: Optional[stripe.StripeClient] = None):
        self.config = config
        self._client = client

    @property
    def client(self) -> stripe.StripeClient:
        if self._client is None:
            if not self.config.stripe_api_key:
                raise StripeNotConfiguredError()
            self._client = stripe.StripeClient(
                self.config.stripe_api_key,
                http_client=stripe.HTTPXClient(
                    timeout=self.config.rpc_timeout_seconds,
                    allow_sync_methods=True,
                ),
                max_network_retries=self.config.rpc_max_retries,
            )
        return self._client

    def _call(self, operation: str, func, *args) -> dict:
        start = time.monotonic()
        try:
            result = func(*args)
        except stripe.StripeError as e:
            log_external_call(
                logger, "stripe", operation, False,
                (time.monotonic() - start) * 1000, error=str(e),
            )
            raise RemoteServiceError(operation, e.user_message or str(e), e.code) from e

        log_external_call(logger, "stripe", operation, True, (time.monotonic() - start) * 1000)
        return _to_dict(result)

    def retrieve_invoice(self, invoice_id: str) -> dict:
        return self._call("invoices.retrieve", self.client.v1.invoices.retrieve, invoice_id)

    def retrieve_subscription(self, subscription_id: str) -> dict:
        return self._call("subscriptions.retrieve", self.client.v1.subscriptions.retrieve, subscription_id)

    def update_subscription_item_quantity(self, item_id: str, quantity: int) -> dict:
        return self._call(
            "subscription_items.update",
            self.client.v1.subscription_items.update,
            item_id,
            {"quantity": quantity},
        )

    def schedule_cancellation(self, subscription_id: str) -> dict:
        """Cancel at the end of the current period."""
        return self._call(
            "subscriptions.update",
            self.client.v1.subscriptions.update,
            subscription_id,
            {"cancel_at_period_end": True},
        )

    def cancel_subscription(self, subscription_id: str) -> dict:
        """Cancel immediately."""
        return self._call("subscriptions.cancel", self.client.v1.subscriptions.cancel, subscription_id)

    def create_checkout_session(self, params: dict) -> dict:
        return self._call("checkout.sessions.create", self.client.v1.checkout.sessions.create, params)

    def create_billing_portal_session(self, customer_id: str, return_url: str) -> dict:
        return self._call(
            "billing_portal.sessions.create",
            self.client.v1.billing_portal.sessions.create,
            {"customer": customer_id, "return_url": return_url},
        )
