"""
Configuration for the billing sync engine.

Secrets are resolved once into a SyncConfig that is passed explicitly to the
record store, the Stripe gateway and the dispatcher. Handlers never read the
environment for secrets themselves.
"""

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

from botocore.exceptions import ClientError

from .aws_clients import get_secretsmanager
from .constants import (
    DEFAULT_RPC_MAX_RETRIES,
    DEFAULT_RPC_TIMEOUT,
    RECENT_SUBSCRIPTION_WINDOW_SECONDS,
    WEBHOOK_TOLERANCE_SECONDS,
)

logger = logging.getLogger(__name__)

# Cached Secrets Manager values with TTL, keyed by secret ARN
_secret_cache: dict[str, tuple[str, float]] = {}
SECRET_CACHE_TTL = 300  # 5 minutes


@dataclass(frozen=True)
class SyncConfig:
    """Everything the engine needs, resolved once per cold start."""

    stripe_api_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    customers_table: str = "billing-sync-customers"
    subscriptions_table: str = "billing-sync-subscriptions"
    payments_table: str = "billing-sync-payments"
    checkout_sessions_table: str = "billing-sync-checkout-sessions"
    invoices_table: str = "billing-sync-invoices"
    billing_events_table: str = "billing-sync-events"
    rpc_timeout_seconds: float = DEFAULT_RPC_TIMEOUT
    rpc_max_retries: int = DEFAULT_RPC_MAX_RETRIES
    recent_subscription_window_seconds: int = RECENT_SUBSCRIPTION_WINDOW_SECONDS
    webhook_tolerance_seconds: int = WEBHOOK_TOLERANCE_SECONDS


def _read_secret(secret_arn: Optional[str], json_field: str) -> Optional[str]:
    """Read a secret from Secrets Manager (cached with TTL).

    Secrets may be stored as a raw string or as JSON with the value under
    ``json_field``.
    """
    if not secret_arn:
        return None

    cached = _secret_cache.get(secret_arn)
    if cached and (time.time() - cached[1]) < SECRET_CACHE_TTL:
        return cached[0]

    try:
        response = get_secretsmanager().get_secret_value(SecretId=secret_arn)
    except ClientError as e:
        logger.error(f"Failed to retrieve secret {secret_arn}: {e}")
        return None

    secret_value = response.get("SecretString", "")
    try:
        secret_json = json.loads(secret_value)
        value = secret_json.get(json_field) or secret_value
    except (json.JSONDecodeError, AttributeError):
        value = secret_value

    if value:
        _secret_cache[secret_arn] = (value, time.time())
    return value or None


def reset_secret_cache():
    """Clear cached secrets. Used in tests for clean state."""
    _secret_cache.clear()


def _env_float(name: str, default: float) -> float:
    # Use `or` to handle empty string env vars
    return float(os.environ.get(name) or default)


def load_config(
    stripe_api_key: Optional[str] = None,
    webhook_secret: Optional[str] = None,
    **overrides,
) -> SyncConfig:
    """
    Build a SyncConfig from explicit values, the environment and Secrets Manager.

    Each secret resolves in order: explicit argument, plain environment
    variable (STRIPE_SECRET_KEY / STRIPE_WEBHOOK_SECRET), then the Secrets
    Manager ARN in STRIPE_SECRET_ARN / STRIPE_WEBHOOK_SECRET_ARN.

    Args:
        stripe_api_key: Explicit Stripe API key override
        webhook_secret: Explicit webhook signing secret override
        **overrides: Any other SyncConfig field

    Returns:
        SyncConfig with unresolved secrets left as None
    """
    api_key = (
        stripe_api_key
        or os.environ.get("STRIPE_SECRET_KEY")
        or _read_secret(os.environ.get("STRIPE_SECRET_ARN"), "key")
    )
    signing_secret = (
        webhook_secret
        or os.environ.get("STRIPE_WEBHOOK_SECRET")
        or _read_secret(os.environ.get("STRIPE_WEBHOOK_SECRET_ARN"), "secret")
    )

    defaults = SyncConfig()
    values = {
        "stripe_api_key": api_key or None,
        "webhook_secret": signing_secret or None,
        "customers_table": os.environ.get("CUSTOMERS_TABLE") or defaults.customers_table,
        "subscriptions_table": os.environ.get("SUBSCRIPTIONS_TABLE") or defaults.subscriptions_table,
        "payments_table": os.environ.get("PAYMENTS_TABLE") or defaults.payments_table,
        "checkout_sessions_table": (
            os.environ.get("CHECKOUT_SESSIONS_TABLE") or defaults.checkout_sessions_table
        ),
        "invoices_table": os.environ.get("INVOICES_TABLE") or defaults.invoices_table,
        "billing_events_table": os.environ.get("BILLING_EVENTS_TABLE") or defaults.billing_events_table,
        "rpc_timeout_seconds": _env_float("STRIPE_RPC_TIMEOUT_SECONDS", defaults.rpc_timeout_seconds),
        "rpc_max_retries": int(_env_float("STRIPE_RPC_MAX_RETRIES", defaults.rpc_max_retries)),
    }
    values.update(overrides)
    return SyncConfig(**values)
