"""
Shared pytest fixtures for billing-sync tests.
"""

import hashlib
import hmac
import json
import os
import sys
import time
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

# Add functions directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "functions"))

WEBHOOK_SECRET = "whsec_test_secret"


def pytest_configure(config):
    """Set AWS credentials before test collection.

    This runs before test collection starts, ensuring boto3 resource
    creation during imports doesn't fail with NoRegionError.
    """
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_REGION", "us-east-1")


@pytest.fixture(autouse=True)
def aws_credentials():
    """Set fake AWS credentials for all tests."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ["AWS_REGION"] = "us-east-1"


@pytest.fixture(autouse=True)
def clean_stripe_env(monkeypatch):
    """Make sure no real Stripe configuration leaks into tests."""
    for name in (
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "STRIPE_SECRET_ARN",
        "STRIPE_WEBHOOK_SECRET_ARN",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_aws_clients():
    """Reset shared AWS client singletons between tests."""
    yield
    from billing_sync.aws_clients import reset_clients
    reset_clients()


@pytest.fixture(autouse=True)
def reset_caches():
    """Reset secret and dispatcher caches between tests to prevent pollution."""
    from billing_api.stripe_webhook import reset_dispatcher
    from billing_sync.config import reset_secret_cache

    reset_secret_cache()
    reset_dispatcher()
    yield
    reset_secret_cache()
    reset_dispatcher()


def create_dynamodb_tables(dynamodb, config=None):
    """Create all billing-sync tables with their GSIs.

    Uses the same definitions as scripts/create_tables.py.

    Args:
        dynamodb: boto3 DynamoDB resource
        config: SyncConfig naming the tables (defaults to the default names)
    """
    from billing_sync.config import SyncConfig
    from billing_sync.entities import table_definitions

    for definition in table_definitions(config or SyncConfig()):
        dynamodb.create_table(**definition)


@pytest.fixture
def mock_dynamodb():
    """Provide mocked DynamoDB with tables."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        create_dynamodb_tables(dynamodb)
        yield dynamodb


@pytest.fixture
def sync_config():
    from billing_sync.config import SyncConfig
    return SyncConfig(stripe_api_key="sk_test_123", webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def store(mock_dynamodb, sync_config):
    """RecordStore over the mocked tables."""
    from billing_sync.store import RecordStore
    return RecordStore(sync_config, dynamodb=mock_dynamodb)


@pytest.fixture
def gateway():
    """StripeGateway stand-in; tests set return values per call."""
    from billing_sync.stripe_gateway import StripeGateway
    return MagicMock(spec=StripeGateway)


@pytest.fixture
def dispatcher(store, gateway):
    from billing_sync.classifier import PaymentClassifier
    from billing_sync.dispatcher import EventDispatcher
    return EventDispatcher(store, PaymentClassifier(store, gateway))


@pytest.fixture
def api_gateway_event():
    """Base API Gateway event for Lambda handler tests."""
    return {
        "httpMethod": "POST",
        "headers": {},
        "pathParameters": {},
        "queryStringParameters": {},
        "body": None,
        "requestContext": {
            "requestId": "req-test-123",
            "identity": {"sourceIp": "127.0.0.1"},
        },
    }


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    """Build a Stripe-Signature header for payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, data: dict, event_id: str = "evt_test_1") -> dict:
    """Minimal Stripe event envelope."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": 1760000000,
        "livemode": False,
        "data": {"object": data},
    }


def signed_request(api_gateway_event: dict, stripe_event: dict, secret: str = WEBHOOK_SECRET) -> dict:
    """API Gateway event carrying a correctly signed Stripe webhook."""
    payload = json.dumps(stripe_event)
    api_gateway_event["body"] = payload
    api_gateway_event["headers"]["stripe-signature"] = sign_payload(payload, secret)
    return api_gateway_event


@pytest.fixture
def subscription_payload():
    """customer.subscription.created data.object with org/user metadata."""
    return {
        "id": "sub_123",
        "object": "subscription",
        "customer": "cus_123",
        "status": "active",
        "cancel_at_period_end": False,
        "metadata": {"orgId": "org_1", "userId": "user_1"},
        "items": {
            "data": [
                {
                    "id": "si_123",
                    "quantity": 3,
                    "current_period_end": 1762592000,
                    "price": {"id": "price_pro"},
                }
            ]
        },
    }


@pytest.fixture
def payment_intent_payload():
    """payment_intent.succeeded data.object for a one-time payment."""
    return {
        "id": "pi_123",
        "object": "payment_intent",
        "amount": 4900,
        "currency": "usd",
        "status": "succeeded",
        "created": 1760000000,
        "customer": None,
        "invoice": None,
        "metadata": {"orgId": "org_1"},
    }
