"""
Tests for Stripe webhook handler.
"""

import base64
import json
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from billing_sync.errors import RemoteServiceError
from conftest import WEBHOOK_SECRET, make_event, sign_payload, signed_request


@pytest.fixture
def webhook_env(monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)


def _customer_event(event_id="evt_1"):
    return make_event(
        "customer.created",
        {"id": "cus_1", "email": "a@example.com", "name": "Ada", "metadata": {}},
        event_id=event_id,
    )


def _audit_item(mock_dynamodb, event_id, event_type):
    return mock_dynamodb.Table("billing-sync-events").get_item(
        Key={"pk": event_id, "sk": event_type}
    ).get("Item")


class TestSignatureGate:
    """Unauthenticated requests never reach the dispatcher."""

    def test_returns_400_without_webhook_secret(self, mock_dynamodb, api_gateway_event):
        from billing_api.stripe_webhook import handler

        result = handler(signed_request(api_gateway_event, _customer_event()), {})

        assert result["statusCode"] == 400
        body = json.loads(result["body"])
        assert body["error"]["code"] == "webhook_not_configured"

    def test_secret_fixed_after_cold_start_is_picked_up(self, mock_dynamodb, api_gateway_event, monkeypatch):
        from billing_api.stripe_webhook import handler

        assert handler(signed_request(api_gateway_event, _customer_event()), {})["statusCode"] == 400

        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
        assert handler(signed_request(api_gateway_event, _customer_event()), {})["statusCode"] == 200

    def test_returns_400_without_signature(self, mock_dynamodb, api_gateway_event, webhook_env):
        from billing_api.stripe_webhook import handler

        api_gateway_event["body"] = json.dumps(_customer_event())

        result = handler(api_gateway_event, {})

        assert result["statusCode"] == 400
        assert json.loads(result["body"])["error"]["code"] == "missing_signature"

    def test_returns_400_for_invalid_signature(self, mock_dynamodb, api_gateway_event, webhook_env):
        from billing_api.stripe_webhook import handler

        signed_request(api_gateway_event, _customer_event(), secret="whsec_wrong")

        result = handler(api_gateway_event, {})

        assert result["statusCode"] == 400
        assert json.loads(result["body"])["error"]["code"] == "invalid_signature"
        # Nothing was applied or audited
        assert mock_dynamodb.Table("billing-sync-customers").get_item(
            Key={"stripe_customer_id": "cus_1"}
        ).get("Item") is None
        assert _audit_item(mock_dynamodb, "evt_1", "customer.created") is None


class TestProcessing:
    def test_applies_event_and_acknowledges(self, mock_dynamodb, api_gateway_event, webhook_env):
        from billing_api.stripe_webhook import handler

        result = handler(signed_request(api_gateway_event, _customer_event()), {})

        assert result["statusCode"] == 200
        assert json.loads(result["body"]) == {"received": True}
        item = mock_dynamodb.Table("billing-sync-customers").get_item(
            Key={"stripe_customer_id": "cus_1"}
        )["Item"]
        assert item["email"] == "a@example.com"

    def test_accepts_capitalized_signature_header(self, mock_dynamodb, api_gateway_event, webhook_env):
        from billing_api.stripe_webhook import handler

        payload = json.dumps(_customer_event())
        api_gateway_event["body"] = payload
        api_gateway_event["headers"]["Stripe-Signature"] = sign_payload(payload)

        assert handler(api_gateway_event, {})["statusCode"] == 200

    def test_accepts_base64_body(self, mock_dynamodb, api_gateway_event, webhook_env):
        from billing_api.stripe_webhook import handler

        payload = json.dumps(_customer_event())
        api_gateway_event["body"] = base64.b64encode(payload.encode("utf-8")).decode("ascii")
        api_gateway_event["isBase64Encoded"] = True
        api_gateway_event["headers"]["stripe-signature"] = sign_payload(payload)

        assert handler(api_gateway_event, {})["statusCode"] == 200

    def test_unknown_event_type_returns_200(self, mock_dynamodb, api_gateway_event, webhook_env):
        from billing_api.stripe_webhook import handler

        event = make_event("charge.dispute.created", {"id": "dp_1"})

        result = handler(signed_request(api_gateway_event, event), {})

        assert result["statusCode"] == 200

    def test_duplicate_delivery_is_harmless(self, mock_dynamodb, api_gateway_event, webhook_env):
        from billing_api.stripe_webhook import handler

        for _ in range(2):
            assert handler(signed_request(api_gateway_event, _customer_event()), {})["statusCode"] == 200

        items = mock_dynamodb.Table("billing-sync-customers").scan()["Items"]
        assert len(items) == 1

    def test_records_successful_event(self, mock_dynamodb, api_gateway_event, webhook_env):
        from billing_api.stripe_webhook import handler

        handler(signed_request(api_gateway_event, _customer_event("evt_audit")), {})

        item = _audit_item(mock_dynamodb, "evt_audit", "customer.created")
        assert item["status"] == "success"
        assert item["action"] == "inserted"
        assert item["customer_id"] == "unknown"
        assert int(item["ttl"]) > int(item["event_created_at"])

    def test_emits_success_metric(self, mock_dynamodb, api_gateway_event, webhook_env):
        from billing_api.stripe_webhook import handler

        with patch("billing_api.stripe_webhook.emit_webhook_metric") as mock_metric:
            handler(signed_request(api_gateway_event, _customer_event()), {})

        mock_metric.assert_called_once_with("customer.created", success=True)

    def test_audit_failure_does_not_fail_webhook(self, mock_dynamodb, api_gateway_event, webhook_env):
        from billing_api.stripe_webhook import handler

        with patch("billing_api.stripe_webhook.get_dynamodb", side_effect=Exception("audit down")):
            result = handler(signed_request(api_gateway_event, _customer_event()), {})

        assert result["statusCode"] == 200

    def test_standalone_payment_without_stripe_key(self, mock_dynamodb, api_gateway_event, webhook_env):
        """Invoice lookup without an API key falls through to the recency check."""
        from billing_api.stripe_webhook import handler

        event = make_event(
            "payment_intent.succeeded",
            {
                "id": "pi_1",
                "amount": 500,
                "currency": "eur",
                "status": "succeeded",
                "created": 1760000000,
                "customer": "cus_1",
                "invoice": "in_1",
                "metadata": {},
            },
        )

        result = handler(signed_request(api_gateway_event, event), {})

        assert result["statusCode"] == 200
        item = mock_dynamodb.Table("billing-sync-payments").get_item(
            Key={"stripe_payment_intent_id": "pi_1"}
        )["Item"]
        assert item["stripe_customer_id"] == "cus_1"


class TestProcessingFailures:
    """Failures return 500 so Stripe redelivers; details are not leaked."""

    @pytest.mark.parametrize(
        "error, code",
        [
            (ClientError({"Error": {"Code": "InternalServerError", "Message": "x"}}, "PutItem"), "temporary_error"),
            (RemoteServiceError("invoices.retrieve", "card_declined detail"), "stripe_error"),
            (ValueError("secret internal detail"), "processing_failed"),
        ],
    )
    def test_failure_returns_500(self, mock_dynamodb, api_gateway_event, webhook_env, error, code):
        from billing_api.stripe_webhook import get_dispatcher, handler

        get_dispatcher().on("customer.created", MagicMock(side_effect=error))

        with patch("billing_api.stripe_webhook.emit_webhook_metric") as mock_metric:
            result = handler(signed_request(api_gateway_event, _customer_event("evt_fail")), {})

        assert result["statusCode"] == 500
        body = json.loads(result["body"])
        assert body["error"]["code"] == code
        assert "detail" not in body["error"]["message"]
        mock_metric.assert_called_once_with("customer.created", success=False)

        item = _audit_item(mock_dynamodb, "evt_fail", "customer.created")
        assert item["status"] == "failed"


class TestDispatcherCache:
    def test_dispatcher_built_once(self, mock_dynamodb, webhook_env):
        from billing_api.stripe_webhook import get_dispatcher

        assert get_dispatcher() is get_dispatcher()

    def test_reset_dispatcher(self, mock_dynamodb, webhook_env):
        from billing_api.stripe_webhook import get_dispatcher, reset_dispatcher

        first = get_dispatcher()
        reset_dispatcher()

        assert get_dispatcher() is not first
