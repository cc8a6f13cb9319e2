"""
Tests for create checkout session handler.
"""

import json
from unittest.mock import patch

import pytest

from billing_sync.errors import RemoteServiceError


@pytest.fixture
def stripe_env(monkeypatch):
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_123")


def _body(**overrides):
    body = {
        "price_id": "price_pro",
        "mode": "subscription",
        "success_url": "https://app.example.com/ok",
        "cancel_url": "https://app.example.com/cancel",
    }
    body.update(overrides)
    return json.dumps(body)


class TestCreateCheckoutHandler:
    """Tests for the create checkout Lambda handler."""

    def test_creates_session(self, api_gateway_event, stripe_env):
        from billing_api.create_checkout import handler

        with patch("billing_api.create_checkout.StripeGateway") as mock_gateway_cls:
            gateway = mock_gateway_cls.return_value
            gateway.create_checkout_session.return_value = {"id": "cs_1", "url": "https://checkout.stripe.com/c/cs_1"}

            api_gateway_event["body"] = _body(customer_id="cus_1", metadata={"orgId": "org_1"})
            result = handler(api_gateway_event, {})

        assert result["statusCode"] == 200
        assert json.loads(result["body"]) == {"session_id": "cs_1", "url": "https://checkout.stripe.com/c/cs_1"}

        params = gateway.create_checkout_session.call_args[0][0]
        assert params["customer"] == "cus_1"
        assert params["metadata"] == {"orgId": "org_1"}
        assert mock_gateway_cls.call_args[0][0].stripe_api_key == "sk_test_123"

    def test_returns_400_for_invalid_json(self, api_gateway_event):
        from billing_api.create_checkout import handler

        api_gateway_event["body"] = "{not json"

        result = handler(api_gateway_event, {})

        assert result["statusCode"] == 400
        assert json.loads(result["body"])["error"]["code"] == "invalid_json"

    def test_returns_400_without_price(self, api_gateway_event):
        from billing_api.create_checkout import handler

        api_gateway_event["body"] = _body(price_id=None)

        result = handler(api_gateway_event, {})

        assert result["statusCode"] == 400
        assert json.loads(result["body"])["error"]["code"] == "missing_price_id"

    def test_returns_400_without_redirect_urls(self, api_gateway_event):
        from billing_api.create_checkout import handler

        api_gateway_event["body"] = _body(success_url=None)

        result = handler(api_gateway_event, {})

        assert result["statusCode"] == 400
        assert json.loads(result["body"])["error"]["code"] == "missing_redirect_urls"

    def test_returns_400_for_invalid_mode(self, api_gateway_event, stripe_env):
        from billing_api.create_checkout import handler

        api_gateway_event["body"] = _body(mode="donation")

        with patch("billing_api.create_checkout.StripeGateway"):
            result = handler(api_gateway_event, {})

        assert result["statusCode"] == 400
        assert json.loads(result["body"])["error"]["code"] == "invalid_request"

    def test_returns_500_when_stripe_not_configured(self, api_gateway_event):
        from billing_api.create_checkout import handler

        api_gateway_event["body"] = _body()

        result = handler(api_gateway_event, {})

        assert result["statusCode"] == 500
        assert json.loads(result["body"])["error"]["code"] == "stripe_not_configured"

    def test_surfaces_stripe_error_detail(self, api_gateway_event, stripe_env):
        from billing_api.create_checkout import handler

        with patch("billing_api.create_checkout.StripeGateway") as mock_gateway_cls:
            mock_gateway_cls.return_value.create_checkout_session.side_effect = RemoteServiceError(
                "checkout.sessions.create", "No such price: 'price_pro'", "resource_missing"
            )
            api_gateway_event["body"] = _body()

            result = handler(api_gateway_event, {})

        assert result["statusCode"] == 502
        error = json.loads(result["body"])["error"]
        assert error["code"] == "stripe_error"
        assert error["message"] == "No such price: 'price_pro'"
        assert error["details"]["stripe_code"] == "resource_missing"

    def test_cors_headers_for_allowed_origin(self, api_gateway_event, monkeypatch):
        from billing_api.create_checkout import handler

        monkeypatch.setenv("ALLOWED_ORIGINS", "https://app.example.com")
        api_gateway_event["headers"]["origin"] = "https://app.example.com"
        api_gateway_event["body"] = "{not json"

        result = handler(api_gateway_event, {})

        assert result["headers"]["Access-Control-Allow-Origin"] == "https://app.example.com"
