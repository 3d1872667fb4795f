"""
Tests for /api/payment/paypal/create-subscription.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from billing.paypal import PayPalError, get_paypal_client
from config.settings import config
from main import app


@pytest.fixture
def paypal():
    mock = MagicMock()
    mock.create_subscription = AsyncMock(
        return_value={
            "id": "I-SUB",
            "status": "APPROVAL_PENDING",
            "links": [
                {"rel": "self", "href": "https://api.paypal.com/v1/billing/subscriptions/I-SUB"},
                {"rel": "approve", "href": "https://www.paypal.com/webapps/billing/subscriptions?ba_token=BA-1"},
            ],
        }
    )
    return mock


@pytest.fixture
def checkout_client(client, paypal, monkeypatch):
    monkeypatch.setattr(config, "paypal_plan_id_pro", "P-PRO")
    monkeypatch.setattr(config, "paypal_plan_id_starter", "")
    app.dependency_overrides[get_paypal_client] = lambda: paypal
    return client


class TestCreateSubscription:
    def test_returns_approval_link(self, checkout_client, paypal, make_user):
        with patch("billing.routes.get_user", new_callable=AsyncMock, return_value=make_user()):
            resp = checkout_client.post(
                "/api/payment/paypal/create-subscription",
                json={"planId": "pro", "userId": "user-1"},
            )

        assert resp.status_code == 200
        assert resp.json() == {
            "subscriptionId": "I-SUB",
            "approvalLink": "https://www.paypal.com/webapps/billing/subscriptions?ba_token=BA-1",
        }
        paypal.create_subscription.assert_awaited_once_with(
            paypal_plan_id="P-PRO",
            user_id="user-1",
            email="owner@example.com",
            given_name="Owner",
        )

    @pytest.mark.parametrize(
        "body",
        [
            {"userId": "user-1"},
            {"planId": "pro"},
            {"planId": "free", "userId": "user-1"},
            {"planId": "platinum", "userId": "user-1"},
        ],
    )
    def test_invalid_plan_or_user(self, checkout_client, body):
        resp = checkout_client.post("/api/payment/paypal/create-subscription", json=body)

        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid plan or user ID"}

    def test_unknown_user(self, checkout_client):
        with patch("billing.routes.get_user", new_callable=AsyncMock, return_value=None):
            resp = checkout_client.post(
                "/api/payment/paypal/create-subscription",
                json={"planId": "pro", "userId": "ghost"},
            )

        assert resp.status_code == 404
        assert resp.json() == {"error": "User profile not found"}

    def test_unconfigured_paypal_plan(self, checkout_client, paypal, make_user):
        with patch("billing.routes.get_user", new_callable=AsyncMock, return_value=make_user()):
            resp = checkout_client.post(
                "/api/payment/paypal/create-subscription",
                json={"planId": "starter", "userId": "user-1"},
            )

        assert resp.status_code == 500
        paypal.create_subscription.assert_not_awaited()

    def test_paypal_failure(self, checkout_client, paypal, make_user):
        paypal.create_subscription.side_effect = PayPalError("boom", status_code=422)

        with patch("billing.routes.get_user", new_callable=AsyncMock, return_value=make_user()):
            resp = checkout_client.post(
                "/api/payment/paypal/create-subscription",
                json={"planId": "pro", "userId": "user-1"},
            )

        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to create subscription"}
