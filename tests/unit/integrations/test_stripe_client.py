"""Unit tests for the Stripe client wrapper."""

import asyncio
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

from subsync.core.exceptions import (
    ExternalServiceError,
    ExternalServiceTimeoutError,
    SignatureVerificationException,
)
from subsync.integrations.stripe_client import StripeClient, minor_units_to_decimal
from tests.fixtures.stripe import (
    WEBHOOK_SECRET,
    make_event,
    make_subscription,
    sign_payload,
)


@pytest.fixture
def client() -> StripeClient:
    return StripeClient(api_key=None, webhook_secret=WEBHOOK_SECRET, timeout=0.05)


@pytest.mark.parametrize(
    "amount, currency, expected",
    [
        (1999, "usd", Decimal("19.99")),
        (500, "jpy", Decimal("500")),
        (0, "eur", Decimal("0.00")),
        (100, "KRW", Decimal("100")),
    ],
)
def test_minor_units_to_decimal(amount, currency, expected):
    assert minor_units_to_decimal(amount, currency) == expected


class TestWebhookSignature:
    """Signature verification uses the configured signing secret."""

    def test_valid_signature(self, client):
        event = make_event("customer.subscription.updated", make_subscription())
        payload, signature = sign_payload(event)

        verified = client.verify_webhook_signature(payload, signature)

        assert verified.id == event["id"]

    def test_wrong_secret(self, client):
        payload, signature = sign_payload(
            make_event("customer.subscription.updated", make_subscription()),
            secret="whsec_other",
        )

        with pytest.raises(SignatureVerificationException):
            client.verify_webhook_signature(payload, signature)

    def test_expired_timestamp(self, client):
        payload, signature = sign_payload(
            make_event("customer.subscription.updated", make_subscription()),
            timestamp=1_600_000_000,
        )

        with pytest.raises(SignatureVerificationException):
            client.verify_webhook_signature(payload, signature)

    def test_missing_secret(self, client):
        client.webhook_secret = None
        payload, signature = sign_payload(
            make_event("customer.subscription.updated", make_subscription())
        )

        with pytest.raises(SignatureVerificationException):
            client.verify_webhook_signature(payload, signature)


class TestCallBudget:
    """Every call is bounded and failures are translated."""

    async def test_slow_call_times_out(self, client):
        with pytest.raises(ExternalServiceTimeoutError) as exc_info:
            await client._call("retrieve subscription", asyncio.sleep(1))

        assert exc_info.value.service_name == "Stripe"
        assert exc_info.value.timeout == 0.05

    async def test_stripe_error_is_wrapped(self, client):
        async def failing():
            raise stripe.InvalidRequestError("No such price: 'price_x'", param="price")

        with pytest.raises(ExternalServiceError) as exc_info:
            await client._call("update subscription", failing())

        assert not isinstance(exc_info.value, ExternalServiceTimeoutError)
        assert "update subscription" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, stripe.InvalidRequestError)


async def test_create_customer_is_idempotent_per_account(client, monkeypatch):
    captured = {}

    async def create_async(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="cus_123")

    monkeypatch.setattr(stripe.Customer, "create_async", create_async)

    customer_id = await client.create_customer("acct_1", "owner@example.com")

    assert customer_id == "cus_123"
    assert captured["idempotency_key"] == "customer-create-acct_1"
    assert captured["metadata"] == {"account_id": "acct_1"}


async def test_checkout_session_carries_trial_and_metadata(client, monkeypatch):
    captured = {}

    async def create_async(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="cs_1", url="https://checkout.stripe.com/c/pay/cs_1")

    monkeypatch.setattr(stripe.checkout.Session, "create_async", create_async)

    session = await client.create_checkout_session(
        customer_id="cus_1",
        price_id="price_pro_monthly",
        success_url="https://app.example.com/ok",
        cancel_url="https://app.example.com/cancel",
        metadata={"account_id": "acct_1"},
        trial_period_days=14,
    )

    assert session.session_id == "cs_1"
    assert captured["mode"] == "subscription"
    assert captured["subscription_data"] == {
        "metadata": {"account_id": "acct_1"},
        "trial_period_days": 14,
    }


async def test_list_invoices_converts_amounts(client, monkeypatch):
    captured = {}

    async def list_async(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(
            data=[
                {
                    "id": "in_1",
                    "number": "INV-0001",
                    "amount_paid": 1999,
                    "currency": "usd",
                    "status": "paid",
                    "created": 1767225600,
                    "invoice_pdf": "https://pay.stripe.com/invoice/in_1/pdf",
                },
                {"id": "in_2", "amount_paid": 500, "currency": "jpy", "created": 1767225600},
            ]
        )

    monkeypatch.setattr(stripe.Invoice, "list_async", list_async)

    invoices = await client.list_invoices("cus_1", datetime(2025, 1, 1), limit=10)

    assert captured["created"] == {"gte": 1735689600}
    assert captured["limit"] == 10
    assert [(i.id, i.amount_paid, i.currency) for i in invoices] == [
        ("in_1", Decimal("19.99"), "USD"),
        ("in_2", Decimal("500"), "JPY"),
    ]
    assert invoices[0].created == datetime(2026, 1, 1)
    assert invoices[1].number is None
