"""Stripe test doubles and payload factories.

``FakeStripeClient`` keeps subscriptions in memory and records every call, while signature
verification is inherited from the real client so webhook tests exercise genuine HMAC
checks.
"""

import copy
import hashlib
import hmac
import json
import time
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from subsync import schemas
from subsync.integrations.stripe_client import StripeClient
from subsync.schemas.billing_event import StripeSubscriptionObject

WEBHOOK_SECRET = "whsec_test_secret"

# 2026-01-01, 2026-02-01 and 2026-01-15 00:00 UTC
PERIOD_START = 1767225600
PERIOD_END = 1769904000
TRIAL_END = 1768435200


def make_subscription(
    subscription_id: str = "sub_1",
    status: str = "active",
    price_id: str = "price_pro_monthly",
    account_id: Optional[str] = "acct_1",
    cancel_at_period_end: bool = False,
    trial_end: Optional[int] = None,
    period_start: int = PERIOD_START,
    period_end: int = PERIOD_END,
) -> Dict[str, Any]:
    """Subscription object as Stripe sends it."""
    return {
        "id": subscription_id,
        "object": "subscription",
        "status": status,
        "customer": "cus_acct_1",
        "metadata": {"account_id": account_id} if account_id else {},
        "cancel_at_period_end": cancel_at_period_end,
        "current_period_start": period_start,
        "current_period_end": period_end,
        "trial_end": trial_end,
        "items": {
            "object": "list",
            "data": [{"id": f"si_{subscription_id}", "price": {"id": price_id}}],
        },
    }


def make_checkout_session(
    subscription_id: Optional[str] = "sub_1", account_id: Optional[str] = "acct_1"
) -> Dict[str, Any]:
    """Completed checkout session object."""
    return {
        "id": "cs_test_1",
        "object": "checkout.session",
        "customer": "cus_acct_1",
        "subscription": subscription_id,
        "mode": "subscription",
        "metadata": {"account_id": account_id} if account_id else {},
    }


def make_invoice(
    subscription_id: Optional[str] = "sub_1",
    failure_message: Optional[str] = None,
    metadata: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Invoice object, using the ``parent`` block of newer API versions when given metadata."""
    invoice = {
        "id": f"in_{uuid.uuid4().hex[:10]}",
        "object": "invoice",
        "customer": "cus_acct_1",
        "subscription": subscription_id,
        "attempt_count": 1,
        "last_finalization_error": {"message": failure_message} if failure_message else None,
    }
    if metadata is not None:
        invoice["subscription"] = None
        invoice["parent"] = {
            "subscription_details": {"subscription": subscription_id, "metadata": metadata}
        }
    return invoice


def make_event(
    event_type: str, obj: Dict[str, Any], event_id: Optional[str] = None
) -> Dict[str, Any]:
    """Event envelope around a payload object."""
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:12]}",
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "data": {"object": obj},
    }


def sign_payload(
    event: Dict[str, Any], secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None
) -> tuple[bytes, str]:
    """Serialize an event and build a matching ``Stripe-Signature`` header."""
    payload = json.dumps(event).encode("utf-8")
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return payload, f"t={timestamp},v1={signature}"


class FakeStripeClient(StripeClient):
    """In-memory Stripe client."""

    def __init__(self):
        super().__init__(api_key=None, webhook_secret=WEBHOOK_SECRET, timeout=1.0)
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.invoices: List[schemas.Invoice] = []
        self.calls: List[tuple[str, Dict[str, Any]]] = []
        self.failures: Dict[str, Exception] = {}

    def add_subscription(self, subscription: Dict[str, Any]) -> None:
        self.subscriptions[subscription["id"]] = copy.deepcopy(subscription)

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def _record(self, name: str, **kwargs: Any) -> None:
        self.calls.append((name, kwargs))
        if name in self.failures:
            raise self.failures[name]

    async def create_customer(self, account_id: str, email: str) -> str:
        self._record("create_customer", account_id=account_id, email=email)
        return f"cus_{account_id}"

    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        self._record(
            "set_default_payment_method",
            customer_id=customer_id,
            payment_method_id=payment_method_id,
        )

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None:
        self._record(
            "attach_payment_method",
            payment_method_id=payment_method_id,
            customer_id=customer_id,
        )

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        trial_period_days: int = 0,
    ) -> schemas.CheckoutSessionResponse:
        self._record(
            "create_checkout_session",
            customer_id=customer_id,
            price_id=price_id,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            trial_period_days=trial_period_days,
        )
        return schemas.CheckoutSessionResponse(
            session_id="cs_test_1", url="https://checkout.stripe.com/c/pay/cs_test_1"
        )

    async def get_subscription(self, subscription_id: str) -> StripeSubscriptionObject:
        self._record("get_subscription", subscription_id=subscription_id)
        return StripeSubscriptionObject.model_validate(self.subscriptions[subscription_id])

    async def update_subscription(
        self, subscription_id: str, **fields: Any
    ) -> StripeSubscriptionObject:
        self._record("update_subscription", subscription_id=subscription_id, **fields)
        subscription = self.subscriptions[subscription_id]
        for item in fields.pop("items", []):
            for existing in subscription["items"]["data"]:
                if existing["id"] == item["id"]:
                    existing["price"] = {"id": item["price"]}
        fields.pop("proration_behavior", None)
        subscription.update(fields)
        return StripeSubscriptionObject.model_validate(subscription)

    async def list_invoices(
        self, customer_id: str, created_after: datetime, limit: int = 100
    ) -> List[schemas.Invoice]:
        self._record(
            "list_invoices", customer_id=customer_id, created_after=created_after, limit=limit
        )
        return list(self.invoices)


class RecordingNotifier:
    """Notifier that remembers what it was asked to send."""

    def __init__(self):
        self.sent: List[tuple[str, str, Optional[str], str]] = []

    async def payment_failed(self, account_id: str, email: Optional[str], message: str) -> None:
        self.sent.append(("payment_failed", account_id, email, message))

    async def subscription_activated(
        self, account_id: str, email: Optional[str], plan_id: str
    ) -> None:
        self.sent.append(("subscription_activated", account_id, email, plan_id))


def make_invoice_schema(invoice_id: str = "in_1", amount: str = "19.99") -> schemas.Invoice:
    return schemas.Invoice(
        id=invoice_id,
        number="INV-0001",
        amount_paid=Decimal(amount),
        currency="USD",
        status="paid",
        created=datetime(2026, 1, 1),
    )
