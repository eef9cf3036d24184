"""Stripe API client for subscription operations.

This module provides a typed interface to the Stripe API, handling all direct Stripe
interactions without business logic. Every call is bounded by
``settings.STRIPE_TIMEOUT_SECONDS`` and every Stripe failure surfaces as
``ExternalServiceError``.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from typing import Any, Awaitable, Dict, Optional, TypeVar

import stripe
from stripe import SignatureVerificationError, StripeError

from subsync import schemas
from subsync.core.config import settings
from subsync.core.datetime_utils import from_unix_timestamp, to_unix_timestamp
from subsync.core.exceptions import (
    ExternalServiceError,
    ExternalServiceTimeoutError,
    SignatureVerificationException,
)
from subsync.schemas.billing_event import StripeSubscriptionObject

T = TypeVar("T")

SERVICE_NAME = "Stripe"

# Currencies Stripe bills in whole units
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "bif",
        "clp",
        "djf",
        "gnf",
        "jpy",
        "kmf",
        "krw",
        "mga",
        "pyg",
        "rwf",
        "ugx",
        "vnd",
        "vuv",
        "xaf",
        "xof",
        "xpf",
    }
)


def _as_dict(obj: Any) -> Dict[str, Any]:
    """Plain dict view of a Stripe object."""
    to_dict = getattr(obj, "to_dict", None)
    return to_dict() if callable(to_dict) else obj


def minor_units_to_decimal(amount: int, currency: str) -> Decimal:
    """Convert an integer amount in minor units to a major-unit Decimal."""
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return Decimal(amount)
    return (Decimal(amount) / Decimal(100)).quantize(Decimal("0.01"))


def extract_subscription_item_id(subscription: StripeSubscriptionObject) -> Optional[str]:
    """Id of the subscription's first line item."""
    if not subscription.items.data:
        return None
    return subscription.items.data[0].id


class StripeClient:
    """Client for Stripe API operations."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize Stripe client.

        Args:
        ----
            api_key (str, optional): Secret API key. Defaults to settings.
            webhook_secret (str, optional): Webhook signing secret. Defaults to settings.
            timeout (float, optional): Per-call budget in seconds. Defaults to settings.

        """
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET
        self.timeout = timeout if timeout is not None else settings.STRIPE_TIMEOUT_SECONDS

        if self.api_key:
            stripe.api_key = self.api_key

    async def _call(self, action: str, awaitable: Awaitable[T]) -> T:
        """Await a Stripe call within the time budget, translating failures."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ExternalServiceTimeoutError(SERVICE_NAME, self.timeout) from e
        except StripeError as e:
            raise ExternalServiceError(
                service_name=SERVICE_NAME,
                message=f"Failed to {action}: {str(e)}",
            ) from e

    # Customer operations

    async def create_customer(self, account_id: str, email: str) -> str:
        """Create a Stripe customer for an account.

        The idempotency key is derived from the account id, so a retried call after a
        lost response returns the customer created by the first attempt.

        Returns:
            The new customer id
        """
        customer = await self._call(
            "create customer",
            stripe.Customer.create_async(
                email=email,
                metadata={"account_id": account_id},
                idempotency_key=f"customer-create-{account_id}",
            ),
        )
        return customer.id

    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        """Make a payment method the customer's default for invoices."""
        await self._call(
            "set default payment method",
            stripe.Customer.modify_async(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
            ),
        )

    # Payment method operations

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None:
        """Attach a payment method to a customer."""
        await self._call(
            "attach payment method",
            stripe.PaymentMethod.attach_async(payment_method_id, customer=customer_id),
        )

    # Checkout operations

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        trial_period_days: int = 0,
    ) -> schemas.CheckoutSessionResponse:
        """Create a subscription-mode hosted checkout session.

        The metadata is copied onto the resulting subscription so later subscription
        and invoice events can be correlated with the account.
        """
        subscription_data: Dict[str, Any] = {"metadata": metadata}
        if trial_period_days > 0:
            subscription_data["trial_period_days"] = trial_period_days

        session = await self._call(
            "create checkout session",
            stripe.checkout.Session.create_async(
                customer=customer_id,
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                allow_promotion_codes=True,
                billing_address_collection="required",
                subscription_data=subscription_data,
            ),
        )
        return schemas.CheckoutSessionResponse(session_id=session.id, url=session.url)

    # Subscription operations

    async def get_subscription(self, subscription_id: str) -> StripeSubscriptionObject:
        """Retrieve a subscription."""
        subscription = await self._call(
            "retrieve subscription",
            stripe.Subscription.retrieve_async(subscription_id),
        )
        return StripeSubscriptionObject.model_validate(_as_dict(subscription))

    async def update_subscription(
        self, subscription_id: str, **fields: Any
    ) -> StripeSubscriptionObject:
        """Update a subscription with the given fields."""
        subscription = await self._call(
            "update subscription",
            stripe.Subscription.modify_async(subscription_id, **fields),
        )
        return StripeSubscriptionObject.model_validate(_as_dict(subscription))

    # Invoice operations

    async def list_invoices(
        self, customer_id: str, created_after: datetime, limit: int = 100
    ) -> list[schemas.Invoice]:
        """List a customer's invoices created after the given time, newest first."""
        invoices = await self._call(
            "list invoices",
            stripe.Invoice.list_async(
                customer=customer_id,
                created={"gte": to_unix_timestamp(created_after)},
                limit=limit,
            ),
        )
        return [
            schemas.Invoice(
                id=invoice["id"],
                number=invoice.get("number"),
                amount_paid=minor_units_to_decimal(
                    invoice.get("amount_paid") or 0, invoice["currency"]
                ),
                currency=invoice["currency"].upper(),
                status=invoice.get("status"),
                created=from_unix_timestamp(invoice["created"]),
                invoice_pdf=invoice.get("invoice_pdf"),
                hosted_invoice_url=invoice.get("hosted_invoice_url"),
            )
            for invoice in map(_as_dict, invoices.data)
        ]

    # Webhook operations

    def verify_webhook_signature(self, payload: bytes, signature: str) -> stripe.Event:
        """Verify and construct webhook event.

        Raises:
            SignatureVerificationException: If the signature or payload is invalid
        """
        if not self.webhook_secret:
            raise SignatureVerificationException("Webhook secret is not configured")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            raise SignatureVerificationException(f"Invalid webhook payload: {e}") from e
        except SignatureVerificationError as e:
            raise SignatureVerificationException(f"Invalid webhook signature: {e}") from e


@lru_cache
def get_stripe_client() -> StripeClient:
    """Shared client for the API dependency layer."""
    return StripeClient()
