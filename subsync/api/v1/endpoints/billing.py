"""API endpoints for subscription operations.

This module provides the HTTP interface for subscription management and the Stripe
webhook, delegating all business logic to the subscription service and the webhook
processor.
"""

from typing import List, Optional

from fastapi import Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from subsync import schemas
from subsync.api import deps
from subsync.api.context import ApiContext
from subsync.api.router import TrailingSlashRouter
from subsync.integrations.stripe_client import StripeClient
from subsync.platform.billing.notifications import Notifier
from subsync.platform.billing.subscription_service import SubscriptionService
from subsync.platform.billing.webhook_handler import BillingWebhookProcessor

router = TrailingSlashRouter()


@router.post(
    "/accounts/{account_id}/checkout-session",
    response_model=schemas.CheckoutSessionResponse,
)
async def create_checkout_session(
    request: schemas.CheckoutSessionRequest,
    account_id: str,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> schemas.CheckoutSessionResponse:
    """Create a Stripe checkout session for a price.

    The subscription is not written here; it appears once Stripe reports the completed
    checkout through the webhook.

    Args:
        request: Price and optional redirect URLs
        account_id: Account subscribing
        db: Database session
        ctx: API context
        service: Subscription service

    Returns:
        Checkout session id and the URL to redirect the user to
    """
    return await service.start_checkout(
        db,
        ctx,
        account_id,
        request.stripe_price_id,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
    )


@router.post("/accounts/{account_id}/change-plan", response_model=schemas.PlanChangeResponse)
async def change_plan(
    request: schemas.ChangePlanRequest,
    account_id: str,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> schemas.PlanChangeResponse:
    """Move the subscription to another price, prorating the difference."""
    return await service.change_plan(db, ctx, account_id, request.stripe_price_id)


@router.post("/accounts/{account_id}/cancel", response_model=schemas.CancelSubscriptionResponse)
async def cancel_subscription(
    account_id: str,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> schemas.CancelSubscriptionResponse:
    """Cancel at the end of the current billing period.

    Only active and past_due subscriptions can be cancelled. A trialing subscription is
    rejected with 409 and converts to a paid one when the trial ends; cancel after that.

    Returns:
        When access ends
    """
    return await service.cancel_subscription(db, ctx, account_id)


@router.post("/accounts/{account_id}/reactivate", response_model=schemas.MessageResponse)
async def reactivate_subscription(
    account_id: str,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> schemas.MessageResponse:
    """Undo a scheduled cancellation."""
    return await service.reactivate_subscription(db, ctx, account_id)


@router.post("/accounts/{account_id}/extend-trial", response_model=schemas.TrialExtensionResponse)
async def extend_trial(
    account_id: str,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> schemas.TrialExtensionResponse:
    """Extend the trial once."""
    return await service.extend_trial(db, ctx, account_id)


@router.post("/accounts/{account_id}/payment-method", response_model=schemas.MessageResponse)
async def update_payment_method(
    request: schemas.UpdatePaymentMethodRequest,
    account_id: str,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> schemas.MessageResponse:
    """Replace the default payment method used for future invoices."""
    return await service.update_payment_method(db, ctx, account_id, request.payment_method_id)


@router.get("/accounts/{account_id}/invoices", response_model=List[schemas.Invoice])
async def list_invoices(
    account_id: str,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> List[schemas.Invoice]:
    """List invoices of the last twelve months, newest first."""
    return await service.list_invoices(db, ctx, account_id)


@router.get("/accounts/{account_id}/subscription", response_model=schemas.Subscription)
async def get_subscription(
    account_id: str,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> schemas.Subscription:
    """Get the current subscription of an account."""
    return await service.get_subscription(db, ctx, account_id)


@router.post(
    "/accounts/{account_id}/cancellation-feedback", response_model=schemas.MessageResponse
)
async def submit_cancellation_feedback(
    request: schemas.CancellationFeedbackRequest,
    account_id: str,
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> schemas.MessageResponse:
    """Record why the account is cancelling."""
    return await service.submit_cancellation_feedback(db, ctx, account_id, request)


@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(deps.get_db),
    stripe_client: StripeClient = Depends(deps.get_stripe_client),
    notifier: Notifier = Depends(deps.get_notifier),
) -> JSONResponse:
    """Handle Stripe webhook events.

    The signature is checked against the raw body exactly as received. Responses:
    - 200 when the event was applied, was a redelivery, or is of a kind we ignore
    - 400 when the signature or payload is invalid
    - 5xx when handling failed and Stripe should retry

    Args:
        request: Raw HTTP request
        stripe_signature: Stripe signature header
        db: Database session
        stripe_client: Processor client used for verification and lookups
        notifier: Notification channel

    Returns:
        Acknowledgement with the handling outcome
    """
    payload = await request.body()

    processor = BillingWebhookProcessor(db, stripe_client, notifier)
    result = await processor.handle(payload, stripe_signature)

    content = schemas.WebhookResponse(
        received=result.acknowledged, outcome=result.outcome
    ).model_dump()
    if result.detail and not result.acknowledged:
        content["detail"] = result.detail
    return JSONResponse(status_code=result.status_code, content=content)
