"""Dependencies that are used in the API endpoints."""

import uuid
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from subsync.api.context import ApiContext
from subsync.core.logging import logger
from subsync.db.session import get_db
from subsync.integrations.stripe_client import StripeClient
from subsync.integrations.stripe_client import get_stripe_client as _get_stripe_client
from subsync.platform.billing.notifications import Notifier
from subsync.platform.billing.notifications import get_notifier as _get_notifier
from subsync.platform.billing.subscription_service import SubscriptionService

__all__ = [
    "get_context",
    "get_db",
    "get_notifier",
    "get_stripe_client",
    "get_subscription_service",
]


async def get_context(
    request: Request,
    x_authenticated_account: Optional[str] = Header(None, alias="X-Authenticated-Account"),
) -> ApiContext:
    """Create unified API context for the request.

    Authentication is done by the identity gateway in front of this service, which
    forwards the verified account id in ``X-Authenticated-Account``. A missing header
    leaves the context unauthenticated; the operations themselves reject it.

    Args:
    ----
        request (Request): The FastAPI request object.
        x_authenticated_account (Optional[str]): Verified account id from the gateway.

    Returns:
    -------
        ApiContext: Unified API context with caller and logging.

    """
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    account_id = x_authenticated_account.strip() if x_authenticated_account else None

    base_logger = logger.with_context(
        request_id=request_id,
        auth_method="gateway",
        context_base="api",
    )
    if account_id:
        base_logger = base_logger.with_context(account_id=account_id)

    return ApiContext(
        request_id=request_id,
        account_id=account_id or None,
        auth_method="gateway",
        logger=base_logger,
    )


def get_stripe_client() -> StripeClient:
    """Processor client shared by the API layer."""
    return _get_stripe_client()


def get_notifier() -> Notifier:
    """Notification channel for the configured environment."""
    return _get_notifier()


def get_subscription_service(
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> SubscriptionService:
    """Subscription service wired with the request's processor client."""
    return SubscriptionService(stripe_client)
