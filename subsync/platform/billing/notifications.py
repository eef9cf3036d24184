"""Billing notifications.

Notifications are fire-and-forget: they are scheduled on the running loop and never
delay or fail the webhook or mutation that triggered them.
"""

import asyncio
from typing import Coroutine, Optional, Protocol

import resend

from subsync.core.config import settings
from subsync.core.logging import ContextualLogger, logger

# Strong references to in-flight notifications so they are not garbage collected
_background_tasks: set[asyncio.Task] = set()


class Notifier(Protocol):
    """Channel that tells account holders about billing changes."""

    async def payment_failed(self, account_id: str, email: Optional[str], message: str) -> None:
        """A renewal charge failed."""
        ...

    async def subscription_activated(
        self, account_id: str, email: Optional[str], plan_id: str
    ) -> None:
        """A checkout completed and the subscription is live."""
        ...


class LoggingNotifier:
    """Notifier that only logs. Used when no email provider is configured."""

    async def payment_failed(self, account_id: str, email: Optional[str], message: str) -> None:
        """Log a failed payment notice."""
        logger.with_context(account_id=account_id).info(f"Payment failed notice: {message}")

    async def subscription_activated(
        self, account_id: str, email: Optional[str], plan_id: str
    ) -> None:
        """Log an activation notice."""
        logger.with_context(account_id=account_id).info(f"Subscription activated: {plan_id}")


def _send_email_sync(to_email: str, subject: str, text: str) -> None:
    """Synchronous email sending function to be run in a thread pool."""
    resend.api_key = settings.RESEND_API_KEY
    resend.Emails.send(
        {
            "from": settings.RESEND_FROM_EMAIL,
            "to": [to_email],
            "subject": subject,
            "text": text,
        }
    )


class EmailNotifier:
    """Notifier that emails the account holder via Resend."""

    async def _send(self, email: Optional[str], subject: str, text: str) -> None:
        if not email:
            return
        await asyncio.to_thread(_send_email_sync, email, subject, text)

    async def payment_failed(self, account_id: str, email: Optional[str], message: str) -> None:
        """Email a failed payment notice."""
        await self._send(
            email,
            "Your payment failed",
            f"We could not process your latest payment: {message}. "
            "Please update your payment method to keep your subscription active.",
        )

    async def subscription_activated(
        self, account_id: str, email: Optional[str], plan_id: str
    ) -> None:
        """Email an activation notice."""
        await self._send(
            email,
            "Your subscription is active",
            f"Thanks for subscribing. Your {plan_id} plan is now active.",
        )


def get_notifier() -> Notifier:
    """Notifier for the configured environment."""
    if settings.RESEND_API_KEY and settings.RESEND_FROM_EMAIL:
        return EmailNotifier()
    return LoggingNotifier()


def _handle_task_completion(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Notification failed: {type(exc).__name__}: {exc}")


def dispatch(coro: Coroutine, log: Optional[ContextualLogger] = None) -> asyncio.Task:
    """Schedule a notification without awaiting it."""
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_handle_task_completion)
    (log or logger).debug("Scheduled billing notification")
    return task
