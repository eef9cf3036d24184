"""Unit tests for the subscription service."""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from subsync import crud, schemas
from subsync.api.context import ApiContext
from subsync.core.config import settings
from subsync.core.datetime_utils import from_unix_timestamp, utc_now_naive
from subsync.core.exceptions import (
    AlreadyExtendedException,
    ExternalServiceError,
    ExternalServiceTimeoutError,
    InvalidInputException,
    NotFoundException,
    PermissionException,
    PlanNotFoundException,
    PreconditionFailedException,
    UnauthenticatedException,
)
from subsync.core.logging import logger
from subsync.models import CancellationFeedback
from subsync.platform.billing.subscription_service import SubscriptionService
from subsync.schemas.subscription import SubscriptionStatus
from tests.conftest import ACCOUNT_ID, OTHER_ACCOUNT_ID
from tests.fixtures.stripe import PERIOD_END, TRIAL_END, make_invoice_schema


@pytest.fixture
def service(fake_stripe) -> SubscriptionService:
    return SubscriptionService(fake_stripe)


@pytest.fixture
def locked_store(monkeypatch):
    async def locked(*args, **kwargs):
        raise OperationalError("UPDATE", {}, Exception("database is locked"))

    monkeypatch.setattr(crud.account_subscription, "update_by_account_id", locked)


class TestAuthorization:
    """Every operation checks the caller before doing anything."""

    async def test_unauthenticated_caller_is_rejected(self, db, service, fake_stripe, account):
        anonymous = ApiContext(request_id="r", account_id=None, logger=logger)

        with pytest.raises(UnauthenticatedException):
            await service.start_checkout(db, anonymous, ACCOUNT_ID, "price_pro_monthly")
        assert fake_stripe.calls == []

    async def test_caller_cannot_act_on_another_account(self, db, service, fake_stripe, ctx):
        with pytest.raises(PermissionException):
            await service.cancel_subscription(db, ctx, OTHER_ACCOUNT_ID)
        assert fake_stripe.calls == []


class TestStartCheckout:
    """Tests for checkout initiation."""

    async def test_creates_and_persists_customer_before_session(
        self, db, service, fake_stripe, repository, ctx, account
    ):
        response = await service.start_checkout(db, ctx, ACCOUNT_ID, "price_pro_monthly")

        assert response.session_id == "cs_test_1"
        assert fake_stripe.call_names() == ["create_customer", "create_checkout_session"]
        stored = await repository.get_account(db, ACCOUNT_ID)
        assert stored.stripe_customer_id == "cus_acct_1"

        _, session_args = fake_stripe.calls[-1]
        assert session_args["customer_id"] == "cus_acct_1"
        assert session_args["metadata"] == {"account_id": ACCOUNT_ID}
        assert session_args["trial_period_days"] == settings.CHECKOUT_TRIAL_PERIOD_DAYS
        assert session_args["success_url"] == settings.checkout_success_url

    async def test_reuses_stored_customer(self, db, service, fake_stripe, ctx, account):
        await service.start_checkout(db, ctx, ACCOUNT_ID, "price_pro_monthly")
        await service.start_checkout(
            db, ctx, ACCOUNT_ID, "price_team_monthly", success_url="https://app/ok"
        )

        assert fake_stripe.call_names().count("create_customer") == 1
        assert fake_stripe.calls[-1][1]["success_url"] == "https://app/ok"

    async def test_does_not_write_subscription(self, db, service, repository, ctx, account):
        await service.start_checkout(db, ctx, ACCOUNT_ID, "price_pro_monthly")

        subscription = await repository.get_subscription(db, ACCOUNT_ID)
        assert subscription.status == SubscriptionStatus.NONE
        assert subscription.stripe_subscription_id is None

    async def test_unknown_price_creates_nothing(self, db, service, fake_stripe, ctx, account):
        with pytest.raises(PlanNotFoundException):
            await service.start_checkout(db, ctx, ACCOUNT_ID, "price_does_not_exist")
        assert fake_stripe.calls == []

    async def test_unknown_account(self, db, service, catalog):
        stranger = ApiContext(request_id="r", account_id="acct_missing", logger=logger)

        with pytest.raises(NotFoundException):
            await service.start_checkout(db, stranger, "acct_missing", "price_pro_monthly")


class TestChangePlan:
    """Tests for plan changes."""

    async def test_mirrors_new_plan_and_keeps_status(
        self, db, service, fake_stripe, repository, ctx, active_account
    ):
        response = await service.change_plan(db, ctx, ACCOUNT_ID, "price_team_monthly")

        assert response.plan_id == "team"
        _, update_args = fake_stripe.calls[-1]
        assert update_args["items"] == [{"id": "si_sub_1", "price": "price_team_monthly"}]
        assert update_args["proration_behavior"] == "create_prorations"

        subscription = await repository.get_subscription(db, ACCOUNT_ID)
        assert subscription.plan_id == "team"
        assert subscription.stripe_price_id == "price_team_monthly"
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.current_period_end == from_unix_timestamp(PERIOD_END)

    async def test_unknown_price_leaves_plan_unchanged(
        self, db, service, fake_stripe, repository, ctx, active_account
    ):
        with pytest.raises(NotFoundException):
            await service.change_plan(db, ctx, ACCOUNT_ID, "price_does_not_exist")

        assert fake_stripe.calls == []
        subscription = await repository.get_subscription(db, ACCOUNT_ID)
        assert subscription.plan_id == "pro"
        assert subscription.stripe_price_id == "price_pro_monthly"

    async def test_requires_subscription(self, db, service, ctx, account):
        with pytest.raises(PreconditionFailedException):
            await service.change_plan(db, ctx, ACCOUNT_ID, "price_team_monthly")

    async def test_timeout_aborts_before_local_write(
        self, db, service, fake_stripe, repository, ctx, active_account
    ):
        fake_stripe.failures["update_subscription"] = ExternalServiceTimeoutError("Stripe", 1.0)

        with pytest.raises(ExternalServiceTimeoutError):
            await service.change_plan(db, ctx, ACCOUNT_ID, "price_team_monthly")

        subscription = await repository.get_subscription(db, ACCOUNT_ID)
        assert subscription.plan_id == "pro"

    async def test_local_write_failure_after_processor_change(
        self, db, service, fake_stripe, ctx, active_account, locked_store
    ):
        with pytest.raises(ExternalServiceError) as exc_info:
            await service.change_plan(db, ctx, ACCOUNT_ID, "price_team_monthly")

        assert exc_info.value.service_name == "Database"
        assert "update_subscription" in fake_stripe.call_names()
        assert fake_stripe.subscriptions["sub_1"]["items"]["data"][0]["price"]["id"] == (
            "price_team_monthly"
        )


class TestCancelAndReactivate:
    """Tests for scheduled cancellation and reactivation."""

    async def test_cancel_sets_flag_and_keeps_status(
        self, db, service, fake_stripe, repository, ctx, active_account
    ):
        response = await service.cancel_subscription(db, ctx, ACCOUNT_ID)

        assert response.cancel_at == from_unix_timestamp(PERIOD_END)
        assert fake_stripe.calls[-1] == (
            "update_subscription",
            {"subscription_id": "sub_1", "cancel_at_period_end": True},
        )
        subscription = await repository.get_subscription(db, ACCOUNT_ID)
        assert subscription.cancel_at_period_end is True
        assert subscription.cancelled_at is not None
        assert subscription.status == SubscriptionStatus.ACTIVE

    async def test_cancel_rejected_during_trial(
        self, db, service, fake_stripe, ctx, trialing_account
    ):
        with pytest.raises(PreconditionFailedException, match="converted"):
            await service.cancel_subscription(db, ctx, ACCOUNT_ID)
        assert fake_stripe.calls == []

    async def test_cancel_processor_failure_writes_nothing(
        self, db, service, fake_stripe, repository, ctx, active_account
    ):
        fake_stripe.failures["update_subscription"] = ExternalServiceError("Stripe", "boom")

        with pytest.raises(ExternalServiceError):
            await service.cancel_subscription(db, ctx, ACCOUNT_ID)

        subscription = await repository.get_subscription(db, ACCOUNT_ID)
        assert subscription.cancel_at_period_end is False
        assert subscription.cancelled_at is None

    async def test_cancel_local_write_failure_after_processor_change(
        self, db, service, fake_stripe, ctx, active_account, locked_store
    ):
        with pytest.raises(ExternalServiceError) as exc_info:
            await service.cancel_subscription(db, ctx, ACCOUNT_ID)

        assert exc_info.value.service_name == "Database"
        assert fake_stripe.calls[-1] == (
            "update_subscription",
            {"subscription_id": "sub_1", "cancel_at_period_end": True},
        )

    async def test_cancel_store_read_failure(
        self, db, service, fake_stripe, ctx, active_account, monkeypatch
    ):
        async def locked(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(crud.account_subscription, "get_by_account_id", locked)

        with pytest.raises(ExternalServiceError):
            await service.cancel_subscription(db, ctx, ACCOUNT_ID)
        assert fake_stripe.calls == []

    async def test_reactivate_requires_scheduled_cancellation(
        self, db, service, fake_stripe, repository, ctx, active_account
    ):
        before = await repository.get_subscription(db, ACCOUNT_ID)

        with pytest.raises(PreconditionFailedException, match="not scheduled"):
            await service.reactivate_subscription(db, ctx, ACCOUNT_ID)

        assert fake_stripe.calls == []
        after = await repository.get_subscription(db, ACCOUNT_ID)
        assert after.modified_at == before.modified_at

    async def test_reactivate_without_subscription(self, db, service, ctx, account):
        with pytest.raises(PreconditionFailedException, match="No subscription"):
            await service.reactivate_subscription(db, ctx, ACCOUNT_ID)

    async def test_reactivate_after_cancel(
        self, db, service, fake_stripe, repository, ctx, active_account
    ):
        await service.cancel_subscription(db, ctx, ACCOUNT_ID)
        await service.reactivate_subscription(db, ctx, ACCOUNT_ID)

        assert fake_stripe.calls[-1][1]["cancel_at_period_end"] is False
        subscription = await repository.get_subscription(db, ACCOUNT_ID)
        assert subscription.cancel_at_period_end is False
        assert subscription.cancelled_at is None
        assert subscription.status == SubscriptionStatus.ACTIVE


class TestExtendTrial:
    """Tests for the one-shot trial extension."""

    async def test_extends_once(self, db, service, fake_stripe, repository, ctx, trialing_account):
        expected_end = from_unix_timestamp(TRIAL_END) + timedelta(
            days=settings.TRIAL_EXTENSION_DAYS
        )

        response = await service.extend_trial(db, ctx, ACCOUNT_ID)
        assert response.new_trial_end == expected_end

        with pytest.raises(AlreadyExtendedException):
            await service.extend_trial(db, ctx, ACCOUNT_ID)

        subscription = await repository.get_subscription(db, ACCOUNT_ID)
        assert subscription.trial_extended is True
        assert subscription.trial_extended_at is not None
        assert subscription.trial_end == expected_end
        assert fake_stripe.call_names().count("update_subscription") == 1

    async def test_pushes_new_end_without_proration(
        self, db, service, fake_stripe, ctx, trialing_account
    ):
        await service.extend_trial(db, ctx, ACCOUNT_ID)

        _, update_args = fake_stripe.calls[-1]
        assert update_args["trial_end"] == TRIAL_END + settings.TRIAL_EXTENSION_DAYS * 86400
        assert update_args["proration_behavior"] == "none"

    async def test_requires_trialing_status(self, db, service, fake_stripe, ctx, active_account):
        with pytest.raises(PreconditionFailedException):
            await service.extend_trial(db, ctx, ACCOUNT_ID)
        assert fake_stripe.calls == []

    async def test_requires_processor_trial_end(
        self, db, service, fake_stripe, repository, ctx, trialing_account
    ):
        fake_stripe.subscriptions["sub_1"]["trial_end"] = None

        with pytest.raises(PreconditionFailedException):
            await service.extend_trial(db, ctx, ACCOUNT_ID)

        assert "update_subscription" not in fake_stripe.call_names()
        subscription = await repository.get_subscription(db, ACCOUNT_ID)
        assert subscription.trial_extended is False


class TestUpdatePaymentMethod:
    """Tests for payment method replacement."""

    async def test_attach_then_defaults(self, db, service, fake_stripe, ctx, active_account):
        await service.update_payment_method(db, ctx, ACCOUNT_ID, "pm_card_visa")

        assert fake_stripe.call_names() == [
            "attach_payment_method",
            "set_default_payment_method",
            "update_subscription",
        ]
        assert fake_stripe.calls[-1][1]["default_payment_method"] == "pm_card_visa"

    async def test_retry_after_partial_failure(
        self, db, service, fake_stripe, ctx, active_account
    ):
        fake_stripe.failures["set_default_payment_method"] = ExternalServiceError("Stripe", "boom")

        with pytest.raises(ExternalServiceError):
            await service.update_payment_method(db, ctx, ACCOUNT_ID, "pm_card_visa")
        assert "update_subscription" not in fake_stripe.call_names()

        del fake_stripe.failures["set_default_payment_method"]
        response = await service.update_payment_method(db, ctx, ACCOUNT_ID, "pm_card_visa")

        assert response.message == "Payment method updated successfully"
        assert fake_stripe.call_names() == [
            "attach_payment_method",
            "set_default_payment_method",
            "attach_payment_method",
            "set_default_payment_method",
            "update_subscription",
        ]

    async def test_requires_subscription(self, db, service, fake_stripe, ctx, account):
        with pytest.raises(PreconditionFailedException):
            await service.update_payment_method(db, ctx, ACCOUNT_ID, "pm_card_visa")
        assert fake_stripe.calls == []

    async def test_requires_payment_method(self, db, service, ctx, active_account):
        with pytest.raises(InvalidInputException):
            await service.update_payment_method(db, ctx, ACCOUNT_ID, "")


class TestReads:
    """Tests for invoice listing and subscription info."""

    async def test_invoices_empty_without_customer(self, db, service, fake_stripe, ctx, account):
        assert await service.list_invoices(db, ctx, ACCOUNT_ID) == []
        assert fake_stripe.calls == []

    async def test_invoices_look_back_a_year(self, db, service, fake_stripe, ctx, active_account):
        fake_stripe.invoices = [make_invoice_schema()]

        invoices = await service.list_invoices(db, ctx, ACCOUNT_ID)

        assert [invoice.id for invoice in invoices] == ["in_1"]
        _, list_args = fake_stripe.calls[-1]
        assert list_args["customer_id"] == "cus_acct_1"
        lookback = utc_now_naive() - list_args["created_after"]
        assert abs(lookback - timedelta(days=settings.INVOICE_LOOKBACK_DAYS)) < timedelta(
            minutes=1
        )

    async def test_get_subscription(self, db, service, ctx, active_account):
        subscription = await service.get_subscription(db, ctx, ACCOUNT_ID)

        assert subscription.plan_id == "pro"
        assert subscription.has_subscription is True


class TestCancellationFeedback:
    """Tests for cancellation feedback."""

    async def test_stores_feedback(self, db, service, ctx, account):
        await service.submit_cancellation_feedback(
            db,
            ctx,
            ACCOUNT_ID,
            schemas.CancellationFeedbackRequest(reason="too_expensive", comments="Pricey"),
        )

        rows = (await db.execute(select(CancellationFeedback))).scalars().all()
        assert [(row.account_id, row.reason, row.comments) for row in rows] == [
            (ACCOUNT_ID, "too_expensive", "Pricey")
        ]

    async def test_reason_required(self, db, service, ctx, account):
        with pytest.raises(InvalidInputException):
            await service.submit_cancellation_feedback(
                db, ctx, ACCOUNT_ID, schemas.CancellationFeedbackRequest(reason="   ")
            )
