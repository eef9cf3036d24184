"""Common test fixtures and configuration for pytest.

Tests run against an in-memory SQLite database created from the model metadata, with a
fake Stripe client and a recording notifier injected where the services expect them.
"""

from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import subsync.models  # noqa: F401
from subsync import crud, schemas
from subsync.api.context import ApiContext
from subsync.core.datetime_utils import from_unix_timestamp
from subsync.core.logging import logger
from subsync.models._base import Base
from subsync.platform.billing.billing_data_access import SubscriptionRepository
from subsync.platform.billing.plan_catalog import plan_catalog
from subsync.schemas.subscription import SubscriptionStatus, SubscriptionUpdate
from tests.fixtures.stripe import (
    PERIOD_END,
    PERIOD_START,
    TRIAL_END,
    FakeStripeClient,
    RecordingNotifier,
    make_subscription,
)

ACCOUNT_ID = "acct_1"
OTHER_ACCOUNT_ID = "acct_2"


@pytest.fixture
async def db_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Database session bound to the test engine."""
    session_factory = async_sessionmaker(
        db_engine, autoflush=False, expire_on_commit=False, class_=AsyncSession
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
async def catalog(db):
    """Seed two plans: pro (monthly and yearly prices) and team."""
    await plan_catalog.register_plan(
        db, "pro", ["price_pro_monthly", "price_pro_yearly"], name="Pro"
    )
    await plan_catalog.register_plan(db, "team", ["price_team_monthly"], name="Team")
    return plan_catalog


@pytest.fixture
async def account(db, catalog) -> schemas.Account:
    """Account without a subscription."""
    created = await crud.account.create_with_subscription(
        db, obj_in=schemas.AccountCreate(account_id=ACCOUNT_ID, email="owner@example.com")
    )
    return schemas.Account.model_validate(created, from_attributes=True)


@pytest.fixture
def repository() -> SubscriptionRepository:
    return SubscriptionRepository()


@pytest.fixture
def fake_stripe() -> FakeStripeClient:
    return FakeStripeClient()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ctx() -> ApiContext:
    """Context of the owner of ``ACCOUNT_ID``."""
    return ApiContext(
        request_id="test-request-id",
        account_id=ACCOUNT_ID,
        logger=logger.with_context(request_id="test-request-id", account_id=ACCOUNT_ID),
    )


async def _subscribe(db, repository, fake_stripe, status: str, trial_end=None) -> None:
    await crud.account.update(
        db,
        db_obj=await crud.account.get_by_account_id(db, account_id=ACCOUNT_ID),
        obj_in={"stripe_customer_id": "cus_acct_1"},
    )
    fake_stripe.add_subscription(make_subscription(status=status, trial_end=trial_end))
    await repository.apply_update(
        db,
        ACCOUNT_ID,
        SubscriptionUpdate(
            stripe_subscription_id="sub_1",
            plan_id="pro",
            stripe_price_id="price_pro_monthly",
            status=SubscriptionStatus(status),
            current_period_start=from_unix_timestamp(PERIOD_START),
            current_period_end=from_unix_timestamp(PERIOD_END),
            trial_end=from_unix_timestamp(trial_end),
        ),
    )


@pytest.fixture
async def active_account(db, account, repository, fake_stripe) -> schemas.Account:
    """Account on the pro plan, status active, mirrored by ``fake_stripe``."""
    await _subscribe(db, repository, fake_stripe, "active")
    return account


@pytest.fixture
async def trialing_account(db, account, repository, fake_stripe) -> schemas.Account:
    """Account on the pro plan, still in its trial."""
    await _subscribe(db, repository, fake_stripe, "trialing", trial_end=TRIAL_END)
    return account
