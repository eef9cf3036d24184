"""Main module of the FastAPI application.

This module sets up the FastAPI application, the middleware that logs requests and
unhandled exceptions, and the handlers that map service exceptions to HTTP responses.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from subsync.api.middleware import (
    add_request_id,
    exception_logging_middleware,
    external_service_exception_handler,
    log_requests,
    not_found_exception_handler,
    permission_exception_handler,
    subsync_exception_handler,
    validation_exception_handler,
)
from subsync.api.router import TrailingSlashRouter
from subsync.api.v1.api import api_router
from subsync.core.config import settings
from subsync.core.exceptions import (
    ExternalServiceError,
    NotFoundException,
    PermissionException,
    SubsyncException,
)
from subsync.core.logging import logger
from subsync.db.init_db import create_tables, init_db
from subsync.db.session import AsyncSessionLocal, async_engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events.

    Creates missing tables and seeds the plan catalog.
    """
    if settings.CREATE_TABLES_ON_STARTUP:
        logger.info("Creating database tables...")
        await create_tables(async_engine)
        async with AsyncSessionLocal() as db:
            await init_db(db)

    if not settings.stripe_enabled:
        logger.warning("Stripe is not configured; processor calls and webhooks will fail")

    yield

    await async_engine.dispose()


# Create FastAPI app with our custom router and disable FastAPI's built-in redirects
app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url="/openapi.json",
    lifespan=lifespan,
    router=TrailingSlashRouter(),
    redirect_slashes=False,
)

app.include_router(api_router)

# Register middleware directly
app.middleware("http")(add_request_id)
app.middleware("http")(log_requests)
app.middleware("http")(exception_logging_middleware)

# Register exception handlers
app.exception_handler(RequestValidationError)(validation_exception_handler)
app.exception_handler(ValidationError)(validation_exception_handler)
app.exception_handler(PermissionException)(permission_exception_handler)
app.exception_handler(NotFoundException)(not_found_exception_handler)
app.exception_handler(ExternalServiceError)(external_service_exception_handler)
app.exception_handler(SubsyncException)(subsync_exception_handler)
