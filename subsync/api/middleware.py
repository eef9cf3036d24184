"""Middleware and exception handlers for the FastAPI application.

Service exceptions are raised as typed exceptions and turned into HTTP responses here,
at the edge, so the service layer never deals in status codes.
"""

import time
import traceback
import uuid
from typing import Union

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from subsync.core.config import settings
from subsync.core.exceptions import (
    AlreadyExtendedException,
    ExternalServiceError,
    ExternalServiceTimeoutError,
    InvalidInputException,
    NotFoundException,
    PermissionException,
    PreconditionFailedException,
    SignatureVerificationException,
    SubsyncException,
    UnauthenticatedException,
    unpack_validation_error,
)
from subsync.core.logging import logger

REQUEST_ID_HEADER = "X-Request-ID"


async def add_request_id(request: Request, call_next: callable) -> Response:
    """Attach a request id for tracing, reusing the caller's one when given.

    Args:
    ----
        request (Request): The incoming request.
        call_next (callable): The next middleware in the chain.

    Returns:
    -------
        Response: The response, carrying the request id header.

    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def log_requests(request: Request, call_next: callable) -> Response:
    """Log each request with its duration and status code."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time
    logger.info(
        f"Handled request {request.method} {request.url.path} in {duration:.2f} seconds. "
        f"Response code: {response.status_code}"
    )
    return response


async def exception_logging_middleware(request: Request, call_next: callable) -> Response:
    """Log unhandled exceptions and answer with a 500.

    Args:
    ----
        request (Request): The incoming request.
        call_next (callable): The next middleware in the chain.

    Returns:
    -------
        Response: The response to the incoming request.

    """
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error(f"Unhandled exception: {exc}\n{traceback.format_exc()}")

        response_content = {
            "detail": f"Internal Server Error: {exc.__class__.__name__}: {str(exc)}"
        }
        if settings.LOCAL_DEVELOPMENT or settings.DEBUG:
            response_content["trace"] = traceback.format_exc()

        return JSONResponse(status_code=500, content=response_content)


# Exception handlers
async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, ValidationError]
) -> JSONResponse:
    """Exception handler for request and model validation errors.

    Args:
    ----
        request (Request): The incoming request that triggered the exception.
        exc (Union[RequestValidationError, ValidationError]): The validation error.

    Returns:
    -------
        JSONResponse: A 422 response listing each invalid field and its message.

    Example of JSON output:
        {
            "errors": [
                {"body.stripe_price_id": "Field required"}
            ]
        }

    """
    error_messages = unpack_validation_error(exc)
    logger.warning(f"Validation error on {request.url.path}: {error_messages}")
    return JSONResponse(status_code=422, content=error_messages)


async def permission_exception_handler(request: Request, exc: PermissionException) -> JSONResponse:
    """Exception handler for PermissionException (403)."""
    return JSONResponse(status_code=403, content={"detail": str(exc)})


async def not_found_exception_handler(request: Request, exc: NotFoundException) -> JSONResponse:
    """Exception handler for NotFoundException (404)."""
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def external_service_exception_handler(
    request: Request, exc: ExternalServiceError
) -> JSONResponse:
    """Exception handler for ExternalServiceError.

    The outcome of the failed call is unknown to the caller, so the detail says which
    service failed without leaking its raw error.

    Args:
    ----
        request (Request): The incoming request that triggered the exception.
        exc (ExternalServiceError): The exception object that was raised.

    Returns:
    -------
        JSONResponse: 504 for timeouts, 502 for any other failure.

    """
    logger.error(f"External service error on {request.url.path}: {exc}")
    if isinstance(exc, ExternalServiceTimeoutError):
        return JSONResponse(
            status_code=504, content={"detail": f"{exc.service_name} did not respond in time"}
        )
    return JSONResponse(
        status_code=502, content={"detail": f"{exc.service_name} request failed"}
    )


async def subsync_exception_handler(request: Request, exc: SubsyncException) -> JSONResponse:
    """Generic exception handler for all SubsyncException types.

    Maps each exception kind to the HTTP status matching its meaning.

    Args:
    ----
        request (Request): The incoming request that triggered the exception.
        exc (SubsyncException): The exception object that was raised.

    Returns:
    -------
        JSONResponse: HTTP response with appropriate status code and error details.
    """
    status_code_map = {
        # 401 Unauthorized - no verified caller
        UnauthenticatedException: 401,
        # 403 Forbidden - caller acting on another account
        PermissionException: 403,
        # 400 Bad Request - client error
        InvalidInputException: 400,
        SignatureVerificationException: 400,
        # 409 Conflict - not allowed in the current subscription state
        PreconditionFailedException: 409,
        AlreadyExtendedException: 409,
    }

    status_code = 500
    for exc_type, code in status_code_map.items():
        if isinstance(exc, exc_type):
            status_code = code
            break

    return JSONResponse(status_code=status_code, content={"detail": str(exc)})
