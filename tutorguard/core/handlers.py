"""
Global exception handlers for the FastAPI application.

This module contains centralized handlers for tutorguard exceptions,
translating them into appropriate HTTP responses.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status
from structlog import get_logger

from tutorguard.core.exceptions import (
    CircuitOpenError,
    OperationalApplicationError,
    RateLimitExceededError,
    RetryExhaustedError,
    RetryTimeoutError,
    TutorGuardError,
)
from tutorguard.domain.rate_limiting.entities import RateLimitDecision

__all__ = [
    "build_rate_limit_response",
    "rate_limit_exceeded_error_handler",
    "retry_timeout_error_handler",
    "dependency_unavailable_error_handler",
    "operational_error_handler",
    "tutorguard_error_handler",
    "register_exception_handlers",
]

logger = get_logger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests. Please try again later."


def _client_host(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def build_rate_limit_response(
    decision: Optional[RateLimitDecision],
    now: float,
    message: str = RATE_LIMIT_MESSAGE,
) -> JSONResponse:
    """Builds the `429 Too Many Requests` response for a rejected decision.

    The body carries enough information (remaining, reset time, retry after)
    for a client to know when to try again.
    """
    content = {"detail": message, "code": "rate_limit_exceeded"}
    headers = {}
    if decision is not None:
        retry_after = decision.retry_after(now)
        content["retry_after"] = retry_after
        content["rate_limit"] = {
            "limit": decision.limit,
            "remaining": decision.remaining,
            "reset_at": datetime.fromtimestamp(decision.reset_at, tz=timezone.utc).isoformat(),
            "using_durable_store": decision.using_durable_store,
        }
        headers = decision.to_http_headers(now)
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=content,
        headers=headers,
    )


async def rate_limit_exceeded_error_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """Handles `RateLimitExceededError`, returning a `429`.

    This catches rejections raised by the per-route `rate_limit` dependency,
    as opposed to the middleware-level rejection.

    Args:
        request: The incoming `Request` object.
        exc: The `RateLimitExceededError` instance.

    Returns:
        A `JSONResponse` with a 429 status code and rate limit headers.
    """
    logger.warning(
        "domain_rate_limit_exceeded",
        client_ip=_client_host(request),
        path=request.url.path,
        error_message=str(exc),
    )
    limiter = getattr(request.app.state, "rate_limiter", None)
    now = limiter.now() if limiter is not None else datetime.now(timezone.utc).timestamp()
    return build_rate_limit_response(exc.decision, now, exc.message)


async def retry_timeout_error_handler(request: Request, exc: RetryTimeoutError) -> JSONResponse:
    """Handles `RetryTimeoutError`, returning a `504 Gateway Timeout`."""
    logger.error(
        "retry_timeout",
        path=request.url.path,
        timeout=exc.timeout,
        attempts=exc.outcome.attempts if exc.outcome else None,
    )
    return JSONResponse(
        status_code=status.HTTP_504_GATEWAY_TIMEOUT,
        content={"detail": "An upstream service did not respond in time.", "code": exc.code},
    )


async def dependency_unavailable_error_handler(request: Request, exc: TutorGuardError) -> JSONResponse:
    """Handles `RetryExhaustedError` and `CircuitOpenError`, returning a `503`.

    The underlying error is logged for diagnostics but not exposed to the
    client.
    """
    headers = {}
    if isinstance(exc, RetryExhaustedError):
        logger.error(
            "dependency_retries_exhausted",
            path=request.url.path,
            attempts=exc.attempts,
            last_error=repr(exc.last_error),
        )
    else:
        logger.warning("dependency_circuit_open", path=request.url.path, error_message=exc.message)
        if isinstance(exc, CircuitOpenError) and exc.retry_after:
            headers["Retry-After"] = str(max(1, int(exc.retry_after)))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "A required service is temporarily unavailable.", "code": exc.code},
        headers=headers,
    )


async def operational_error_handler(request: Request, exc: OperationalApplicationError) -> JSONResponse:
    """Handles `OperationalApplicationError`, returning its own status code."""
    logger.warning(
        "operational_error",
        path=request.url.path,
        status_code=exc.status_code,
        error_code=exc.code,
        error_message=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


async def tutorguard_error_handler(request: Request, exc: TutorGuardError) -> JSONResponse:
    """Handles the base `TutorGuardError`, returning a `500 Internal Server Error`.

    This serves as a fallback for any custom application errors that do not
    have a more specific handler.
    """
    logger.error(
        "An unhandled application error occurred",
        error_code=exc.code,
        error_message=exc.message,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected error occurred."},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Registers all custom exception handlers with the FastAPI application.

    Starlette resolves handlers along the exception's MRO, so the base
    `TutorGuardError` handler only applies when nothing more specific does.

    Args:
        app: The `FastAPI` application instance.
    """
    app.add_exception_handler(RateLimitExceededError, rate_limit_exceeded_error_handler)
    app.add_exception_handler(RetryTimeoutError, retry_timeout_error_handler)
    app.add_exception_handler(RetryExhaustedError, dependency_unavailable_error_handler)
    app.add_exception_handler(CircuitOpenError, dependency_unavailable_error_handler)
    app.add_exception_handler(OperationalApplicationError, operational_error_handler)
    app.add_exception_handler(TutorGuardError, tutorguard_error_handler)
