"""Per-route rate limit dependency.

Use this for routes that need a category, or a custom quota, different from
what the global middleware applies::

    @router.post("/contact", dependencies=[Depends(rate_limit("contact"))])
    async def submit_contact_form(...): ...

The limiter is taken from ``app.state.rate_limiter``; a rejected check
raises ``RateLimitExceededError``, rendered as a 429 by the registered
exception handler.
"""

from typing import Awaitable, Callable, Optional

from fastapi import Request
from structlog import get_logger

from tutorguard.core.exceptions import RateLimitExceededError
from tutorguard.core.middleware import get_client_ip
from tutorguard.domain.rate_limiting import RateLimitDecision, RateLimiter, RateLimitOverride

logger = get_logger(__name__)


def get_rate_limiter(request: Request) -> RateLimiter:
    """FastAPI dependency returning the application's rate limiter."""
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        raise RuntimeError("No rate limiter configured on app.state.rate_limiter")
    return limiter


def rate_limit(
    category: str,
    max_requests: Optional[int] = None,
    window_seconds: Optional[float] = None,
) -> Callable[[Request], Awaitable[RateLimitDecision]]:
    """Return a FastAPI *dependency* enforcing ``category`` for the caller's address.

    Args:
        category: Configured rate limit category.
        max_requests: Custom quota; requires ``window_seconds`` as well.
        window_seconds: Custom window length in seconds.
    """
    if (max_requests is None) != (window_seconds is None):
        raise ValueError("max_requests and window_seconds must be given together")
    override = (
        RateLimitOverride(max_requests, window_seconds) if max_requests is not None else None
    )

    async def _dependency(request: Request) -> RateLimitDecision:
        limiter = get_rate_limiter(request)
        identifier = get_client_ip(request)
        decision = await limiter.check(category, identifier, override=override)
        if not decision.allowed:
            logger.warning(
                "rate_limit_exceeded", ip=identifier, category=category, path=request.url.path
            )
            raise RateLimitExceededError(decision)
        return decision

    return _dependency
