from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from tutorguard.core.logging import logger
from tutorguard.core.rate_limit import get_rate_limiter
from tutorguard.domain.rate_limiting import RateLimiter

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    env: str
    version: str
    rate_limiter: Dict[str, Any]
    timestamp: datetime


@router.get("", response_model=HealthResponse)
async def health_check(request: Request, rate_limiter: RateLimiter = Depends(get_rate_limiter)):
    """
    Health check endpoint reporting the rate limiter's store health, fallback
    usage and configured policies.

    A limiter running on its local fallback is reported as ``degraded``: the
    service still works, but limits are only enforced per process.
    """
    settings = request.app.state.settings
    metrics = await rate_limiter.metrics()
    overall_status = "ok" if metrics["store"].get("status") == "healthy" else "degraded"
    if overall_status != "ok":
        logger.warning("health_degraded", store=metrics["store"])

    return HealthResponse(
        status=overall_status,
        env=settings.APP_ENV,
        version=settings.VERSION,
        rate_limiter=metrics,
        timestamp=datetime.now(timezone.utc),
    )
