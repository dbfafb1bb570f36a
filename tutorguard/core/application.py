"""Application factory for creating and configuring the FastAPI application.

This module provides a factory function to create a properly configured FastAPI application
with all necessary middleware, exception handlers, and routers registered.
"""

from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from tutorguard.adapters.api.v1 import api_router
from tutorguard.core.config import Settings, get_settings
from tutorguard.core.handlers import register_exception_handlers
from tutorguard.core.initialization import build_rate_limiter
from tutorguard.core.lifecycle import create_lifespan_manager
from tutorguard.core.middleware import configure_middleware
from tutorguard.domain.rate_limiting import RateLimiter
from tutorguard.infrastructure.redis import create_redis_client


def create_application(
    settings: Optional[Settings] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings, defaults to ``get_settings()``
        rate_limiter: Pre-built limiter; built from settings when omitted

    Returns:
        FastAPI: The configured FastAPI application instance
    """
    settings = settings or get_settings()

    redis_client = None
    if rate_limiter is None:
        redis_client = create_redis_client(settings)
        rate_limiter = build_rate_limiter(settings, redis_client)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=create_lifespan_manager(settings, redis_client),
        default_response_class=JSONResponse,
    )
    app.state.settings = settings
    app.state.rate_limiter = rate_limiter

    # Configure middleware
    configure_middleware(app, settings)

    # Register exception handlers
    register_exception_handlers(app)

    # Include routers
    app.include_router(api_router, prefix="/api")

    return app
