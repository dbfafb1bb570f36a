"""Application lifecycle management.

This module handles application startup and shutdown events, ensuring proper
initialization and cleanup of application resources.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from redis.asyncio import Redis

from tutorguard.core.config import Settings
from tutorguard.core.logging import logger


def create_lifespan_manager(settings: Settings, redis_client: Optional[Redis] = None):
    """Create the application lifespan manager.

    Args:
        settings: Application settings
        redis_client: Redis client backing the rate limiter, closed on shutdown

    Returns:
        AsyncContextManager: The lifespan manager for the FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager that handles startup and shutdown events.

        A Redis outage at startup is logged but does not stop the application:
        the rate limiter counts locally until Redis comes back.
        """
        # Startup
        metrics = await app.state.rate_limiter.metrics()
        if metrics["store"].get("status") != "healthy":
            logger.warning("rate_limit_store_unhealthy_on_startup", store=metrics["store"])
        logger.info(
            "application_startup",
            env=settings.APP_ENV,
            version=settings.VERSION,
            rate_limit_environment=metrics["environment"],
        )

        yield

        # Shutdown
        if redis_client is not None:
            await redis_client.aclose()
            logger.debug("redis_connection_closed")
        logger.info("application_shutdown", env=settings.APP_ENV)

    return lifespan
