"""Application initialization and setup.

This module handles the initialization tasks required before the application
starts: environment variable loading, logging configuration, and building the
rate limiter from settings.
"""

from typing import Optional

from dotenv import load_dotenv
from redis.asyncio import Redis

from tutorguard.core.config import Settings
from tutorguard.core.logging import configure_logging, logger
from tutorguard.domain.rate_limiting import RateLimiter
from tutorguard.infrastructure.rate_limiting import InMemoryCounterStore, RedisCounterStore


def initialize_application(settings: Settings) -> None:
    """Initialize the application with all necessary setup tasks.

    This function performs the following initialization tasks:
    1. Load environment variables
    2. Configure logging
    """
    load_dotenv(override=False)

    configure_logging(log_level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)


def build_rate_limiter(settings: Settings, redis_client: Optional[Redis] = None) -> RateLimiter:
    """Create the rate limiter described by ``settings``.

    With a Redis client the limiter counts in Redis and falls back to local
    counters while Redis is unreachable; without one it counts locally only.
    """
    store = (
        RedisCounterStore(redis_client, key_prefix=settings.RATE_LIMIT_KEY_PREFIX)
        if redis_client is not None
        else None
    )
    limiter = RateLimiter(
        settings.build_policies(),
        store,
        fallback_store=InMemoryCounterStore(),
        enabled=settings.RATE_LIMIT_ENABLED,
    )
    logger.info(
        "rate_limiter_configured",
        enabled=settings.RATE_LIMIT_ENABLED,
        store="redis" if store is not None else "memory",
        categories=sorted(limiter.policies),
    )
    return limiter
