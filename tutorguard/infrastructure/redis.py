"""
Redis Connection Module

Creates the asynchronous Redis client backing the shared rate limit counter
store.

**Security Note**: Ensure that the Redis connection URL (REDIS_URL) uses
``rediss://`` when connecting over an untrusted network, and never log the
URL itself: it may embed the password.

Functions:
    create_redis_client: Builds a client from settings, or None when Redis
        is not configured.
"""

from typing import Optional

from redis.asyncio import Redis

from tutorguard.core.config import Settings
from tutorguard.core.logging import logger


def create_redis_client(settings: Settings) -> Optional[Redis]:
    """
    Build an async Redis client from settings.

    Timeouts are kept short so a slow Redis degrades to local counters
    quickly instead of stalling every request.

    Returns:
        Redis | None: The client, or None if no Redis is configured.
    """
    if not settings.redis_configured:
        logger.info("redis_not_configured", fallback="memory")
        return None

    client = Redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
    )
    logger.debug("redis_client_created", host=settings.REDIS_HOST or None)
    return client

