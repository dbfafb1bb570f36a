"""
Redis counter store.

Shared, durable implementation of :class:`CounterStore`. Each counter is a
hash ``{count, start}`` updated by a single Lua script, so a rate limit
check costs exactly one round trip and concurrent callers can never read
the same pre-increment value.

**Security Note**: Keys embed client identifiers (usually IP addresses).
They are namespaced with a configurable prefix and expire with their window,
so Redis never accumulates stale client data.
"""

import time
from typing import Any, Dict, Optional

import structlog
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from tutorguard.domain.rate_limiting.entities import CounterRecord
from tutorguard.domain.rate_limiting.repositories import (
    CounterStore,
    CounterStoreDataError,
    CounterStoreError,
    CounterStoreUnavailableError,
)

logger = structlog.get_logger(__name__)

# KEYS[1] counter key; ARGV now_ms, window_ms, cap. Returns {count, start_ms}.
FIXED_WINDOW_INCREMENT = """
local key = KEYS[1]
local now_ms = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local cap = tonumber(ARGV[3])

local start = tonumber(redis.call('HGET', key, 'start'))
if (not start) or now_ms >= start + window_ms then
    redis.call('DEL', key)
    start = now_ms
    redis.call('HSET', key, 'start', start)
    redis.call('PEXPIRE', key, window_ms)
end

local count = redis.call('HINCRBY', key, 'count', 1)
if count > cap then
    count = cap
    redis.call('HSET', key, 'count', cap)
end
return {count, start}
"""


def _to_ms(seconds: float) -> int:
    return int(round(seconds * 1000))


class RedisCounterStore(CounterStore):
    """
    Counter store backed by Redis.

    Args:
        redis_client: Async Redis client.
        key_prefix: Namespace prepended to every counter key.
    """

    is_durable = True

    def __init__(self, redis_client: Redis, key_prefix: str = "ratelimit"):
        self.redis = redis_client
        self.key_prefix = key_prefix
        self._increment_script = redis_client.register_script(FIXED_WINDOW_INCREMENT)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    async def increment(self, key: str, window_seconds: float, now: float, cap: int) -> CounterRecord:
        window_ms = _to_ms(window_seconds)
        try:
            result = await self._increment_script(
                keys=[self._key(key)],
                args=[_to_ms(now), window_ms, cap],
            )
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise CounterStoreUnavailableError(f"Redis unavailable: {exc}") from exc
        except RedisError as exc:
            raise CounterStoreError(f"Redis increment failed: {exc}") from exc

        try:
            count, start_ms = (int(value) for value in result)
        except (TypeError, ValueError) as exc:
            raise CounterStoreDataError(f"Unexpected increment result for {key}: {result!r}") from exc

        return CounterRecord(
            key=key,
            count=count,
            window_start=start_ms / 1000,
            window_seconds=window_seconds,
        )

    async def get(self, key: str, now: float) -> Optional[CounterRecord]:
        try:
            count, start_ms = await self.redis.hmget(self._key(key), ["count", "start"])
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise CounterStoreUnavailableError(f"Redis unavailable: {exc}") from exc
        except RedisError as exc:
            raise CounterStoreError(f"Redis read failed: {exc}") from exc

        if count is None or start_ms is None:
            return None

        ttl_ms = await self._pttl(key)
        try:
            window_start = int(start_ms) / 1000
            record = CounterRecord(
                key=key,
                count=int(count),
                window_start=window_start,
                # The window length is not stored; derive it from the expiry.
                window_seconds=max(0.0, now - window_start) + max(ttl_ms, 0) / 1000,
            )
        except (TypeError, ValueError) as exc:
            raise CounterStoreDataError(f"Unexpected counter data for {key}") from exc

        return None if record.is_expired(now) else record

    async def _pttl(self, key: str) -> int:
        try:
            return int(await self.redis.pttl(self._key(key)))
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise CounterStoreUnavailableError(f"Redis unavailable: {exc}") from exc
        except RedisError as exc:
            raise CounterStoreError(f"Redis read failed: {exc}") from exc

    async def reset(self, key: str) -> bool:
        try:
            return bool(await self.redis.delete(self._key(key)))
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise CounterStoreUnavailableError(f"Redis unavailable: {exc}") from exc
        except RedisError as exc:
            raise CounterStoreError(f"Redis delete failed: {exc}") from exc

    async def health_check(self) -> Dict[str, Any]:
        start_time = time.perf_counter()
        try:
            await self.redis.ping()
        except RedisError as exc:
            logger.warning("redis_health_check_failed", error=str(exc))
            return {
                "status": "unhealthy",
                "backend": "redis",
                "durable": True,
                "error": str(exc),
            }
        return {
            "status": "healthy",
            "backend": "redis",
            "durable": True,
            "latency_ms": round((time.perf_counter() - start_time) * 1000, 3),
        }
