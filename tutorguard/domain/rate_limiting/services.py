"""
Rate Limiting Domain Services

Services:
- RateLimiter: Fixed-window admission decisions per (category, identifier)

The limiter counts every request with one atomic ``increment`` against the
configured counter store. When that store is unreachable the same increment
runs against a process-local fallback store and the decision is flagged as
non-durable: a limiter outage under-enforces limits instead of blocking
traffic.

Design Principles:
- Dependency Injection: Stores, clock and policies are passed in
- Fail Open: Store errors never escape ``check``
- Testable: Time is injectable on every operation
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import structlog

from tutorguard.core.exceptions import UnknownRateLimitCategoryError

from .entities import CounterRecord, RateLimitDecision
from .repositories import CounterStore, CounterStoreError
from .value_objects import RateLimitKey, RateLimitOverride, RateLimitPolicy

logger = structlog.get_logger(__name__)

# Shared by every caller that cannot tell who the client is.
UNKNOWN_IDENTIFIER = "unknown"


class RateLimiter:
    """
    Main domain service for rate limiting decisions.

    Args:
        policies: One policy per category.
        store: Shared counter store. When omitted the limiter counts in the
            fallback store only.
        fallback_store: Process-local store used while ``store`` fails.
            Defaults to a fresh in-memory store.
        clock: Wall clock returning epoch seconds.
        enabled: A disabled limiter admits everything without counting.
    """

    def __init__(
        self,
        policies: Iterable[RateLimitPolicy],
        store: Optional[CounterStore] = None,
        *,
        fallback_store: Optional[CounterStore] = None,
        clock: Callable[[], float] = time.time,
        enabled: bool = True,
    ):
        self._policies: Dict[str, RateLimitPolicy] = {}
        for policy in policies:
            if policy.category in self._policies:
                raise ValueError(f"Duplicate rate limit policy for category '{policy.category}'")
            self._policies[policy.category] = policy

        if fallback_store is None:
            from tutorguard.infrastructure.rate_limiting.memory_store import InMemoryCounterStore

            fallback_store = InMemoryCounterStore()

        self._fallback_store = fallback_store
        self._store = store or fallback_store
        self._clock = clock
        self.enabled = enabled

    @property
    def policies(self) -> Dict[str, RateLimitPolicy]:
        return dict(self._policies)

    @property
    def store(self) -> CounterStore:
        return self._store

    @property
    def fallback_store(self) -> CounterStore:
        return self._fallback_store

    @property
    def has_shared_store(self) -> bool:
        return self._store is not self._fallback_store

    def now(self) -> float:
        """Current time according to the limiter's clock"""
        return self._clock()

    def get_policy(self, category: str) -> RateLimitPolicy:
        """
        Raises:
            UnknownRateLimitCategoryError: If no policy is configured for ``category``
        """
        try:
            return self._policies[category]
        except KeyError:
            raise UnknownRateLimitCategoryError(category) from None

    async def check(
        self,
        category: str,
        identifier: str,
        *,
        override: Optional[RateLimitOverride] = None,
        now: Optional[float] = None,
    ) -> RateLimitDecision:
        """
        Count one request and decide whether it is admitted.

        Args:
            category: Selects the policy, e.g. ``"contact"``
            identifier: Client identity, e.g. the source address. An empty
                identifier is counted as ``"unknown"``
            override: Custom quota for this call, counted separately
            now: Epoch seconds, defaults to the limiter's clock

        Returns:
            RateLimitDecision: Never raises because the store is unavailable
        """
        identifier = identifier or UNKNOWN_IDENTIFIER
        policy = self.get_policy(category).with_override(override)
        now = self._clock() if now is None else now

        if not self.enabled:
            return self._bypass(policy, identifier, now)

        key = RateLimitKey(category, identifier, override)
        record, durable = await self._increment(key, policy, now)

        if record.count <= policy.max_requests:
            allowed, remaining = True, policy.max_requests - record.count
        else:
            allowed, remaining = False, 0

        decision = RateLimitDecision(
            allowed=allowed,
            remaining=remaining,
            reset_at=record.reset_at,
            using_durable_store=durable,
            category=category,
            identifier=identifier,
            limit=policy.max_requests,
            count=record.count,
        )

        if not allowed:
            logger.warning(
                "rate_limit_exceeded",
                category=category,
                identifier=identifier,
                limit=policy.max_requests,
                window_seconds=policy.window_seconds,
                reset_at=record.reset_at,
                durable=durable,
            )
        return decision

    async def peek(
        self,
        category: str,
        identifier: str,
        *,
        override: Optional[RateLimitOverride] = None,
        now: Optional[float] = None,
    ) -> RateLimitDecision:
        """
        Report the current status of a counter without counting a request.

        ``allowed`` tells whether the next request would be admitted.
        """
        identifier = identifier or UNKNOWN_IDENTIFIER
        policy = self.get_policy(category).with_override(override)
        now = self._clock() if now is None else now

        if not self.enabled:
            return self._bypass(policy, identifier, now)

        key = RateLimitKey(category, identifier, override).storage_key
        durable = self.has_shared_store and self._store.is_durable
        try:
            record = await self._store.get(key, now)
        except CounterStoreError as exc:
            logger.warning("rate_limit_store_unavailable", operation="peek", key=key, error=str(exc))
            record = await self._fallback_store.get(key, now)
            durable = False

        count = record.count if record else 0
        return RateLimitDecision(
            allowed=count < policy.max_requests,
            remaining=max(0, policy.max_requests - count),
            reset_at=record.reset_at if record else now + policy.window_seconds,
            using_durable_store=durable,
            category=category,
            identifier=identifier,
            limit=policy.max_requests,
            count=count,
        )

    async def reset(
        self,
        category: str,
        identifier: str,
        *,
        override: Optional[RateLimitOverride] = None,
    ) -> bool:
        """
        Clear the counter for ``(category, identifier)`` in every store.

        Returns:
            True if a counter was removed
        """
        identifier = identifier or UNKNOWN_IDENTIFIER
        self.get_policy(category)
        key = RateLimitKey(category, identifier, override).storage_key

        removed = False
        if self.has_shared_store:
            try:
                removed = await self._store.reset(key)
            except CounterStoreError as exc:
                logger.warning("rate_limit_store_unavailable", operation="reset", key=key, error=str(exc))

        removed = await self._fallback_store.reset(key) or removed
        logger.info("rate_limit_reset", key=key, removed=removed)
        return removed

    def cleanup(self, now: Optional[float] = None) -> int:
        """
        Drop expired records from the process-local fallback store.

        Returns:
            Number of records removed
        """
        cleanup_expired = getattr(self._fallback_store, "cleanup_expired", None)
        if cleanup_expired is None:
            return 0
        removed = cleanup_expired(self._clock() if now is None else now)
        if removed:
            logger.debug("rate_limit_cleanup", removed=removed)
        return removed

    async def metrics(self) -> Dict[str, Any]:
        """Store health, fallback usage and configured policies"""
        store_health = await self._store.health_check()
        fallback_size = getattr(self._fallback_store, "size", 0)

        if not (self.has_shared_store and self._store.is_durable):
            environment = "memory"
        elif store_health.get("status") == "healthy" and not fallback_size:
            environment = "redis"
        else:
            environment = "hybrid"

        return {
            "enabled": self.enabled,
            "environment": environment,
            "store": store_health,
            "fallback": {"size": fallback_size},
            "policies": {
                category: {
                    "max_requests": policy.max_requests,
                    "window_seconds": policy.window_seconds,
                    "description": policy.description,
                }
                for category, policy in self._policies.items()
            },
        }

    async def _increment(
        self,
        key: RateLimitKey,
        policy: RateLimitPolicy,
        now: float,
    ) -> Tuple[CounterRecord, bool]:
        storage_key = key.storage_key
        # The stored count stops one past the quota under sustained overload.
        cap = policy.max_requests + 1

        if self.has_shared_store:
            try:
                record = await self._store.increment(storage_key, policy.window_seconds, now, cap)
                return record, self._store.is_durable
            except CounterStoreError as exc:
                logger.warning(
                    "rate_limit_store_unavailable",
                    operation="increment",
                    key=storage_key,
                    error=str(exc),
                    error_code=exc.code,
                )

        record = await self._fallback_store.increment(storage_key, policy.window_seconds, now, cap)
        return record, False

    @staticmethod
    def _bypass(policy: RateLimitPolicy, identifier: str, now: float) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=True,
            remaining=policy.max_requests,
            reset_at=now + policy.window_seconds,
            using_durable_store=False,
            category=policy.category,
            identifier=identifier,
            limit=policy.max_requests,
            bypassed=True,
        )
