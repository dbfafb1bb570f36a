"""Counter store implementations for the rate limiter."""

from .memory_store import InMemoryCounterStore
from .redis_store import RedisCounterStore

__all__ = ["InMemoryCounterStore", "RedisCounterStore"]
