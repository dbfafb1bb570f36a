"""Rate Limiting Domain Module

Fixed-window rate limiting following the same Domain-Driven Design layout
as the rest of the package:

- Value Objects: Policies, overrides and counter keys
- Entities: Counter records and admission decisions
- Repositories: The counter store contract
- Domain Services: The rate limiter
"""

from .entities import CounterRecord, RateLimitDecision
from .repositories import (
    CounterStore,
    CounterStoreDataError,
    CounterStoreError,
    CounterStoreUnavailableError,
)
from .services import UNKNOWN_IDENTIFIER, RateLimiter
from .value_objects import RateLimitKey, RateLimitOverride, RateLimitPolicy

__all__ = [
    "CounterRecord",
    "CounterStore",
    "CounterStoreDataError",
    "CounterStoreError",
    "CounterStoreUnavailableError",
    "RateLimitDecision",
    "RateLimitKey",
    "RateLimitOverride",
    "RateLimitPolicy",
    "RateLimiter",
    "UNKNOWN_IDENTIFIER",
]
