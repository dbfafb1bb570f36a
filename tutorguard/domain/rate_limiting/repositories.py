"""
Rate Limiting Domain Repositories

Repository interface for the counter store backing the rate limiter.

Repositories:
- CounterStore: Atomic fixed-window counters

Design Principles:
- Dependency Inversion: The limiter depends on this abstraction, not on Redis
- Atomicity: ``increment`` is a single store operation, never a
  read-modify-write sequence
- Testability: The contract is small enough to mock or fake in tests
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from tutorguard.core.exceptions import TransientInfrastructureError, TutorGuardError

from .entities import CounterRecord


class CounterStore(ABC):
    """
    Repository interface for fixed-window counters.

    Implementations must make ``increment`` atomic: two concurrent callers
    for the same key never observe the same post-increment value.
    """

    #: True when counters are shared between processes and survive restarts.
    is_durable: bool = False

    @abstractmethod
    async def increment(
        self,
        key: str,
        window_seconds: float,
        now: float,
        cap: int,
    ) -> CounterRecord:
        """
        Count one request against ``key`` and return the updated record.

        In one atomic step: create the record if it is missing or its window
        has ended (``now >= window_start + window_seconds``), increment it,
        cap the stored count at ``cap`` and set a store-level expiry of
        ``window_seconds``.

        Args:
            key: Storage key, see ``RateLimitKey.storage_key``
            window_seconds: Length of the fixed window
            now: Current epoch time in seconds
            cap: Upper bound of the stored count

        Returns:
            The record holding the post-increment count, never above ``cap``

        Raises:
            CounterStoreUnavailableError: When the store cannot be reached
            CounterStoreError: When the operation fails for another reason
        """

    @abstractmethod
    async def get(self, key: str, now: float) -> Optional[CounterRecord]:
        """
        Return the live record for ``key`` without incrementing it.

        Returns:
            The record, or None if missing or its window has ended
        """

    @abstractmethod
    async def reset(self, key: str) -> bool:
        """
        Delete the counter for ``key``.

        Returns:
            True if a counter was removed
        """

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """
        Perform a health check on the store.

        Returns:
            Health status information including latency and errors
        """


class CounterStoreError(TutorGuardError):
    """Base exception for counter store operations"""

    def __init__(self, message: str, code: str = "counter_store_error"):
        super().__init__(message, code)


class CounterStoreUnavailableError(CounterStoreError, TransientInfrastructureError):
    """Raised when the counter store cannot be reached or times out"""

    def __init__(self, message: str, code: str = "counter_store_unavailable"):
        super().__init__(message, code)


class CounterStoreDataError(CounterStoreError):
    """Raised when the store returns data that cannot be interpreted"""

    def __init__(self, message: str, code: str = "counter_store_data_error"):
        super().__init__(message, code)
