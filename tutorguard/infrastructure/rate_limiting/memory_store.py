"""
In-memory counter store.

Process-local implementation of :class:`CounterStore`, used on its own for
single-instance deployments and as the rate limiter's fallback while the
shared store is unreachable. Counters do not survive a restart and are not
shared between processes.
"""

import threading
from dataclasses import replace
from typing import Any, Dict, Optional

from tutorguard.domain.rate_limiting.entities import CounterRecord
from tutorguard.domain.rate_limiting.repositories import CounterStore


class InMemoryCounterStore(CounterStore):
    """
    Dictionary of fixed-window counters guarded by a lock.

    No method awaits while holding the lock, so every operation is atomic
    with respect to both other tasks and other threads.

    Args:
        sweep_interval: Seconds between sweeps of expired records, run by
            ``increment`` so the store does not grow with every client seen.
    """

    is_durable = False

    def __init__(self, sweep_interval: float = 60.0):
        self._records: Dict[str, CounterRecord] = {}
        self._lock = threading.Lock()
        self.sweep_interval = sweep_interval
        self._last_sweep: Optional[float] = None

    def _sweep(self, now: float) -> int:
        expired = [key for key, record in self._records.items() if record.is_expired(now)]
        for key in expired:
            del self._records[key]
        self._last_sweep = now
        return len(expired)

    async def increment(self, key: str, window_seconds: float, now: float, cap: int) -> CounterRecord:
        with self._lock:
            # Expired records of clients that never return are dropped here.
            if self._last_sweep is None:
                self._last_sweep = now
            elif now - self._last_sweep >= self.sweep_interval:
                self._sweep(now)

            record = self._records.get(key)
            if record is None or record.is_expired(now):
                record = CounterRecord(key=key, count=0, window_start=now, window_seconds=window_seconds)
                self._records[key] = record
            record.count = min(record.count + 1, cap)
            return replace(record)

    async def get(self, key: str, now: float) -> Optional[CounterRecord]:
        with self._lock:
            record = self._records.get(key)
            if record is None or record.is_expired(now):
                return None
            return replace(record)

    async def reset(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "backend": "memory",
            "durable": False,
            "size": self.size,
        }

    def cleanup_expired(self, now: float) -> int:
        """Remove every record whose window has ended; return how many"""
        with self._lock:
            return self._sweep(now)

    @property
    def size(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
