"""Circuit breaker for calls to unreliable dependencies.

This module provides an asyncio-compatible circuit breaker that keeps a
failing dependency from being hammered, typically combined with the retry
executor. It follows the classic pattern with closed, open and half-open
states, counting failures in a sliding time window.
"""

import asyncio
import time
from collections import deque
from enum import Enum
from functools import wraps
from typing import Any, Callable, Coroutine, Deque, Dict, Optional, TypeVar

from tutorguard.core.exceptions import CircuitOpenError
from tutorguard.core.logging import logger

# Type variable for the decorated function's return value
T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitBreaker:
    """Circuit breaker for handling dependency failures.

    State Transitions:
    - CLOSED: All calls are allowed. ``failure_threshold`` failures within
      ``window_seconds`` open the circuit.
    - OPEN: All calls are rejected with ``CircuitOpenError`` for
      ``reset_timeout`` seconds, then the circuit goes HALF-OPEN.
    - HALF-OPEN: Trial calls are allowed. ``success_threshold`` consecutive
      successes close the circuit; any failure reopens it.

    Args:
        failure_threshold: Failures within the window that open the circuit.
        reset_timeout: Seconds spent OPEN before trial calls are allowed.
        success_threshold: Consecutive HALF-OPEN successes needed to close.
        window_seconds: Length of the sliding failure window.
        is_failure: Decides whether an exception counts as a failure.
            Exceptions it rejects still propagate, they just do not trip
            the breaker.
        clock: Monotonic clock, injectable for tests.
        name: The name of the circuit breaker, used for logging.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        success_threshold: int = 1,
        window_seconds: float = 60.0,
        is_failure: Optional[Callable[[BaseException], bool]] = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "default",
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if success_threshold < 1:
            raise ValueError("success_threshold must be at least 1")
        if reset_timeout <= 0 or window_seconds <= 0:
            raise ValueError("reset_timeout and window_seconds must be positive")

        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.success_threshold = success_threshold
        self.window_seconds = window_seconds
        self.is_failure = is_failure
        self.name = name
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failures: Deque[float] = deque()
        self._half_open_successes = 0
        self._opened_at: Optional[float] = None
        self._total_calls = 0
        self._total_failures = 0
        self._total_rejections = 0
        self._lock = asyncio.Lock()

    async def __aenter__(self):
        """Enter the context manager, checking if the circuit is open."""
        await self._before_call()
        return self

    async def __aexit__(self, exc_type, exc_val, traceback):
        """Exit the context manager, updating state based on outcome."""
        if exc_val is None:
            await self._record_success()
        elif isinstance(exc_val, Exception):
            await self._record_exception(exc_val)
        return False

    @property
    def state(self) -> CircuitState:
        """Current state, moving OPEN to HALF-OPEN once the timeout passed."""
        if self._state is CircuitState.OPEN and self._retry_after() <= 0:
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    @property
    def is_closed(self) -> bool:
        return self.state is CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state is CircuitState.OPEN

    @property
    def stats(self) -> Dict[str, Any]:
        """Snapshot of the breaker for health reporting."""
        self._prune(self._clock())
        return {
            "name": self.name,
            "state": self.state.value,
            "recent_failures": len(self._failures),
            "total_calls": self._total_calls,
            "total_failures": self._total_failures,
            "total_rejections": self._total_rejections,
            "retry_after": round(self._retry_after(), 3) if self._state is CircuitState.OPEN else None,
        }

    async def execute(self, func: Callable[..., Coroutine[Any, Any, T]], *args: Any, **kwargs: Any) -> T:
        """Execute an async function with circuit breaker protection.

        Raises:
            CircuitOpenError: If the circuit is open.
            Exception: Propagates exceptions from the executed function.
        """
        await self._before_call()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            await self._record_exception(e)
            raise
        await self._record_success()
        return result

    async def reset(self) -> None:
        """Force the circuit closed and forget recorded failures."""
        async with self._lock:
            self._failures.clear()
            self._half_open_successes = 0
            self._opened_at = None
            self._transition(CircuitState.CLOSED)

    async def _before_call(self) -> None:
        async with self._lock:
            self._total_calls += 1
            if self.state is CircuitState.OPEN:
                self._total_rejections += 1
                raise CircuitOpenError(self.name, retry_after=self._retry_after())

    async def _record_success(self) -> None:
        async with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self.success_threshold:
                    self._failures.clear()
                    self._opened_at = None
                    self._transition(CircuitState.CLOSED)

    async def _record_exception(self, exc: Exception) -> None:
        if self.is_failure is not None and not self.is_failure(exc):
            return
        async with self._lock:
            now = self._clock()
            self._total_failures += 1
            logger.warning("circuit_breaker_failure", breaker=self.name, error=str(exc))

            if self._state is CircuitState.HALF_OPEN:
                self._open(now)
                return

            self._failures.append(now)
            self._prune(now)
            if self._state is CircuitState.CLOSED and len(self._failures) >= self.failure_threshold:
                self._open(now)

    def _open(self, now: float) -> None:
        self._opened_at = now
        self._half_open_successes = 0
        self._transition(CircuitState.OPEN)

    def _prune(self, now: float) -> None:
        while self._failures and now - self._failures[0] >= self.window_seconds:
            self._failures.popleft()

    def _retry_after(self) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self._opened_at + self.reset_timeout - self._clock())

    def _transition(self, state: CircuitState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        if state is CircuitState.HALF_OPEN:
            self._half_open_successes = 0
        log = logger.warning if state is CircuitState.OPEN else logger.info
        log(
            "circuit_breaker_state_changed",
            breaker=self.name,
            previous=previous.value,
            state=state.value,
        )


def circuit_breaker(
    failure_threshold: int = 5,
    reset_timeout: float = 60.0,
    success_threshold: int = 1,
    window_seconds: float = 60.0,
    name: Optional[str] = None,
) -> Callable[[Callable[..., Coroutine[Any, Any, T]]], Callable[..., Coroutine[Any, Any, T]]]:
    """Decorator to apply the circuit breaker pattern to an async function.

    The breaker is shared by every call of the decorated function and is
    reachable as ``wrapper.breaker``.
    """

    def decorator(
        func: Callable[..., Coroutine[Any, Any, T]]
    ) -> Callable[..., Coroutine[Any, Any, T]]:
        breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            reset_timeout=reset_timeout,
            success_threshold=success_threshold,
            window_seconds=window_seconds,
            name=name or func.__name__,
        )

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await breaker.execute(func, *args, **kwargs)

        wrapper.breaker = breaker
        return wrapper

    return decorator
