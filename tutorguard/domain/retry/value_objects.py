"""
Retry Value Objects

Immutable value objects describing how an operation is retried.

Value Objects:
- RetryPolicy: Attempt cap, backoff curve, jitter, timeout and hooks
- CancellationToken: Cooperative cancellation signal shared with a retry loop

Design Principles:
- Immutability: A policy never changes once built; derive variants with
  ``with_overrides``
- Validation: Invalid combinations fail at construction time
- Rich Behavior: The policy knows how to compute its own delays
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

RetryPredicate = Callable[[BaseException], bool]
RetryHook = Callable[[BaseException, int, float], Union[None, Awaitable[None]]]

# Jitter adds at most this fraction of the computed delay.
JITTER_RATIO = 0.25


class CancellationToken:
    """
    Cooperative cancellation signal.

    A token can be shared by several retry loops; once cancelled it stays
    cancelled. Loops check it before every attempt and race it against every
    backoff sleep.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Immutable retry configuration.

    Delays are expressed in seconds. The delay before retry ``n`` (``n`` being
    the number of the attempt that just failed) is
    ``min(max_delay, base_delay * backoff_factor ** (n - 1))``; with jitter
    enabled a uniformly random extra of up to 25% of that value is added.
    Saturation happens before jitter, so a jittered delay may exceed
    ``max_delay`` by up to a quarter.

    Business Rules:
    - At least one attempt
    - Delays are non-negative and ``max_delay >= base_delay``
    - ``backoff_factor >= 1`` (1 gives a constant delay)
    - The overall timeout, when set, is positive
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: bool = True
    overall_timeout: Optional[float] = None
    retryable: Optional[RetryPredicate] = field(default=None, compare=False)
    on_retry: Optional[RetryHook] = field(default=None, compare=False)
    cancellation_token: Optional[CancellationToken] = field(default=None, compare=False)

    def __post_init__(self):
        """Validate policy configuration at construction time"""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        if self.base_delay < 0:
            raise ValueError("base_delay cannot be negative")

        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be greater than or equal to base_delay")

        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be at least 1")

        if self.overall_timeout is not None and self.overall_timeout <= 0:
            raise ValueError("overall_timeout must be positive")

    @property
    def is_linear(self) -> bool:
        """True when every retry waits the same amount of time"""
        return self.backoff_factor == 1 or self.base_delay == self.max_delay

    @property
    def max_retries(self) -> int:
        """Number of retries on top of the first attempt"""
        return self.max_attempts - 1

    def base_delay_for(self, attempt: int) -> float:
        """
        Un-jittered delay after the given failed attempt (1-based).
        """
        if attempt < 1:
            raise ValueError("attempt numbers start at 1")
        try:
            delay = self.base_delay * self.backoff_factor ** (attempt - 1)
        except OverflowError:
            delay = self.max_delay
        return min(self.max_delay, delay)

    def delay_for(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        """
        Delay to wait after the given failed attempt, jitter included.

        ``rand`` must return a float in ``[0, 1)``; it is injectable so tests
        can pin the jitter.
        """
        delay = self.base_delay_for(attempt)
        if self.jitter:
            delay += delay * JITTER_RATIO * rand()
        return delay

    def max_total_delay(self) -> float:
        """Upper bound of the summed backoff delays for a fully failing run"""
        bound = 1 + JITTER_RATIO if self.jitter else 1
        return sum(self.base_delay_for(n) * bound for n in range(1, self.max_attempts))

    def with_overrides(self, **changes: Any) -> RetryPolicy:
        """Create a new policy with the specified fields replaced"""
        return replace(self, **changes)

    @classmethod
    def linear(cls, max_attempts: int = 3, delay: float = 1.0, **kwargs: Any) -> RetryPolicy:
        """Constant-delay policy: every retry waits exactly ``delay`` seconds"""
        return cls(
            max_attempts=max_attempts,
            base_delay=delay,
            max_delay=delay,
            backoff_factor=1,
            jitter=False,
            **kwargs,
        )

    @classmethod
    def preset(cls, name: str, **kwargs: Any) -> RetryPolicy:
        """
        Look up a named preset (quick, standard, aggressive, patient, none).

        Keyword arguments such as ``on_retry`` or ``cancellation_token`` are
        applied on top of the preset.
        """
        try:
            policy = RETRY_PRESETS[name.lower()]
        except KeyError:
            raise ValueError(
                f"Unknown retry preset: {name}. Must be one of {', '.join(PRESET_NAMES)}"
            ) from None
        return policy.with_overrides(**kwargs) if kwargs else policy


RETRY_PRESETS: Mapping[str, RetryPolicy] = MappingProxyType({
    # Quick retry for transient failures
    "quick": RetryPolicy(
        max_attempts=3, base_delay=0.1, max_delay=0.5, backoff_factor=2, jitter=True
    ),
    # Standard retry for API calls
    "standard": RetryPolicy(
        max_attempts=3, base_delay=1.0, max_delay=10.0, backoff_factor=2, jitter=True
    ),
    # Aggressive retry for critical operations, two minutes overall
    "aggressive": RetryPolicy(
        max_attempts=5, base_delay=0.5, max_delay=30.0, backoff_factor=3, jitter=True,
        overall_timeout=120.0,
    ),
    # Patient retry for slow services, ten minutes overall
    "patient": RetryPolicy(
        max_attempts=10, base_delay=5.0, max_delay=60.0, backoff_factor=1.5, jitter=True,
        overall_timeout=600.0,
    ),
    "none": RetryPolicy(
        max_attempts=1, base_delay=0.0, max_delay=0.0, backoff_factor=1, jitter=False
    ),
})

PRESET_NAMES = tuple(RETRY_PRESETS)
