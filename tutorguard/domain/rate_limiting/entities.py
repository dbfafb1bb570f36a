"""Rate Limiting Domain Entities

Entities:
- CounterRecord: One fixed-window counter, owned by the counter store
- RateLimitDecision: Admit/reject decision for a single request

Design Principles:
- Encapsulation: Window arithmetic lives on the record, header rendering on
  the decision
- Rich Behavior: Decisions know how to describe themselves to HTTP callers
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict


@dataclass
class CounterRecord:
    """Entity representing a fixed-window request counter.

    Lifecycle: created on the first request of a window, incremented on
    each later request, and replaced by a fresh record once
    ``now >= window_start + window_seconds``.

    Times are epoch seconds.
    """

    key: str
    count: int
    window_start: float
    window_seconds: float

    @property
    def reset_at(self) -> float:
        """Epoch time at which the window ends"""
        return self.window_start + self.window_seconds

    def is_expired(self, now: float) -> bool:
        return now >= self.reset_at

    def remaining_seconds(self, now: float) -> float:
        return max(0.0, self.reset_at - now)


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a rate limit check.

    Business Rules:
    - ``remaining`` is never negative
    - Rejected decisions always carry ``remaining == 0`` and ``reset_at``
    - ``using_durable_store`` is False whenever the process-local fallback
      counted the request
    """

    allowed: bool
    remaining: int
    reset_at: float
    using_durable_store: bool
    category: str = ""
    identifier: str = ""
    limit: int = 0
    count: int = 0
    bypassed: bool = False

    def __post_init__(self):
        if self.remaining < 0:
            raise ValueError("remaining cannot be negative")
        if not self.allowed and self.remaining != 0:
            raise ValueError("rejected decisions must have remaining == 0")

    @property
    def reset_at_ms(self) -> int:
        """Window reset time in epoch milliseconds"""
        return int(self.reset_at * 1000)

    def retry_after(self, now: float) -> int:
        """Whole seconds a rejected caller should wait, at least 1"""
        return max(1, math.ceil(self.reset_at - now))

    def to_http_headers(self, now: float) -> Dict[str, str]:
        """Standard rate limiting response headers"""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": datetime.fromtimestamp(self.reset_at, tz=timezone.utc).isoformat(),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after(now))
        return headers

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "reset_at": self.reset_at,
            "reset_at_ms": self.reset_at_ms,
            "using_durable_store": self.using_durable_store,
            "category": self.category,
            "identifier": self.identifier,
            "limit": self.limit,
            "count": self.count,
            "bypassed": self.bypassed,
        }
