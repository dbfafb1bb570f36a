"""
Rate Limiting Value Objects

Immutable value objects representing core concepts in the rate limiting domain.

Value Objects:
- RateLimitPolicy: Quota of one category (requests per fixed window)
- RateLimitOverride: Per-call custom quota replacing the category default
- RateLimitKey: Identifies one counter in the counter store

Design Principles:
- Immutability: All value objects are immutable after creation
- Validation: Business rules enforced at construction time
- Equality: Value-based equality for proper hashing and comparison
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

# Characters reserved by the storage key format.
RESERVED_KEY_CHARACTERS = (":", "@")

PERIOD_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
}

_RATE_STRING = re.compile(
    r"^\s*(?P<count>\d+)\s*/\s*(?P<multiplier>\d+)?\s*(?P<period>second|minute|hour|day)s?\s*$"
)


def _validate_quota(max_requests: int, window_seconds: float) -> None:
    if max_requests <= 0:
        raise ValueError("max_requests must be positive")

    if window_seconds <= 0:
        raise ValueError("window_seconds must be positive")


@dataclass(frozen=True, slots=True)
class RateLimitOverride:
    """
    Custom quota supplied by a caller for a single check.

    Override counters are namespaced by their quota, so they never share
    state with the category default or with other override combinations.
    """
    max_requests: int
    window_seconds: float

    def __post_init__(self):
        _validate_quota(self.max_requests, self.window_seconds)

    @property
    def window_ms(self) -> int:
        return int(round(self.window_seconds * 1000))

    @property
    def namespace(self) -> str:
        return f"{self.max_requests}/{self.window_ms}"


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    """
    Immutable fixed-window quota for one category.

    Business Rules:
    - Category names are non-empty and may not contain ``:`` or ``@``
    - ``max_requests`` and ``window_seconds`` are positive
    """
    category: str
    max_requests: int
    window_seconds: float
    description: str = ""

    def __post_init__(self):
        """Validate policy configuration at construction time"""
        if not self.category or not self.category.strip():
            raise ValueError("category cannot be empty")

        if any(char in self.category for char in RESERVED_KEY_CHARACTERS):
            raise ValueError(
                f"category '{self.category}' may not contain "
                f"{' or '.join(repr(c) for c in RESERVED_KEY_CHARACTERS)}"
            )

        _validate_quota(self.max_requests, self.window_seconds)

    @property
    def window_ms(self) -> int:
        return int(round(self.window_seconds * 1000))

    @property
    def requests_per_second(self) -> float:
        """Steady-state requests per second rate"""
        return self.max_requests / self.window_seconds

    def with_override(self, override: Optional[RateLimitOverride]) -> RateLimitPolicy:
        """Effective policy for a check carrying ``override``"""
        if override is None:
            return self
        return RateLimitPolicy(
            category=self.category,
            max_requests=override.max_requests,
            window_seconds=override.window_seconds,
            description=self.description,
        )

    @classmethod
    def from_rate_string(cls, category: str, rate_string: str, description: str = "") -> RateLimitPolicy:
        """
        Create a policy from a rate string such as ``"100/minute"`` or
        ``"3/15minute"`` (three requests per fifteen minutes).

        Supported time units: second, minute, hour, day
        """
        match = _RATE_STRING.match(rate_string or "")
        if match is None:
            raise ValueError(f"Invalid rate string format: {rate_string}")

        multiplier = int(match.group("multiplier") or 1)
        if multiplier <= 0:
            raise ValueError(f"Invalid rate string format: {rate_string}")

        return cls(
            category=category,
            max_requests=int(match.group("count")),
            window_seconds=multiplier * PERIOD_SECONDS[match.group("period")],
            description=description,
        )

    def __str__(self) -> str:
        return f"{self.category}: {self.max_requests} per {self.window_seconds:g}s"


@dataclass(frozen=True, slots=True)
class RateLimitKey:
    """
    Identifies one fixed-window counter.

    Format:
        ``category:identifier`` for the category default, and
        ``category@<max>/<window_ms>:identifier`` for an override. Because a
        category may contain neither separator, the two forms never collide.
    """
    category: str
    identifier: str
    override: Optional[RateLimitOverride] = None

    def __post_init__(self):
        if not self.category or any(char in self.category for char in RESERVED_KEY_CHARACTERS):
            raise ValueError(f"Invalid rate limit category: {self.category!r}")

        if not self.identifier:
            raise ValueError("identifier cannot be empty")

    @property
    def storage_key(self) -> str:
        if self.override is None:
            return f"{self.category}:{self.identifier}"
        return f"{self.category}@{self.override.namespace}:{self.identifier}"

    def __str__(self) -> str:
        return self.storage_key
