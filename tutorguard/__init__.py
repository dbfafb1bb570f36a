"""tutorguard: retry and rate limiting policies for the tutoring portal backend."""

from tutorguard.domain.rate_limiting import RateLimiter, RateLimitOverride, RateLimitPolicy
from tutorguard.domain.retry import CancellationToken, RetryExecutor, RetryPolicy, retry

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "RateLimitOverride",
    "RateLimitPolicy",
    "RateLimiter",
    "RetryExecutor",
    "RetryPolicy",
    "retry",
]
