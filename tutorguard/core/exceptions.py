"""Centralized, structured exception hierarchy for tutorguard.

Every error raised by the library derives from :class:`TutorGuardError` and
carries a machine-readable ``code`` next to its human-readable ``message``.
The hierarchy mirrors how failures are treated by the retry executor:

- ``TransientInfrastructureError``: network-class failures, always retryable.
- ``OperationalApplicationError``: anticipated failures carrying an HTTP-like
  status code; retryable only for a fixed allow-list of codes.
- ``PermanentError``: never retried.
- ``RetryCancelledError``, ``RetryTimeoutError``, ``RetryExhaustedError``:
  the terminal failures of a retry loop.
- ``CircuitOpenError``: raised while a circuit breaker rejects calls.
- ``RateLimitError`` / ``RateLimitExceededError``: map to HTTP 429.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Final, Optional

if TYPE_CHECKING:
    from tutorguard.domain.rate_limiting.entities import RateLimitDecision
    from tutorguard.domain.retry.entities import RetryOutcome

__all__: Final = [
    "TutorGuardError",
    "TransientInfrastructureError",
    "OperationalApplicationError",
    "PermanentError",
    "RetryError",
    "RetryCancelledError",
    "RetryTimeoutError",
    "RetryExhaustedError",
    "CircuitOpenError",
    "RateLimitError",
    "RateLimitExceededError",
    "UnknownRateLimitCategoryError",
    "RETRYABLE_STATUS_CODES",
]

# Status codes for which an operational error is worth another attempt.
RETRYABLE_STATUS_CODES: Final = frozenset({408, 429, 502, 503, 504})


class TutorGuardError(Exception):
    """Base exception class for all custom errors in tutorguard.

    Attributes:
        message (str): A human-readable error message, suitable for logging.
        code (str): A unique, machine-readable error code.
    """

    message: str
    code: str = "generic_error"

    def __init__(self, message: str, code: str = "generic_error"):
        self.message = message
        self.code = code
        Exception.__init__(self, self.message)

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Failure classification
# ---------------------------------------------------------------------------


class TransientInfrastructureError(TutorGuardError):
    """Raised for short-lived infrastructure failures (connection resets,
    DNS hiccups, gateway timeouts). Always retryable by default.
    """

    def __init__(self, message: str, code: str = "transient_infrastructure_error"):
        super().__init__(message, code)


class OperationalApplicationError(TutorGuardError):
    """An anticipated, recoverable failure reported by a dependency.

    The ``status_code`` follows HTTP semantics so handlers can surface it
    directly. Only operational errors whose status is listed in
    ``RETRYABLE_STATUS_CODES`` are retried by the default classifier.

    Attributes:
        status_code (int): HTTP-like classification of the failure.
        is_operational (bool): False marks a programming defect.
        metadata (dict): Free-form diagnostic context.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        is_operational: bool = True,
        code: str = "operational_error",
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code)
        self.status_code = status_code
        self.is_operational = is_operational
        self.metadata = metadata or {}

    @property
    def is_retryable_status(self) -> bool:
        return self.is_operational and self.status_code in RETRYABLE_STATUS_CODES


class PermanentError(TutorGuardError):
    """Raised for failures that will not go away by trying again."""

    def __init__(self, message: str, code: str = "permanent_error"):
        super().__init__(message, code)


# ---------------------------------------------------------------------------
# Retry loop terminal errors
# ---------------------------------------------------------------------------


class RetryError(TutorGuardError):
    """Base class for the terminal errors of a retry loop.

    Attributes:
        outcome (RetryOutcome | None): Attempt bookkeeping for diagnostics.
    """

    def __init__(
        self,
        message: str,
        code: str = "retry_error",
        outcome: Optional[RetryOutcome] = None,
    ):
        super().__init__(message, code)
        self.outcome = outcome


class RetryCancelledError(RetryError):
    """Raised when a cancellation token is signalled before or between attempts."""

    def __init__(
        self,
        message: str = "Retry cancelled",
        code: str = "retry_cancelled",
        outcome: Optional[RetryOutcome] = None,
    ):
        super().__init__(message, code, outcome)


class RetryTimeoutError(RetryError):
    """Raised when the overall timeout of a retry loop elapses.

    Takes precedence over any remaining attempts.
    """

    def __init__(
        self,
        timeout: float,
        code: str = "retry_timeout",
        outcome: Optional[RetryOutcome] = None,
    ):
        super().__init__(f"Retry timeout after {timeout:g}s", code, outcome)
        self.timeout = timeout


class RetryExhaustedError(RetryError):
    """Raised when every allowed attempt failed with a retryable error.

    The underlying failure is kept in ``last_error`` (and as ``__cause__``)
    so diagnostics see the real problem rather than a generic message.
    """

    def __init__(
        self,
        last_error: BaseException,
        attempts: int,
        code: str = "retry_exhausted",
        outcome: Optional[RetryOutcome] = None,
    ):
        super().__init__(
            f"Gave up after {attempts} attempt(s): "
            f"{type(last_error).__name__}: {last_error}",
            code,
            outcome,
        )
        self.last_error = last_error
        self.attempts = attempts


class CircuitOpenError(TutorGuardError):
    """Raised when a circuit breaker is open and rejects the call."""

    def __init__(
        self,
        breaker_name: str,
        message: Optional[str] = None,
        code: str = "circuit_open",
        retry_after: Optional[float] = None,
    ):
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        if message is None:
            message = f"Circuit breaker {breaker_name} is open"
        super().__init__(message, code)


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class RateLimitError(TutorGuardError):
    """Base class for rate limiting related errors.

    This exception and its subclasses map to a `429 Too Many Requests` HTTP
    status code.
    """

    def __init__(
        self,
        message: str = "Too many requests. Please try again later.",
        code: str = "rate_limit_exceeded",
    ):
        super().__init__(message, code)


class RateLimitExceededError(RateLimitError):
    """Raised when a rate limit decision rejected the request.

    Carries the decision so handlers can emit ``Retry-After`` and the
    ``X-RateLimit-*`` headers.
    """

    def __init__(
        self,
        decision: Optional[RateLimitDecision] = None,
        message: str = "Too many requests. Please try again later.",
        code: str = "rate_limit_exceeded",
    ):
        super().__init__(message, code)
        self.decision = decision


class UnknownRateLimitCategoryError(TutorGuardError, ValueError):
    """Raised when a caller asks for a category with no configured policy."""

    def __init__(self, category: str, code: str = "unknown_rate_limit_category"):
        super().__init__(f"No rate limit policy configured for category '{category}'", code)
        self.category = category
