"""
Default retryability classification.

Decides whether a failure is worth another attempt when the policy carries
no custom predicate. Network-class failures are retryable, operational
errors only for a fixed allow-list of status codes, everything else is not.
"""

import errno
import socket

import httpx

from tutorguard.core.exceptions import (
    RETRYABLE_STATUS_CODES,
    CircuitOpenError,
    OperationalApplicationError,
    PermanentError,
    RetryError,
    TransientInfrastructureError,
)

# OSError numbers that describe an unreachable peer rather than a local fault.
NETWORK_ERRNOS = frozenset({
    errno.ECONNREFUSED,
    errno.ECONNRESET,
    errno.ECONNABORTED,
    errno.EPIPE,
    errno.ETIMEDOUT,
    errno.EHOSTUNREACH,
    errno.ENETUNREACH,
    errno.ENETDOWN,
    errno.EHOSTDOWN,
})


def is_network_error(exc: BaseException) -> bool:
    """True for connection refused/reset, timeouts and DNS failures."""
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(exc, (ConnectionError, TimeoutError, socket.gaierror)):
        return True
    return isinstance(exc, OSError) and exc.errno in NETWORK_ERRNOS


def is_retryable_error(exc: BaseException) -> bool:
    """
    Default retryability predicate.

    Args:
        exc: The failure raised by the operation.

    Returns:
        bool: True if the operation should be attempted again.
    """
    # Checked first: these are never retried even if they wrap a network error.
    if isinstance(exc, (PermanentError, CircuitOpenError, RetryError)):
        return False

    if isinstance(exc, TransientInfrastructureError):
        return True

    if isinstance(exc, OperationalApplicationError):
        return exc.is_retryable_status

    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES

    return is_network_error(exc)
