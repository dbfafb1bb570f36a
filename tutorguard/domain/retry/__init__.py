"""Retry domain: policies, outcomes and the retry executor."""

from .classification import is_network_error, is_retryable_error
from .entities import RetryOutcome, RetryState
from .services import (
    BatchResult,
    RetryExecutor,
    create_retry_wrapper,
    retry,
    retry_batch,
    retry_linear,
    with_retry,
)
from .value_objects import PRESET_NAMES, RETRY_PRESETS, CancellationToken, RetryPolicy

__all__ = [
    "BatchResult",
    "CancellationToken",
    "PRESET_NAMES",
    "RETRY_PRESETS",
    "RetryExecutor",
    "RetryOutcome",
    "RetryPolicy",
    "RetryState",
    "create_retry_wrapper",
    "is_network_error",
    "is_retryable_error",
    "retry",
    "retry_batch",
    "retry_linear",
    "with_retry",
]
