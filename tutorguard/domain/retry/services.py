"""
Retry Domain Services

Runs asynchronous operations under a :class:`RetryPolicy`. The loop itself
is driven by tenacity's ``AsyncRetrying``; this module supplies the parts
tenacity does not know about:

- The policy's backoff curve with injectable jitter
- Retryability classification (custom predicate or the default classifier)
- The retry hook, invoked before every wait
- Cooperative cancellation, checked at loop entry and raced against sleeps
- The overall timeout, raced against the whole loop
- Mapping of tenacity's terminal states onto the tutorguard error taxonomy

Every run ends in exactly one terminal state: the operation's result, the
original non-retryable error, ``RetryExhaustedError``,
``RetryCancelledError`` or ``RetryTimeoutError``.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import random
import time
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Generic,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

import structlog
import tenacity
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt

from tutorguard.core.exceptions import (
    RetryCancelledError,
    RetryError,
    RetryExhaustedError,
    RetryTimeoutError,
)

from .classification import is_retryable_error
from .entities import RetryOutcome, RetryState
from .value_objects import RetryHook, RetryPolicy

if TYPE_CHECKING:
    from tutorguard.core.circuit_breaker import CircuitBreaker

logger = structlog.get_logger(__name__)

T = TypeVar("T")
Operation = Callable[[], Awaitable[T]]


class RetryExecutor:
    """
    Executes an async operation under a retry policy.

    The executor owns its policy; clock, sleep and random source are
    injectable so tests can observe delays without waiting for them.

    Args:
        policy: Retry policy, defaults to ``RetryPolicy()``.
        sleep: Non-blocking sleep coroutine used between attempts.
        clock: Monotonic clock used to measure ``RetryOutcome.elapsed``.
        rand: Source of uniform floats in ``[0, 1)`` for jitter.
        circuit_breaker: Optional breaker wrapping every attempt.
        name: Name used in log events.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rand: Callable[[], float] = random.random,
        circuit_breaker: Optional[CircuitBreaker] = None,
        name: str = "default",
    ):
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock
        self._rand = rand
        self._circuit_breaker = circuit_breaker
        self.name = name

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def run(self, operation: Operation[T]) -> T:
        """
        Run ``operation`` until it succeeds or the policy gives up.

        Returns:
            The operation's result, unchanged.

        Raises:
            RetryExhaustedError: Every attempt failed with a retryable error.
            RetryCancelledError: The policy's cancellation token was signalled.
            RetryTimeoutError: The policy's overall timeout elapsed.
            Exception: The original error, when it is not retryable.
        """
        result, _ = await self.run_with_outcome(operation)
        return result

    async def run_with_outcome(self, operation: Operation[T]) -> Tuple[T, RetryOutcome]:
        """Like :meth:`run`, also returning the attempt bookkeeping.

        On failure the outcome is attached to the raised tutorguard error.
        """
        policy = self._policy
        outcome = RetryOutcome(max_attempts=policy.max_attempts)
        started = self._clock()
        try:
            if policy.overall_timeout is None:
                result = await self._run_loop(operation, outcome)
            else:
                result = await self._run_with_timeout(operation, outcome)
        finally:
            outcome.elapsed = self._clock() - started

        outcome.transition_to(RetryState.SUCCEEDED)
        if outcome.attempts > 1:
            logger.info(
                "retry_succeeded",
                executor=self.name,
                attempts=outcome.attempts,
                elapsed=round(outcome.elapsed, 3),
            )
        return result, outcome

    async def _run_with_timeout(self, operation: Operation[T], outcome: RetryOutcome) -> T:
        timeout = self._policy.overall_timeout
        task = asyncio.ensure_future(self._run_loop(operation, outcome))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        if not outcome.is_finished:
            outcome.transition_to(RetryState.TIMED_OUT)
        logger.warning(
            "retry_timed_out",
            executor=self.name,
            timeout=timeout,
            attempts=outcome.attempts,
        )
        raise RetryTimeoutError(timeout, outcome=outcome)

    async def _run_loop(self, operation: Operation[T], outcome: RetryOutcome) -> T:
        policy = self._policy
        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=self._compute_delay,
            retry=retry_if_exception(self._should_retry),
            sleep=functools.partial(self._pause, outcome),
            before_sleep=self._log_retry,
            reraise=False,
        )
        try:
            return await retrying(self._invoke, operation, outcome)
        except tenacity.RetryError as exc:
            last_error = exc.last_attempt.exception()
            outcome.transition_to(RetryState.FAILED_EXHAUSTED)
            logger.warning(
                "retry_exhausted",
                executor=self.name,
                attempts=outcome.attempts,
                error=str(last_error),
                error_type=type(last_error).__name__,
            )
            raise RetryExhaustedError(last_error, outcome.attempts, outcome=outcome) from last_error
        except RetryError:
            # Cancellation, or a nested retry loop that already gave up.
            if not outcome.is_finished:
                outcome.transition_to(RetryState.FAILED_EXHAUSTED)
            raise
        except Exception as exc:
            outcome.transition_to(RetryState.FAILED_EXHAUSTED)
            logger.info(
                "retry_aborted_non_retryable",
                executor=self.name,
                attempts=outcome.attempts,
                error_type=type(exc).__name__,
            )
            raise

    async def _invoke(self, operation: Operation[T], outcome: RetryOutcome) -> T:
        token = self._policy.cancellation_token
        if token is not None and token.cancelled:
            outcome.transition_to(RetryState.CANCELLED)
            raise RetryCancelledError(outcome=outcome)

        outcome.record_attempt()
        try:
            if self._circuit_breaker is not None:
                return await self._circuit_breaker.execute(operation)
            return await operation()
        except Exception as exc:
            outcome.last_error = exc
            raise

    def _should_retry(self, exc: BaseException) -> bool:
        if not isinstance(exc, Exception) or isinstance(exc, RetryError):
            return False
        predicate = self._policy.retryable or is_retryable_error
        return bool(predicate(exc))

    def _compute_delay(self, retry_state: tenacity.RetryCallState) -> float:
        return self._policy.delay_for(retry_state.attempt_number, self._rand)

    def _log_retry(self, retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.info(
            "retry_scheduled",
            executor=self.name,
            attempt=retry_state.attempt_number,
            delay=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
            error=str(exc),
            error_type=type(exc).__name__,
        )

    async def _pause(self, outcome: RetryOutcome, delay: float) -> None:
        """Record the delay, run the hook, then sleep unless cancelled."""
        delay = float(delay)
        outcome.record_delay(delay)
        outcome.transition_to(RetryState.WAITING)
        await self._notify(outcome, delay)

        token = self._policy.cancellation_token
        if token is None:
            await self._sleep(delay)
        else:
            if token.cancelled:
                outcome.transition_to(RetryState.CANCELLED)
                raise RetryCancelledError(outcome=outcome)

            sleeper = asyncio.ensure_future(self._sleep(delay))
            waiter = asyncio.ensure_future(token.wait())
            try:
                done, _ = await asyncio.wait(
                    {sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                for pending in (sleeper, waiter):
                    if not pending.done():
                        pending.cancel()

            if waiter in done:
                outcome.transition_to(RetryState.CANCELLED)
                logger.info("retry_cancelled", executor=self.name, attempts=outcome.attempts)
                raise RetryCancelledError(outcome=outcome)
            sleeper.result()

        outcome.transition_to(RetryState.ATTEMPTING)

    async def _notify(self, outcome: RetryOutcome, delay: float) -> None:
        hook = self._policy.on_retry
        if hook is None:
            return
        try:
            result = hook(outcome.last_error, outcome.attempts, delay)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            # Hook failures never abort the loop.
            logger.warning(
                "retry_hook_failed",
                executor=self.name,
                attempt=outcome.attempts,
                error=str(exc),
                exc_info=True,
            )


async def retry(operation: Operation[T], policy: Optional[RetryPolicy] = None, **executor_kwargs: Any) -> T:
    """Run ``operation`` under ``policy``; see :meth:`RetryExecutor.run`."""
    return await RetryExecutor(policy, **executor_kwargs).run(operation)


async def retry_linear(
    operation: Operation[T],
    max_attempts: int = 3,
    delay: float = 1.0,
    **executor_kwargs: Any,
) -> T:
    """Retry with a constant delay and no jitter."""
    return await retry(operation, RetryPolicy.linear(max_attempts, delay), **executor_kwargs)


def with_retry(
    func: Callable[..., Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    **executor_kwargs: Any,
) -> Callable[..., Awaitable[T]]:
    """
    Wrap an async function so every call is retried under ``policy``.

    Example:
        send = with_retry(gateway.send_email, RetryPolicy.preset("standard"))
        await send(message)
    """
    executor = RetryExecutor(policy, name=getattr(func, "__qualname__", "default"), **executor_kwargs)

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await executor.run(lambda: func(*args, **kwargs))

    return wrapper


def create_retry_wrapper(
    service_name: str,
    default_policy: Optional[RetryPolicy] = None,
    **executor_kwargs: Any,
) -> Callable[..., Awaitable[Any]]:
    """
    Build a retry entry point for one external service.

    The returned ``wrapper(operation, **overrides)`` applies ``overrides`` on
    top of ``default_policy``, logs every retry with the service name and
    then calls the caller's own ``on_retry`` hook, if any.
    """
    base_policy = default_policy or RetryPolicy()

    async def wrapper(operation: Operation[T], **overrides: Any) -> T:
        caller_hook: Optional[RetryHook] = overrides.pop("on_retry", None) or base_policy.on_retry

        async def on_retry(exc: BaseException, attempt: int, delay: float) -> None:
            logger.warning(
                "service_retry",
                service=service_name,
                attempt=attempt,
                delay=round(delay, 3),
                error=str(exc),
            )
            if caller_hook is not None:
                result = caller_hook(exc, attempt, delay)
                if inspect.isawaitable(result):
                    await result

        policy = base_policy.with_overrides(on_retry=on_retry, **overrides)
        return await RetryExecutor(policy, name=service_name, **executor_kwargs).run(operation)

    return wrapper


@dataclass(frozen=True)
class BatchResult(Generic[T]):
    """Result of one operation of :func:`retry_batch`"""

    success: bool
    result: Optional[T] = None
    error: Optional[BaseException] = None


async def retry_batch(
    operations: Sequence[Operation[T]],
    policy: Optional[RetryPolicy] = None,
    **executor_kwargs: Any,
) -> List[BatchResult[T]]:
    """
    Run operations concurrently, each under its own retry loop.

    Failures are reported per operation instead of failing the batch.
    Results are returned in input order.
    """
    executor = RetryExecutor(policy, name="batch", **executor_kwargs)

    async def run_one(operation: Operation[T]) -> BatchResult[T]:
        try:
            return BatchResult(success=True, result=await executor.run(operation))
        except Exception as exc:
            return BatchResult(success=False, error=exc)

    return list(await asyncio.gather(*(run_one(operation) for operation in operations)))
