import pytest
from unittest.mock import AsyncMock

from tutorguard.core.circuit_breaker import CircuitBreaker, CircuitState, circuit_breaker
from tutorguard.core.exceptions import CircuitOpenError


def make_breaker(clock, **kwargs):
    params = dict(failure_threshold=3, reset_timeout=10, clock=clock, name="test")
    params.update(kwargs)
    return CircuitBreaker(**params)


async def fail(breaker, times=1):
    for _ in range(times):
        with pytest.raises(ConnectionError):
            await breaker.execute(AsyncMock(side_effect=ConnectionError("refused")))


@pytest.mark.asyncio
async def test_circuit_breaker_initial_state(clock):
    """Test that the circuit breaker starts in closed state."""
    breaker = make_breaker(clock)

    assert breaker.state is CircuitState.CLOSED
    assert breaker.is_closed
    assert breaker.stats["recent_failures"] == 0


@pytest.mark.asyncio
async def test_successful_call_passes_result_through(clock):
    breaker = make_breaker(clock)
    func = AsyncMock(return_value="ok")

    assert await breaker.execute(func, 1, key="value") == "ok"
    func.assert_awaited_once_with(1, key="value")


@pytest.mark.asyncio
async def test_circuit_breaker_closed_to_open(clock):
    """Test transition from closed to open state after failure threshold is reached."""
    breaker = make_breaker(clock)

    await fail(breaker, 3)

    assert breaker.is_open
    assert breaker.stats["total_failures"] == 3


@pytest.mark.asyncio
async def test_open_circuit_rejects_calls_without_invoking(clock):
    breaker = make_breaker(clock)
    await fail(breaker, 3)
    func = AsyncMock(return_value="ok")

    clock.advance(4)
    with pytest.raises(CircuitOpenError) as exc_info:
        await breaker.execute(func)

    assert func.await_count == 0
    assert exc_info.value.breaker_name == "test"
    assert exc_info.value.retry_after == pytest.approx(6)
    assert breaker.stats["total_rejections"] == 1


@pytest.mark.asyncio
async def test_failures_outside_window_are_forgotten(clock):
    breaker = make_breaker(clock, window_seconds=30)

    await fail(breaker, 2)
    clock.advance(31)
    await fail(breaker, 2)

    assert breaker.is_closed
    assert breaker.stats["recent_failures"] == 2


@pytest.mark.asyncio
async def test_circuit_breaker_open_to_half_open(clock):
    """Test transition from open to half-open state after reset timeout."""
    breaker = make_breaker(clock)
    await fail(breaker, 3)

    clock.advance(10)

    assert breaker.state is CircuitState.HALF_OPEN


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_to_closed(clock):
    """Test transition from half-open to closed state after successful executions."""
    breaker = make_breaker(clock, success_threshold=2)
    await fail(breaker, 3)
    clock.advance(10)

    await breaker.execute(AsyncMock(return_value="ok"))
    assert breaker.state is CircuitState.HALF_OPEN

    await breaker.execute(AsyncMock(return_value="ok"))
    assert breaker.is_closed


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_to_open(clock):
    """Test that a failed trial call reopens the circuit."""
    breaker = make_breaker(clock)
    await fail(breaker, 3)
    clock.advance(10)

    await fail(breaker)

    assert breaker.is_open
    assert breaker.stats["retry_after"] == 10


@pytest.mark.asyncio
async def test_ignored_exceptions_do_not_trip(clock):
    breaker = make_breaker(clock, failure_threshold=1, is_failure=lambda exc: not isinstance(exc, ValueError))

    with pytest.raises(ValueError):
        await breaker.execute(AsyncMock(side_effect=ValueError("bad input")))

    assert breaker.is_closed


@pytest.mark.asyncio
async def test_reset_closes_the_circuit(clock):
    breaker = make_breaker(clock)
    await fail(breaker, 3)

    await breaker.reset()

    assert breaker.is_closed
    assert await breaker.execute(AsyncMock(return_value=1)) == 1


@pytest.mark.asyncio
async def test_context_manager_records_outcomes(clock):
    breaker = make_breaker(clock, failure_threshold=1)

    async with breaker:
        pass
    with pytest.raises(ConnectionError):
        async with breaker:
            raise ConnectionError("refused")

    assert breaker.is_open
    with pytest.raises(CircuitOpenError):
        async with breaker:
            pass


@pytest.mark.asyncio
async def test_circuit_breaker_decorator():
    """Test the circuit_breaker decorator shares one breaker across calls."""
    calls = []

    @circuit_breaker(failure_threshold=2, reset_timeout=60)
    async def send_email(recipient):
        calls.append(recipient)
        raise ConnectionError("smtp down")

    for _ in range(2):
        with pytest.raises(ConnectionError):
            await send_email("parent@example.com")

    with pytest.raises(CircuitOpenError, match="send_email"):
        await send_email("parent@example.com")

    assert len(calls) == 2
    assert send_email.breaker.name == "send_email"


def test_invalid_configuration():
    with pytest.raises(ValueError):
        CircuitBreaker(failure_threshold=0)
    with pytest.raises(ValueError):
        CircuitBreaker(reset_timeout=0)
