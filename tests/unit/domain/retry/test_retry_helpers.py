import pytest
from unittest.mock import AsyncMock

from tutorguard.core.exceptions import RetryExhaustedError
from tutorguard.domain.retry import (
    BatchResult,
    RetryPolicy,
    create_retry_wrapper,
    retry,
    retry_batch,
    retry_linear,
    with_retry,
)


@pytest.mark.asyncio
async def test_retry_uses_default_policy(sleep_recorder):
    operation = AsyncMock(side_effect=[ConnectionError(), "ok"])

    assert await retry(operation, sleep=sleep_recorder, rand=lambda: 0.0) == "ok"
    assert sleep_recorder.calls == [1.0]


@pytest.mark.asyncio
async def test_retry_with_preset(sleep_recorder):
    operation = AsyncMock(side_effect=[TimeoutError(), TimeoutError(), "ok"])

    result = await retry(operation, RetryPolicy.preset("quick"), sleep=sleep_recorder, rand=lambda: 0.0)

    assert result == "ok"
    assert sleep_recorder.calls == pytest.approx([0.1, 0.2])


@pytest.mark.asyncio
async def test_retry_linear(sleep_recorder):
    operation = AsyncMock(side_effect=ConnectionError("reset"))

    with pytest.raises(RetryExhaustedError):
        await retry_linear(operation, max_attempts=4, delay=0.25, sleep=sleep_recorder)

    assert sleep_recorder.calls == [0.25, 0.25, 0.25]
    assert operation.await_count == 4


@pytest.mark.asyncio
async def test_with_retry_preserves_signature_and_arguments(sleep_recorder):
    attempts = []

    async def send_welcome_email(recipient, *, template="welcome"):
        """Send the welcome email."""
        attempts.append((recipient, template))
        if len(attempts) < 2:
            raise ConnectionError("smtp reset")
        return f"{template}:{recipient}"

    send = with_retry(send_welcome_email, RetryPolicy.linear(3, 0.5), sleep=sleep_recorder)

    assert await send("parent@example.com", template="reminder") == "reminder:parent@example.com"
    assert attempts == [("parent@example.com", "reminder")] * 2
    assert send.__name__ == "send_welcome_email"
    assert send.__doc__ == "Send the welcome email."


@pytest.mark.asyncio
async def test_retry_wrapper_logs_and_chains_caller_hook(sleep_recorder, mocker):
    logger = mocker.patch("tutorguard.domain.retry.services.logger")
    caller_hook = mocker.Mock()
    operation = AsyncMock(side_effect=[ConnectionError("reset"), "delivered"])
    send_email = create_retry_wrapper("email", RetryPolicy.linear(3, 2.0), sleep=sleep_recorder)

    result = await send_email(operation, on_retry=caller_hook)

    assert result == "delivered"
    caller_hook.assert_called_once()
    assert caller_hook.call_args.args[1:] == (1, 2.0)
    logger.warning.assert_any_call(
        "service_retry", service="email", attempt=1, delay=2.0, error="reset"
    )


@pytest.mark.asyncio
async def test_retry_wrapper_applies_overrides(sleep_recorder):
    operation = AsyncMock(side_effect=ConnectionError("reset"))
    wrapper = create_retry_wrapper("crm", RetryPolicy.linear(5, 1.0), sleep=sleep_recorder)

    with pytest.raises(RetryExhaustedError) as exc_info:
        await wrapper(operation, max_attempts=2)

    assert exc_info.value.attempts == 2


@pytest.mark.asyncio
async def test_retry_wrapper_uses_default_policy_hook(sleep_recorder):
    default_hook = AsyncMock()
    policy = RetryPolicy.linear(3, 1.0, on_retry=default_hook)
    wrapper = create_retry_wrapper("crm", policy, sleep=sleep_recorder)

    await wrapper(AsyncMock(side_effect=[TimeoutError(), "ok"]))

    default_hook.assert_awaited_once()


@pytest.mark.asyncio
async def test_retry_batch_reports_each_operation(sleep_recorder):
    permanent = ValueError("invalid address")
    operations = [
        AsyncMock(return_value="a"),
        AsyncMock(side_effect=[ConnectionError(), "b"]),
        AsyncMock(side_effect=permanent),
        AsyncMock(side_effect=ConnectionError("down")),
    ]

    results = await retry_batch(operations, RetryPolicy.linear(2, 0.0), sleep=sleep_recorder)

    assert results[0] == BatchResult(success=True, result="a")
    assert results[1] == BatchResult(success=True, result="b")
    assert results[2].success is False
    assert results[2].error is permanent
    assert isinstance(results[3].error, RetryExhaustedError)


@pytest.mark.asyncio
async def test_retry_batch_empty():
    assert await retry_batch([]) == []
