from __future__ import annotations

import pytest
from fakes import RecordingSleep, api_status_error
from spacai_core.llm.base import AIError, ErrorCode
from spacai_core.llm.retry import RetryPolicy, build_idempotency_key, run_with_retry


class FlakyCall:
    def __init__(self, failures: list[BaseException], result: str = "ok") -> None:
        self._failures = list(failures)
        self._result = result
        self.attempts = 0

    async def __call__(self) -> str:
        self.attempts += 1
        if self._failures:
            raise self._failures.pop(0)
        return self._result


@pytest.mark.asyncio
async def test_non_retryable_failure_makes_one_attempt(retry_sleep: RecordingSleep) -> None:
    call = FlakyCall([api_status_error(401)] * 5)

    with pytest.raises(AIError) as exc:
        await run_with_retry(call, policy=RetryPolicy(sleep=retry_sleep))

    assert exc.value.code is ErrorCode.UNAUTHORIZED
    assert call.attempts == 1
    assert retry_sleep.delays == []


@pytest.mark.asyncio
async def test_persistent_retryable_failure_exhausts_attempts(retry_sleep: RecordingSleep) -> None:
    call = FlakyCall([api_status_error(503)] * 10)

    with pytest.raises(AIError) as exc:
        await run_with_retry(call, policy=RetryPolicy(max_retries=3, sleep=retry_sleep))

    assert exc.value.code is ErrorCode.SERVER_ERROR
    assert call.attempts == 4
    assert retry_sleep.delays == [1, 2, 4]


@pytest.mark.asyncio
async def test_recovers_after_transient_failures(retry_sleep: RecordingSleep) -> None:
    call = FlakyCall([api_status_error(429), ConnectionResetError("reset")], result="done")

    result = await run_with_retry(call, policy=RetryPolicy(sleep=retry_sleep))

    assert result == "done"
    assert call.attempts == 3
    assert retry_sleep.delays == [1, 2]


@pytest.mark.asyncio
async def test_zero_retries_means_single_attempt(retry_sleep: RecordingSleep) -> None:
    call = FlakyCall([api_status_error(429)])

    with pytest.raises(AIError) as exc:
        await run_with_retry(call, policy=RetryPolicy(max_retries=0, sleep=retry_sleep))

    assert exc.value.code is ErrorCode.RATE_LIMITED
    assert call.attempts == 1


@pytest.mark.asyncio
async def test_jitter_never_shortens_backoff(retry_sleep: RecordingSleep) -> None:
    call = FlakyCall([api_status_error(500)] * 3)
    policy = RetryPolicy(max_retries=3, jitter_s=0.5, sleep=retry_sleep)

    await run_with_retry(call, policy=policy)

    assert len(retry_sleep.delays) == 3
    for attempt_number, delay in enumerate(retry_sleep.delays, start=1):
        assert policy.delay_for(attempt_number) <= delay <= policy.delay_for(attempt_number) + 0.5


@pytest.mark.asyncio
async def test_raw_exceptions_surface_classified() -> None:
    async def broken() -> None:
        raise ValueError("bad shape")

    with pytest.raises(AIError) as exc:
        await run_with_retry(broken, policy=RetryPolicy(sleep=RecordingSleep()))

    assert exc.value.code is ErrorCode.UNKNOWN_ERROR
    assert isinstance(exc.value.__cause__, ValueError)


def test_backoff_schedule_is_exponential() -> None:
    policy = RetryPolicy()
    assert [policy.delay_for(n) for n in range(1, 5)] == [1, 2, 4, 8]
    assert RetryPolicy(max_retries=2, max_delay_s=3).delay_for(4) == 3


@pytest.mark.asyncio
async def test_long_schedules_keep_doubling(retry_sleep: RecordingSleep) -> None:
    call = FlakyCall([api_status_error(503)] * 10)

    with pytest.raises(AIError):
        await run_with_retry(call, policy=RetryPolicy(max_retries=7, sleep=retry_sleep))

    assert call.attempts == 8
    assert retry_sleep.delays == [1, 2, 4, 8, 16, 32, 64]


def test_rejects_cap_below_scheduled_backoff() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_retries=7, max_delay_s=60)
    assert RetryPolicy(max_retries=7, max_delay_s=64).delay_for(7) == 64


def test_rejects_negative_settings() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_retries=-1)
    with pytest.raises(ValueError):
        RetryPolicy(jitter_s=-0.1)


def test_idempotency_key_is_unique() -> None:
    first = build_idempotency_key("anthropic")
    assert first.startswith("anthropic-")
    assert first != build_idempotency_key("anthropic")
