from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar
from uuid import uuid4

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from spacai_core.llm.base import AIError
from spacai_core.llm.errors import classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, AIError) and exc.retryable


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries with un-jittered ``2^n`` second backoff by default.

    ``max_retries`` counts retries, so a call that keeps failing with a
    retryable error is attempted ``max_retries + 1`` times. ``jitter_s`` only
    ever adds to the base delay.
    """

    max_retries: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float | None = None
    jitter_s: float = 0.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.jitter_s < 0:
            raise ValueError("jitter_s must be >= 0")
        if (
            self.max_delay_s is not None
            and self.max_retries
            and self.max_delay_s < self.base_delay_s * 2 ** (self.max_retries - 1)
        ):
            raise ValueError("max_delay_s would shorten the backoff before the last retry")

    def delay_for(self, attempt_number: int) -> float:
        """Base delay after the given 1-based attempt fails."""
        delay = self.base_delay_s * 2 ** (attempt_number - 1)
        if self.max_delay_s is None:
            return delay
        return min(delay, self.max_delay_s)

    def build(self) -> AsyncRetrying:
        if self.max_delay_s is None:
            wait = wait_exponential(multiplier=self.base_delay_s)
        else:
            wait = wait_exponential(multiplier=self.base_delay_s, max=self.max_delay_s)
        if self.jitter_s:
            wait = wait + wait_random(0, self.jitter_s)
        return AsyncRetrying(
            sleep=self.sleep,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait,
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )


def build_idempotency_key(prefix: str = "spacai") -> str:
    return f"{prefix}-{uuid4()}"


async def run_with_retry(
    fn: Callable[..., Awaitable[T]],
    *args,
    policy: RetryPolicy | None = None,
    **kwargs,
) -> T:
    """Run ``fn`` under ``policy``; every failure surfaces as ``AIError``."""
    retrying = (policy or RetryPolicy()).build()
    async for attempt in retrying:
        with attempt:
            try:
                return await fn(*args, **kwargs)
            except AIError:
                raise
            except Exception as exc:
                raise classify_error(exc) from exc
    raise AssertionError("retry loop exited without an outcome")  # pragma: no cover
