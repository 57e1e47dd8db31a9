from __future__ import annotations

import asyncio
import math
from typing import Awaitable, Iterable, TypeVar

from spacai_core.llm.base import AIError, ErrorCode

CHARS_PER_TOKEN = 4

T = TypeVar("T")


def estimate_tokens(text: str) -> int:
    """Rough token count used before the provider reports real usage."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_request_tokens(texts: Iterable[str], max_output_tokens: int) -> int:
    return sum(estimate_tokens(text) for text in texts) + max_output_tokens


def truncate_to_token_limit(text: str, max_tokens: int) -> str:
    limit = max_tokens * CHARS_PER_TOKEN
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 3)] + "..."


async def with_timeout(
    awaitable: Awaitable[T],
    timeout_s: float,
    message: str = "Operation timed out",
) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout_s)
    except asyncio.TimeoutError as exc:
        raise AIError(ErrorCode.TIMEOUT, message, {"timeout_s": timeout_s}) from exc
