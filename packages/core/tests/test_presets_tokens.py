from __future__ import annotations

import asyncio

import pytest
from spacai_core.llm.base import AIError, ErrorCode
from spacai_core.llm.presets import COMPLEX_MODEL, MAX_TOKENS, TEMPERATURE, normalize_model_id, options_for
from spacai_core.llm.tokens import (
    estimate_request_tokens,
    estimate_tokens,
    truncate_to_token_limit,
    with_timeout,
)


@pytest.mark.parametrize("task", sorted(MAX_TOKENS))
def test_options_for_uses_task_presets(task) -> None:
    options = options_for(task)
    assert options.max_tokens == MAX_TOKENS[task]
    assert options.temperature == TEMPERATURE[task]


def test_options_for_comparison_uses_complex_model() -> None:
    assert options_for("comparison").model == COMPLEX_MODEL
    assert options_for("summary").model is None


def test_options_for_overrides_win() -> None:
    options = options_for("extraction", max_tokens=512, system_prompt="Return JSON only.")
    assert options.max_tokens == 512
    assert options.temperature == 0.1
    assert options.system_prompt == "Return JSON only."


def test_options_for_unknown_task() -> None:
    with pytest.raises(ValueError):
        options_for("poetry")


def test_normalize_model_id() -> None:
    assert normalize_model_id("Sonnet") == "claude-sonnet-4-20250514"
    assert normalize_model_id("claude-opus-4") == COMPLEX_MODEL
    assert normalize_model_id("claude-3-haiku-20240307") == "claude-3-haiku-20240307"


def test_estimate_tokens_rounds_up() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2
    assert estimate_request_tokens(["abcd", "abcdefgh"], 100) == 103


def test_truncate_to_token_limit() -> None:
    short = "fits"
    assert truncate_to_token_limit(short, 10) is short
    long_text = "x" * 100
    truncated = truncate_to_token_limit(long_text, 5)
    assert len(truncated) == 20
    assert truncated.endswith("...")


@pytest.mark.asyncio
async def test_with_timeout_returns_value() -> None:
    async def quick() -> str:
        return "done"

    assert await with_timeout(quick(), 1.0) == "done"


@pytest.mark.asyncio
async def test_with_timeout_raises_timeout_error() -> None:
    with pytest.raises(AIError) as exc:
        await with_timeout(asyncio.sleep(1), 0.01, "Document analysis timed out")
    assert exc.value.code is ErrorCode.TIMEOUT
    assert exc.value.message == "Document analysis timed out"
    assert exc.value.retryable
