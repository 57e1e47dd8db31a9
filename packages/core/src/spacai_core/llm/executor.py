from __future__ import annotations

import asyncio
import logging
import time
from contextlib import AsyncExitStack
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Iterable, Mapping, TypeVar

from spacai_core.llm.base import AIError, ErrorCode
from spacai_core.llm.errors import classify_error
from spacai_core.llm.models import (
    CompletionResponse,
    Message,
    RequestOptions,
    ResponseMetadata,
    StreamChunk,
    TokenUsage,
)
from spacai_core.llm.presets import normalize_model_id
from spacai_core.llm.rate_limiter import RateLimiter
from spacai_core.llm.retry import RetryPolicy, build_idempotency_key, run_with_retry
from spacai_core.llm.tokens import estimate_request_tokens

logger = logging.getLogger(__name__)

T = TypeVar("T")

_END = object()

MessageLike = Message | Mapping[str, Any]


def _coerce_messages(messages: Iterable[MessageLike]) -> list[Message]:
    coerced = [
        message if isinstance(message, Message) else Message.model_validate(message)
        for message in messages
    ]
    if not coerced:
        raise AIError(ErrorCode.BAD_REQUEST, "Invalid request: at least one message is required")
    return coerced


def _join_text(blocks: Iterable[Any] | None) -> str:
    return "".join(
        block.text for block in blocks or [] if getattr(block, "type", None) == "text"
    )


def _delta_text(event: Any) -> str | None:
    if getattr(event, "type", None) != "content_block_delta":
        return None
    return getattr(event.delta, "text", None)


def _elapsed_ms(started: float) -> int:
    return int(round((time.monotonic() - started) * 1000))


class RequestExecutor:
    """Issues one logical completion call: admission, retries, timeout, usage."""

    def __init__(
        self,
        provider: Any,
        rate_limiter: RateLimiter,
        retry_policy: RetryPolicy,
        *,
        default_model: str,
        default_timeout_s: float = 60.0,
    ) -> None:
        self._provider = provider
        self._rate_limiter = rate_limiter
        self._retry_policy = retry_policy
        self._default_model = default_model
        self._default_timeout_s = default_timeout_s

    async def send(self, message: str, options: RequestOptions | None = None) -> CompletionResponse:
        return await self.converse([Message(role="user", content=message)], options)

    async def converse(
        self,
        messages: Iterable[MessageLike],
        options: RequestOptions | None = None,
    ) -> CompletionResponse:
        options = options or RequestOptions()
        if options.stream:
            return await self._collect(self.stream(messages, options))

        conversation = _coerce_messages(messages)
        timeout_s = options.timeout_s or self._default_timeout_s
        request = self._build_request(conversation, options, timeout_s)
        estimated_tokens = self._estimate(conversation, options)
        started = time.monotonic()

        async def _attempt() -> CompletionResponse:
            async with self._rate_limiter.reserve(estimated_tokens):
                response = await self._await_provider(
                    self._provider.messages.create(**request), timeout_s
                )
                metadata = self._metadata(response, started)
                self._rate_limiter.record_request(metadata.tokens_used.total)
            return CompletionResponse(content=_join_text(response.content), metadata=metadata)

        try:
            result = await run_with_retry(_attempt, policy=self._retry_policy)
        except AIError as exc:
            logger.warning("Completion failed: %s (%s)", exc.code.value, exc.message)
            raise
        logger.debug(
            "Completion ok model=%s tokens=%d elapsed_ms=%d",
            result.metadata.model,
            result.metadata.tokens_used.total,
            result.metadata.processing_time_ms,
        )
        return result

    async def stream(
        self,
        messages: Iterable[MessageLike],
        options: RequestOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Yield text chunks in arrival order, then exactly one done or error chunk.

        Only opening the stream is retried. Once events flow, a failure ends
        the stream with an error chunk and already-sent text is not replayed.
        ``timeout_s`` bounds each wait on the provider.
        """
        options = options or RequestOptions()
        try:
            conversation = _coerce_messages(messages)
        except AIError as exc:
            yield StreamChunk.failure(exc)
            return
        timeout_s = options.timeout_s or self._default_timeout_s
        request = self._build_request(conversation, options, timeout_s)
        estimated_tokens = self._estimate(conversation, options)
        started = time.monotonic()

        try:
            resources, stream = await run_with_retry(
                self._open_stream,
                request,
                estimated_tokens,
                timeout_s,
                policy=self._retry_policy,
            )
        except AIError as exc:
            logger.warning("Stream failed to open: %s (%s)", exc.code.value, exc.message)
            yield StreamChunk.failure(exc)
            return

        async with resources:
            iterator = stream.__aiter__()
            try:
                while True:
                    event = await self._await_provider(anext(iterator, _END), timeout_s)
                    if event is _END:
                        break
                    text = _delta_text(event)
                    if text:
                        yield StreamChunk.delta(text)
                final = await self._await_provider(stream.get_final_message(), timeout_s)
            except AIError as exc:
                logger.warning("Stream interrupted: %s (%s)", exc.code.value, exc.message)
                yield StreamChunk.failure(exc)
                return
            metadata = self._metadata(final, started)
            self._rate_limiter.record_request(metadata.tokens_used.total)
        yield StreamChunk.done(metadata)

    async def _open_stream(
        self,
        request: dict[str, Any],
        estimated_tokens: int,
        timeout_s: float,
    ) -> tuple[AsyncExitStack, Any]:
        resources = AsyncExitStack()
        try:
            await resources.enter_async_context(self._rate_limiter.reserve(estimated_tokens))
            manager = self._provider.messages.stream(**request)
            stream = await self._await_provider(resources.enter_async_context(manager), timeout_s)
        except BaseException:
            await resources.aclose()
            raise
        return resources, stream

    async def _collect(self, chunks: AsyncGenerator[StreamChunk, None]) -> CompletionResponse:
        parts: list[str] = []
        try:
            async for chunk in chunks:
                if chunk.type == "text":
                    parts.append(chunk.text or "")
                elif chunk.type == "error":
                    raise chunk.error or AIError(ErrorCode.UNKNOWN_ERROR, "Stream failed")
                else:
                    return CompletionResponse(content="".join(parts), metadata=chunk.metadata)
        finally:
            await chunks.aclose()
        raise AIError(ErrorCode.UNKNOWN_ERROR, "Stream ended without a terminal chunk")

    async def _await_provider(self, awaitable: Awaitable[T], timeout_s: float) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout_s)
        except AIError:
            raise
        except asyncio.TimeoutError as exc:
            raise AIError(
                ErrorCode.TIMEOUT,
                f"Request timed out after {timeout_s:g}s",
                {"timeout_s": timeout_s},
            ) from exc
        except Exception as exc:
            raise classify_error(exc) from exc

    def _build_request(
        self, messages: list[Message], options: RequestOptions, timeout_s: float
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": normalize_model_id(options.model) if options.model else self._default_model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "extra_headers": {"Idempotency-Key": build_idempotency_key("anthropic")},
            # overrides the SDK client-wide timeout
            "timeout": timeout_s,
        }
        if options.system_prompt:
            request["system"] = options.system_prompt
        return request

    @staticmethod
    def _estimate(messages: list[Message], options: RequestOptions) -> int:
        texts = [m.content for m in messages]
        if options.system_prompt:
            texts.append(options.system_prompt)
        return estimate_request_tokens(texts, options.max_tokens)

    @staticmethod
    def _metadata(response: Any, started: float) -> ResponseMetadata:
        usage = response.usage
        return ResponseMetadata(
            model=response.model,
            tokens_used=TokenUsage.from_counts(usage.input_tokens, usage.output_tokens),
            processing_time_ms=_elapsed_ms(started),
            request_id=getattr(response, "id", None),
        )
