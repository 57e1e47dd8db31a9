from __future__ import annotations

import logging
import threading
from typing import Any, AsyncIterator, Iterable

from anthropic import AsyncAnthropic

from spacai_core.config import ClientSettings, get_settings
from spacai_core.llm.base import AIError
from spacai_core.llm.errors import missing_api_key
from spacai_core.llm.executor import MessageLike, RequestExecutor
from spacai_core.llm.extract import extract_json
from spacai_core.llm.models import (
    AIResult,
    CompletionResponse,
    RateLimitStatus,
    RequestOptions,
    ResponseMetadata,
    StreamChunk,
)
from spacai_core.llm.presets import normalize_model_id
from spacai_core.llm.rate_limiter import RateLimiter
from spacai_core.llm.retry import RetryPolicy

logger = logging.getLogger(__name__)


class ClaudeClient:
    """Rate-limited, retrying client for the Anthropic Messages API.

    A missing credential is a valid state: the client reports itself as
    unconfigured and every call fails fast with ``API_KEY_MISSING`` without
    touching the rate limiter or the network.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        provider: Any | None = None,
        rate_limiter: RateLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._configured = bool(self._settings.api_key)
        self._default_model = normalize_model_id(self._settings.default_model)
        if provider is None and self._configured:
            provider = AsyncAnthropic(
                api_key=self._settings.api_key,
                base_url=self._settings.base_url,
                timeout=self._settings.timeout_s,
                max_retries=0,
            )
        self._provider = provider
        self._rate_limiter = rate_limiter or RateLimiter(
            max_requests_per_minute=self._settings.max_requests_per_minute,
            max_tokens_per_minute=self._settings.max_tokens_per_minute,
        )
        self._retry_policy = retry_policy or RetryPolicy(max_retries=self._settings.max_retries)
        self._executor = RequestExecutor(
            self._provider,
            self._rate_limiter,
            self._retry_policy,
            default_model=self._default_model,
            default_timeout_s=self._settings.timeout_s,
        )

    @property
    def model_id(self) -> str:
        return self._default_model

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    def check_configured(self) -> bool:
        return self._configured

    def get_rate_limit_status(self) -> RateLimitStatus:
        return self._rate_limiter.get_status()

    async def send_message(
        self, message: str, options: RequestOptions | None = None
    ) -> CompletionResponse:
        self._require_configured()
        return await self._executor.send(message, options)

    async def send_conversation(
        self, messages: Iterable[MessageLike], options: RequestOptions | None = None
    ) -> CompletionResponse:
        self._require_configured()
        return await self._executor.converse(messages, options)

    def stream_message(
        self, message: str, options: RequestOptions | None = None
    ) -> AsyncIterator[StreamChunk]:
        return self.stream_conversation([{"role": "user", "content": message}], options)

    async def stream_conversation(
        self, messages: Iterable[MessageLike], options: RequestOptions | None = None
    ) -> AsyncIterator[StreamChunk]:
        if not self._configured:
            yield StreamChunk.failure(missing_api_key())
            return
        stream = self._executor.stream(messages, options)
        try:
            async for chunk in stream:
                yield chunk
        finally:
            await stream.aclose()

    def parse_json_response(self, content: str, shape: Any = None) -> Any:
        return extract_json(content, shape)

    async def complete_json(
        self,
        prompt: str,
        shape: Any = None,
        options: RequestOptions | None = None,
    ) -> tuple[Any, ResponseMetadata]:
        """Send ``prompt`` and return the JSON value extracted from the answer."""
        response = await self.send_message(prompt, options)
        return self.parse_json_response(response.content, shape), response.metadata

    async def safe_send_message(
        self, message: str, options: RequestOptions | None = None
    ) -> AIResult[str]:
        try:
            response = await self.send_message(message, options)
        except AIError as exc:
            return AIResult.failed(exc, ResponseMetadata.empty(self._default_model))
        return AIResult.ok(response.content, response.metadata)

    def _require_configured(self) -> None:
        if not self._configured:
            raise missing_api_key()


_client_instance: ClaudeClient | None = None
_client_lock = threading.Lock()


def get_claude_client(settings: ClientSettings | None = None) -> ClaudeClient:
    """Process-wide client; ``settings`` only apply to the first call."""
    global _client_instance
    with _client_lock:
        if _client_instance is None:
            _client_instance = ClaudeClient(settings)
            logger.debug(
                "Created shared Claude client (configured=%s)",
                _client_instance.check_configured(),
            )
        return _client_instance


def create_claude_client(settings: ClientSettings | None = None, **kwargs: Any) -> ClaudeClient:
    return ClaudeClient(settings, **kwargs)


def reset_claude_client() -> None:
    global _client_instance
    with _client_lock:
        _client_instance = None
