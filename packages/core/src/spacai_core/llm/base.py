from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Protocol, Sequence

if TYPE_CHECKING:
    from spacai_core.llm.models import (
        CompletionResponse,
        Message,
        RateLimitStatus,
        RequestOptions,
        StreamChunk,
    )


class ErrorCode(str, Enum):
    API_KEY_MISSING = "API_KEY_MISSING"
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    JSON_PARSE_ERROR = "JSON_PARSE_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


RETRYABLE_CODES = frozenset(
    {
        ErrorCode.RATE_LIMITED,
        ErrorCode.SERVER_ERROR,
        ErrorCode.NETWORK_ERROR,
        ErrorCode.TIMEOUT,
    }
)


class AIError(Exception):
    """The single error type raised across the client boundary.

    Callers branch on ``code`` and ``retryable``; the provider exception that
    caused it, if any, is available as ``__cause__``.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.details: dict[str, Any] = dict(details or {})

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_CODES

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return f"AIError(code={self.code.value!r}, message={self.message!r})"


class LLMClient(Protocol):
    """What prompt and analysis layers depend on; ClaudeClient satisfies it."""

    def check_configured(self) -> bool:
        ...

    async def send_message(
        self, message: str, options: RequestOptions | None = None
    ) -> CompletionResponse:
        ...

    async def send_conversation(
        self, messages: Sequence[Message], options: RequestOptions | None = None
    ) -> CompletionResponse:
        ...

    def stream_message(
        self, message: str, options: RequestOptions | None = None
    ) -> AsyncIterator[StreamChunk]:
        ...

    def stream_conversation(
        self, messages: Sequence[Message], options: RequestOptions | None = None
    ) -> AsyncIterator[StreamChunk]:
        ...

    def parse_json_response(self, content: str, shape: Any = None) -> Any:
        ...

    def get_rate_limit_status(self) -> RateLimitStatus:
        ...
