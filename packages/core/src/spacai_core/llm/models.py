from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from spacai_core.llm.base import AIError

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class RequestOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str | None = None
    max_tokens: int = Field(default=4096, gt=0)
    temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    system_prompt: str | None = None
    timeout_s: float | None = Field(default=None, gt=0)
    stream: bool = False


class TokenUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    input: int = Field(default=0, ge=0)
    output: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)

    @classmethod
    def from_counts(cls, input_tokens: int, output_tokens: int) -> "TokenUsage":
        return cls(input=input_tokens, output=output_tokens, total=input_tokens + output_tokens)


class ResponseMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    tokens_used: TokenUsage
    processing_time_ms: int = Field(ge=0)
    timestamp: datetime = Field(default_factory=_utcnow)
    request_id: str | None = None

    @classmethod
    def empty(cls, model: str = "unknown", processing_time_ms: int = 0) -> "ResponseMetadata":
        """Metadata for a call that never reached the provider."""
        return cls(model=model, tokens_used=TokenUsage(), processing_time_ms=processing_time_ms)


class CompletionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    metadata: ResponseMetadata


class RateLimitStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    requests_used: int
    tokens_used: int
    requests_remaining: int
    tokens_remaining: int
    requests_in_flight: int = 0


class AIResult(BaseModel, Generic[T]):
    """Success/failure envelope for callers that prefer values over exceptions."""

    model_config = ConfigDict(frozen=True)

    success: bool
    data: T | None = None
    error: dict | None = None
    metadata: ResponseMetadata

    @classmethod
    def ok(cls, data: T, metadata: ResponseMetadata) -> "AIResult[T]":
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def failed(cls, error: AIError, metadata: ResponseMetadata | None = None) -> "AIResult[T]":
        return cls(
            success=False,
            error=error.to_dict(),
            metadata=metadata or ResponseMetadata.empty(),
        )


ChunkType = Literal["text", "done", "error"]


@dataclass(frozen=True)
class StreamChunk:
    type: ChunkType
    text: str | None = None
    error: AIError | None = None
    metadata: ResponseMetadata | None = None

    @property
    def is_terminal(self) -> bool:
        return self.type != "text"

    @classmethod
    def delta(cls, text: str) -> "StreamChunk":
        return cls(type="text", text=text)

    @classmethod
    def done(cls, metadata: ResponseMetadata) -> "StreamChunk":
        return cls(type="done", metadata=metadata)

    @classmethod
    def failure(cls, error: AIError) -> "StreamChunk":
        return cls(type="error", error=error)
