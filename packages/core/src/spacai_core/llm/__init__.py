from spacai_core.llm.base import RETRYABLE_CODES, AIError, ErrorCode, LLMClient
from spacai_core.llm.errors import classify_error, classify_status
from spacai_core.llm.extract import extract_json
from spacai_core.llm.models import (
    AIResult,
    CompletionResponse,
    Message,
    RateLimitStatus,
    RequestOptions,
    ResponseMetadata,
    StreamChunk,
    TokenUsage,
)
from spacai_core.llm.rate_limiter import RateLimiter
from spacai_core.llm.retry import RetryPolicy

__all__ = [
    "AIError",
    "AIResult",
    "CompletionResponse",
    "ErrorCode",
    "LLMClient",
    "Message",
    "RETRYABLE_CODES",
    "RateLimitStatus",
    "RateLimiter",
    "RequestOptions",
    "ResponseMetadata",
    "RetryPolicy",
    "StreamChunk",
    "TokenUsage",
    "classify_error",
    "classify_status",
    "extract_json",
]
