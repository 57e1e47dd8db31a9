"""Rate-limited, retrying Claude completion client with JSON extraction."""

from spacai_core.config import ClientSettings, get_settings
from spacai_core.llm import (
    AIError,
    AIResult,
    CompletionResponse,
    ErrorCode,
    Message,
    RequestOptions,
    ResponseMetadata,
    StreamChunk,
    extract_json,
)
from spacai_core.llm.anthropic_client import (
    ClaudeClient,
    create_claude_client,
    get_claude_client,
    reset_claude_client,
)
from spacai_core.llm.presets import options_for
from spacai_core.llm.tokens import estimate_tokens, truncate_to_token_limit, with_timeout

__all__ = [
    "AIError",
    "AIResult",
    "ClaudeClient",
    "ClientSettings",
    "CompletionResponse",
    "ErrorCode",
    "Message",
    "RequestOptions",
    "ResponseMetadata",
    "StreamChunk",
    "create_claude_client",
    "estimate_tokens",
    "extract_json",
    "get_claude_client",
    "get_settings",
    "options_for",
    "reset_claude_client",
    "truncate_to_token_limit",
    "with_timeout",
]
