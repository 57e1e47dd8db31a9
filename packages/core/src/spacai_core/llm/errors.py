from __future__ import annotations

import asyncio
from typing import Any

import anthropic
import httpx

from spacai_core.llm.base import AIError, ErrorCode

_STATUS_CODES = {
    400: ErrorCode.BAD_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    429: ErrorCode.RATE_LIMITED,
}

_STATUS_MESSAGES = {
    ErrorCode.UNAUTHORIZED: "Invalid API key",
    ErrorCode.FORBIDDEN: "Access denied",
    ErrorCode.NOT_FOUND: "Resource not found",
    ErrorCode.RATE_LIMITED: "Rate limit exceeded",
}

_TIMEOUT_ERRORS = (
    anthropic.APITimeoutError,
    httpx.TimeoutException,
    asyncio.TimeoutError,
    TimeoutError,
)
_CONNECTION_ERRORS = (anthropic.APIConnectionError, httpx.TransportError, ConnectionError)


def missing_api_key() -> AIError:
    return AIError(ErrorCode.API_KEY_MISSING, "Anthropic API key is not configured")


def _provider_error(body: Any) -> tuple[str | None, str | None]:
    """Pull ``(type, message)`` out of an Anthropic error payload."""
    if not isinstance(body, dict):
        return None, None
    error = body.get("error", body)
    if not isinstance(error, dict):
        return None, None
    message = error.get("message")
    error_type = error.get("type")
    return (
        error_type if isinstance(error_type, str) else None,
        message if isinstance(message, str) else None,
    )


def classify_status(
    status: int,
    body: Any = None,
    *,
    request_id: str | None = None,
) -> AIError:
    """Map an HTTP status plus provider error payload onto the error taxonomy."""
    provider_type, provider_message = _provider_error(body)
    reason = provider_message or "Unknown API error"

    if status in _STATUS_CODES:
        code = _STATUS_CODES[status]
    elif 400 <= status < 500:
        code = ErrorCode.BAD_REQUEST
    elif 500 <= status < 600:
        code = ErrorCode.SERVER_ERROR
    else:
        code = ErrorCode.UNKNOWN_ERROR

    if code is ErrorCode.BAD_REQUEST:
        message = f"Invalid request: {reason}"
    elif code is ErrorCode.SERVER_ERROR:
        message = f"Server error: {reason}"
    elif code is ErrorCode.UNKNOWN_ERROR:
        message = f"API error ({status}): {reason}"
    else:
        message = _STATUS_MESSAGES[code]

    details: dict[str, Any] = {"status_code": status}
    if provider_type:
        details["provider_type"] = provider_type
    if provider_message:
        details["provider_message"] = provider_message
    if request_id:
        details["request_id"] = request_id
    return AIError(code, message, details)


def classify_error(exc: BaseException) -> AIError:
    """Translate a transport or SDK failure into an ``AIError``.

    ``AIError`` instances pass through unchanged. Order matters: the SDK's
    timeout error subclasses its connection error.
    """
    if isinstance(exc, AIError):
        return exc
    if isinstance(exc, anthropic.APIStatusError):
        return classify_status(
            exc.status_code,
            exc.body,
            request_id=getattr(exc, "request_id", None),
        )
    if isinstance(exc, _TIMEOUT_ERRORS):
        return AIError(ErrorCode.TIMEOUT, "Request timed out")
    if isinstance(exc, _CONNECTION_ERRORS):
        return AIError(ErrorCode.NETWORK_ERROR, f"Network error: {exc}")
    return AIError(
        ErrorCode.UNKNOWN_ERROR,
        f"Unknown error: {exc}",
        {"exception_type": type(exc).__name__},
    )
