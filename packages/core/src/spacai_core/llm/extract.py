"""Recover a JSON value from model output.

Models often wrap the JSON they were asked for in prose or a markdown fence,
so the extractor narrows to the first fenced block, then to the first
balanced ``{...}`` or ``[...]`` span, and only then parses.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import TypeAdapter, ValidationError
from pydantic_core import from_json

from spacai_core.llm.base import AIError, ErrorCode

EXCERPT_LIMIT = 500

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_CLOSERS = {"{": "}", "[": "]"}


def _unfence(text: str) -> str:
    match = _FENCE_RE.search(text)
    if match and match.group(1):
        return match.group(1)
    return text


def _balanced_end(text: str, string_aware: bool) -> int:
    """Index just past the bracket closing ``text[0]``, or 0 if never closed.

    Only the opening bracket's own pair is counted. With ``string_aware``
    brackets inside JSON string literals are skipped.
    """
    opener = text[0]
    closer = _CLOSERS[opener]
    depth = 0
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if string_aware and in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if string_aware and char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return index + 1
    return 0


def find_json_candidate(text: str, *, string_aware: bool = True) -> str:
    candidate = _unfence(text.strip())
    starts = [pos for pos in (candidate.find("{"), candidate.find("[")) if pos != -1]
    if not starts:
        return candidate
    candidate = candidate[min(starts) :]
    end = _balanced_end(candidate, string_aware)
    if end:
        candidate = candidate[:end]
    return candidate


def _parse_error(text: str, reason: str) -> AIError:
    return AIError(
        ErrorCode.JSON_PARSE_ERROR,
        f"Failed to parse AI response as JSON: {reason}",
        {"original_content": text[:EXCERPT_LIMIT]},
    )


def extract_json(text: str, shape: Any = None, *, string_aware: bool = True) -> Any:
    """Extract one JSON value from ``text``.

    ``shape`` may be anything pydantic's ``TypeAdapter`` accepts; the parsed
    value is validated into it. Any failure raises ``AIError`` with code
    ``JSON_PARSE_ERROR`` and at most ``EXCERPT_LIMIT`` characters of ``text``.
    """
    candidate = find_json_candidate(text, string_aware=string_aware)
    try:
        value = from_json(candidate)
    except ValueError as exc:
        raise _parse_error(text, str(exc)) from exc
    if shape is None:
        return value
    try:
        return TypeAdapter(shape).validate_python(value)
    except ValidationError as exc:
        raise _parse_error(text, f"{exc.error_count()} validation error(s)") from exc
