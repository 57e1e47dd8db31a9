from __future__ import annotations

from typing import Any, Literal

from spacai_core.llm.models import RequestOptions

DEFAULT_MODEL = "claude-sonnet-4-20250514"
COMPLEX_MODEL = "claude-opus-4-20250514"

Task = Literal["summary", "analysis", "extraction", "comparison", "qa"]

MAX_TOKENS: dict[str, int] = {
    "summary": 1024,
    "analysis": 4096,
    "extraction": 4096,
    "comparison": 8192,
    "qa": 2048,
}

TEMPERATURE: dict[str, float] = {
    "extraction": 0.1,
    "analysis": 0.3,
    "summary": 0.4,
    "qa": 0.5,
    "comparison": 0.3,
}

_MODEL_ALIASES = {
    "sonnet": DEFAULT_MODEL,
    "claude-sonnet": DEFAULT_MODEL,
    "claude-sonnet-4": DEFAULT_MODEL,
    "opus": COMPLEX_MODEL,
    "claude-opus": COMPLEX_MODEL,
    "claude-opus-4": COMPLEX_MODEL,
}


def normalize_model_id(model: str) -> str:
    cleaned = model.strip()
    return _MODEL_ALIASES.get(cleaned.lower(), cleaned)


def options_for(task: Task, **overrides: Any) -> RequestOptions:
    """RequestOptions with the token ceiling and temperature tuned for ``task``."""
    if task not in MAX_TOKENS:
        raise ValueError(f"unknown task {task!r}; expected one of {sorted(MAX_TOKENS)}")
    values: dict[str, Any] = {
        "max_tokens": MAX_TOKENS[task],
        "temperature": TEMPERATURE[task],
    }
    if task == "comparison":
        values["model"] = COMPLEX_MODEL
    values.update(overrides)
    return RequestOptions(**values)
