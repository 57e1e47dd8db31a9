from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from spacai_core.llm.presets import DEFAULT_MODEL, normalize_model_id


@dataclass(frozen=True)
class ClientSettings:
    api_key: str | None = None
    default_model: str = DEFAULT_MODEL
    timeout_s: float = 60.0
    max_retries: int = 3
    max_requests_per_minute: int = 50
    max_tokens_per_minute: int = 100_000
    base_url: str | None = None

    def __post_init__(self) -> None:
        if self.timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.max_requests_per_minute <= 0 or self.max_tokens_per_minute <= 0:
            raise ValueError("rate limits must be positive")

    def __repr__(self) -> str:
        key = "set" if self.api_key else "unset"
        return (
            f"ClientSettings(api_key=<{key}>, default_model={self.default_model!r}, "
            f"timeout_s={self.timeout_s}, max_retries={self.max_retries})"
        )


def _resolve_anthropic_key() -> str | None:
    return os.getenv("ANTHROPIC_API_KEY") or os.getenv("CLAUD_AI_KEY") or None


def _resolve_model() -> str:
    preferred = (
        os.getenv("SPACAI_ANTHROPIC_MODEL")
        or os.getenv("CLAUDE_MODEL")
        or os.getenv("ANTHROPIC_MODEL")
    )
    return normalize_model_id(preferred) if preferred else DEFAULT_MODEL


def _env_number(name: str, default: float, cast: type) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a {cast.__name__}, got {raw!r}") from exc


@lru_cache
def get_settings() -> ClientSettings:
    return ClientSettings(
        api_key=_resolve_anthropic_key(),
        default_model=_resolve_model(),
        timeout_s=_env_number("SPACAI_TIMEOUT_S", 60.0, float),
        max_retries=_env_number("SPACAI_MAX_RETRIES", 3, int),
        max_requests_per_minute=_env_number("SPACAI_MAX_REQUESTS_PER_MINUTE", 50, int),
        max_tokens_per_minute=_env_number("SPACAI_MAX_TOKENS_PER_MINUTE", 100_000, int),
        base_url=os.getenv("ANTHROPIC_BASE_URL") or None,
    )
