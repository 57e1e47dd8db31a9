from __future__ import annotations

import pytest
from fakes import FakeClock, RecordingSleep
from spacai_core.config import get_settings
from spacai_core.llm.anthropic_client import reset_claude_client


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch):
    for name in (
        "ANTHROPIC_API_KEY",
        "CLAUD_AI_KEY",
        "SPACAI_ANTHROPIC_MODEL",
        "CLAUDE_MODEL",
        "ANTHROPIC_MODEL",
        "SPACAI_TIMEOUT_S",
        "SPACAI_MAX_RETRIES",
        "SPACAI_MAX_REQUESTS_PER_MINUTE",
        "SPACAI_MAX_TOKENS_PER_MINUTE",
        "ANTHROPIC_BASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    reset_claude_client()
    yield
    get_settings.cache_clear()
    reset_claude_client()


@pytest.fixture
def retry_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
