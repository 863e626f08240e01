from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable

import httpx
import pytest
from dotenv import load_dotenv

from agentflow.agent_core.schemas.domain import AgentConfig, AgentGoal

# Load dotenv files early so fixtures can read secrets via os.getenv.
# test/.env first, then test/.env.example for defaults; missing files are ignored.
TEST_ROOT = Path(__file__).resolve().parent
load_dotenv(TEST_ROOT / ".env", override=False)
load_dotenv(TEST_ROOT / ".env.example", override=False)


@pytest.fixture
def make_agent() -> Callable[..., AgentConfig]:
    """Factory for agent configurations with test-friendly defaults."""

    def _make(**overrides: Any) -> AgentConfig:
        data: dict[str, Any] = {
            "name": "Helper",
            "tenant_id": "tenant-1",
            "system_prompt": "You are a helpful assistant.",
            "goals": [AgentGoal(name="Assist", description="Help the user", priority=5)],
            "llm_provider": "scripted",
            "llm_model": "test-model",
            "timeout_seconds": 30,
        }
        data.update(overrides)
        return AgentConfig(**data)

    return _make


@pytest.fixture(autouse=True)
def _global_offline_http_guard(monkeypatch: pytest.MonkeyPatch):
    allowed_prefixes: Iterable[str] = (
        "http://mock",
        "https://mock",
        "http://localhost",
        "http://127.0.0.1",
        "/",
    )

    orig_sync = httpx._client.Client.request
    orig_async = httpx._client.AsyncClient.request

    def _is_allowed(url_str: str) -> bool:
        return any(url_str.startswith(p) for p in allowed_prefixes)

    def offline_sync(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return orig_sync(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard: {url_str}")

    async def offline_async(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return await orig_async(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard (async): {url_str}")

    monkeypatch.setattr(httpx._client.Client, "request", offline_sync, raising=True)
    monkeypatch.setattr(httpx._client.AsyncClient, "request", offline_async, raising=True)
