from __future__ import annotations

import pytest
from pydantic import ValidationError

from agentflow.core.config import MemoryConfig, RuntimeConfig, Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("AGENTFLOW_LOG_LEVEL", "AGENTFLOW_RUNTIME__APPROVAL_TTL_HOURS"):
        monkeypatch.delenv(name, raising=False)

    s = Settings(_env_file=None)

    assert s.log_level == "INFO"
    assert s.runtime.default_max_steps == 10
    assert s.runtime.approval_ttl_hours == 24
    assert s.runtime.cancel_on_expiry is True
    assert s.memory.similarity_threshold == 0.95
    assert s.memory.consolidation_min_memories == 100
    assert s.risk.bulk_recipient_threshold == 10
    assert s.openai.model == "gpt-4o"


def test_nested_values_bind_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AGENTFLOW_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("AGENTFLOW_RUNTIME__APPROVAL_TTL_HOURS", "48")
    monkeypatch.setenv("AGENTFLOW_RUNTIME__CANCEL_ON_EXPIRY", "false")
    monkeypatch.setenv("AGENTFLOW_MEMORY__SIMILARITY_THRESHOLD", "0.9")
    monkeypatch.setenv("AGENTFLOW_OPENAI__API_KEY", "sk-test")

    s = Settings(_env_file=None)

    assert s.log_level == "DEBUG"
    assert s.runtime.approval_ttl_hours == 48
    assert s.runtime.cancel_on_expiry is False
    assert s.memory.similarity_threshold == 0.9
    assert s.openai.api_key == "sk-test"


def test_env_file_is_read(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AGENTFLOW_RUNTIME__DEFAULT_MAX_STEPS", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("AGENTFLOW_RUNTIME__DEFAULT_MAX_STEPS=3\n", encoding="utf-8")

    s = Settings(_env_file=env_file)

    assert s.runtime.default_max_steps == 3


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        RuntimeConfig(default_max_steps=0)
    with pytest.raises(ValidationError):
        MemoryConfig(similarity_threshold=1.5)
