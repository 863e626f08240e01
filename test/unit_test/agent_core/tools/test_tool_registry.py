from __future__ import annotations

from typing import Any, Dict

import pytest

from agentflow.agent_core.schemas.domain import RiskLevel
from agentflow.agent_core.tools.base import ToolContext, ToolDefinition, ToolResult
from agentflow.agent_core.tools.registry import ToolRegistry


async def _noop(input: Dict[str, Any], ctx: ToolContext) -> Any:
    return None


def _tool(name: str) -> ToolDefinition:
    return ToolDefinition(name=name, description=f"{name} tool", handler=_noop)


def test_register_and_lookup() -> None:
    reg = ToolRegistry([_tool("a")])
    reg.register(_tool("b"))

    assert reg.has("a")
    assert reg.get("b").name == "b"
    assert reg.find("missing") is None
    assert [t.name for t in reg.list()] == ["a", "b"]
    assert len(reg) == 2


def test_get_missing_raises_key_error() -> None:
    with pytest.raises(KeyError):
        ToolRegistry().get("missing")


def test_duplicate_names_are_rejected() -> None:
    reg = ToolRegistry([_tool("a")])

    with pytest.raises(ValueError, match="already registered"):
        reg.register(_tool("a"))


def test_frozen_registry_rejects_registration() -> None:
    reg = ToolRegistry([_tool("a")]).freeze()

    assert reg.frozen is True
    with pytest.raises(RuntimeError):
        reg.register(_tool("b"))


def test_to_openai_tool_renders_function_entry() -> None:
    tool = ToolDefinition(
        name="lookup",
        description="Look something up.",
        handler=_noop,
        parameters={"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"]},
    )

    assert tool.to_openai_tool() == {
        "type": "function",
        "function": {
            "name": "lookup",
            "description": "Look something up.",
            "parameters": {"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"]},
        },
    }


def test_tool_result_constructors() -> None:
    ok = ToolResult.ok({"x": 1}, duration_ms=3)
    failed = ToolResult.fail("nope")
    pending = ToolResult.pending("apr-1", RiskLevel.high)

    assert ok.success and ok.data == {"x": 1} and ok.duration_ms == 3
    assert not failed.success and failed.error == "nope"
    assert pending.pending_approval and pending.approval_id == "apr-1"
    assert pending.success is False
