from __future__ import annotations

from typing import Any, Dict

import pytest

from agentflow.agent_core.errors import InsufficientPermissions
from agentflow.agent_core.policy.permissions import (
    check_tool_permissions,
    filter_tools,
    is_allowed,
    matches_pattern,
)
from agentflow.agent_core.tools.base import ToolContext, ToolDefinition


async def _noop(input: Dict[str, Any], ctx: ToolContext) -> Any:
    return None


def _tool(name: str, *perms: str) -> ToolDefinition:
    return ToolDefinition(name=name, description=name, handler=_noop, required_permissions=perms)


@pytest.mark.parametrize(
    "name,pattern,expected",
    [
        ("crm_get", "crm_*", True),
        ("crm_get", "crm_get", True),
        ("crm_get", "crm", False),
        ("email_send", "*", True),
        ("email_send", "crm_*", False),
    ],
)
def test_matches_pattern(name, pattern, expected) -> None:
    assert matches_pattern(name, pattern) is expected


def test_empty_allow_list_permits_everything_not_denied() -> None:
    assert is_allowed("anything", allowed=[], denied=[])
    assert not is_allowed("crm_delete", allowed=[], denied=["crm_delete"])


def test_deny_wins_over_allow() -> None:
    assert not is_allowed("crm_delete", allowed=["crm_*"], denied=["crm_delete"])
    assert not is_allowed("crm_purge", allowed=["*"], denied=["crm_*"])


def test_allow_list_restricts_tools() -> None:
    assert is_allowed("crm_get", allowed=["crm_*"], denied=[])
    assert not is_allowed("email_send", allowed=["crm_*"], denied=[])


def test_required_permission_tags_are_checked(make_agent) -> None:
    agent = make_agent(allowed_tools=["report_*"], denied_tools=["pii:read"])

    check_tool_permissions(_tool("report_build", "report_data"), agent)
    with pytest.raises(InsufficientPermissions) as exc:
        check_tool_permissions(_tool("report_export", "pii:read"), agent)

    assert exc.value.permission == "pii:read"
    assert str(exc.value) == "Agent lacks permission 'pii:read' required by tool 'report_export'"


def test_filter_tools_preserves_order(make_agent) -> None:
    agent = make_agent(allowed_tools=["crm_*", "echo"], denied_tools=["crm_delete"])
    tools = [_tool("echo"), _tool("crm_delete"), _tool("crm_get"), _tool("web_search")]

    assert [t.name for t in filter_tools(tools, agent)] == ["echo", "crm_get"]
