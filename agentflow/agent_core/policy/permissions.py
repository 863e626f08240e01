"""Tool permission checks against an agent's allow/deny patterns.

Patterns are exact tool names or a prefix followed by ``*`` (``crm_*``).
A deny match always wins. An empty allow-list permits every tool that is not
denied.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence

from ..errors import InsufficientPermissions
from ..schemas.domain import AgentConfig
from ..tools.base import ToolDefinition


def matches_pattern(name: str, pattern: str) -> bool:
    if pattern == "*":
        return True
    if pattern.endswith("*"):
        return name.startswith(pattern[:-1])
    return name == pattern


def _matches_any(name: str, patterns: Iterable[str]) -> bool:
    return any(matches_pattern(name, p) for p in patterns)


def is_allowed(name: str, *, allowed: Sequence[str], denied: Sequence[str]) -> bool:
    """Return whether ``name`` passes the allow/deny patterns."""
    if _matches_any(name, denied):
        return False
    if not allowed:
        return True
    return _matches_any(name, allowed)


def check_tool_permissions(tool: ToolDefinition, agent: AgentConfig) -> None:
    """
    Ensure the agent may invoke ``tool``.

    The tool name and every required permission tag must pass the agent's
    patterns.

    Raises:
        InsufficientPermissions: On the first name or tag that is not allowed.
    """
    for tag in (tool.name, *tool.required_permissions):
        if not is_allowed(tag, allowed=agent.allowed_tools, denied=agent.denied_tools):
            raise InsufficientPermissions(tool.name, tag)


def filter_tools(tools: Iterable[ToolDefinition], agent: AgentConfig) -> List[ToolDefinition]:
    """Return the subset of ``tools`` the agent may invoke, preserving order."""
    out: List[ToolDefinition] = []
    for tool in tools:
        try:
            check_tool_permissions(tool, agent)
        except InsufficientPermissions:
            continue
        out.append(tool)
    return out
