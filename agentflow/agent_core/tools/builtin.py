from __future__ import annotations

"""Builtin tools.

These are the tools every deployment registers. Tools that touch the outside
world delegate to callables in ``ToolContext.services`` so wiring code (and
tests) decide what actually happens.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from ..schemas.domain import MemoryType
from .base import ToolContext, ToolDefinition
from .registry import ToolRegistry


async def _echo(input: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    return {"echo": input.get("message")}


async def _current_time(input: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    return {"now": datetime.now(timezone.utc).isoformat()}


async def _memory_search(input: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    """Semantic search over the calling agent's long-term memories."""
    memory = ctx.services.get("memory")
    if memory is None:
        raise RuntimeError("memory_search not configured")
    types = [MemoryType(t) for t in input.get("types") or []] or None
    hits = await memory.retrieve(
        ctx.agent_id,
        str(input["query"]),
        limit=int(input.get("limit") or 5),
        types=types,
    )
    return {
        "memories": [
            {"type": h.memory.memory_type.value, "content": h.memory.content, "similarity": round(h.similarity, 4)}
            for h in hits
        ]
    }


async def _memory_store(input: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    """Remember a fact, reinforcing an existing near-duplicate instead of inserting."""
    memory = ctx.services.get("memory")
    if memory is None:
        raise RuntimeError("memory_store not configured")
    stored = await memory.remember(
        ctx.agent_id,
        MemoryType(input.get("memory_type") or MemoryType.fact.value),
        str(input["content"]),
        tenant_id=ctx.tenant_id,
        importance=int(input.get("importance") or 5),
        source=f"execution:{ctx.execution_id}" if ctx.execution_id else "tool",
    )
    return {"memory_id": stored.id}


async def _notify_user(input: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    notifier = ctx.services.get("notify")
    if notifier is None:
        raise RuntimeError("notify_user not configured")
    await notifier(
        user_id=input.get("user_id") or ctx.user_id,
        title=str(input["title"]),
        message=str(input["message"]),
    )
    return {"notified": True}


async def _web_search(input: Dict[str, Any], ctx: ToolContext) -> Any:
    fn = ctx.services.get("web_search")
    if fn is None:
        raise RuntimeError("web_search not configured")
    return await fn(query=str(input["query"]))


def builtin_tools() -> List[ToolDefinition]:
    return [
        ToolDefinition(
            name="echo",
            display_name="Echo",
            description="Return the given message unchanged.",
            category="system",
            handler=_echo,
            parameters={
                "type": "object",
                "properties": {"message": {"type": "string"}},
                "required": ["message"],
            },
        ),
        ToolDefinition(
            name="get_current_time",
            display_name="Current time",
            description="Return the current UTC time in ISO 8601 format.",
            category="system",
            handler=_current_time,
        ),
        ToolDefinition(
            name="memory_search",
            display_name="Search memory",
            description="Search the agent's long-term memory for relevant facts.",
            category="data",
            handler=_memory_search,
            parameters={
                "type": "object",
                "properties": {
                    "query": {"type": "string"},
                    "limit": {"type": "integer"},
                    "types": {"type": "array"},
                },
                "required": ["query"],
            },
            rate_limit_per_minute=30,
        ),
        ToolDefinition(
            name="memory_store",
            display_name="Store memory",
            description="Store a fact, preference or pattern for future runs.",
            category="data",
            handler=_memory_store,
            parameters={
                "type": "object",
                "properties": {
                    "content": {"type": "string"},
                    "memory_type": {"type": "string", "enum": [t.value for t in MemoryType]},
                    "importance": {"type": "integer"},
                },
                "required": ["content"],
            },
            rate_limit_per_minute=20,
        ),
        ToolDefinition(
            name="notify_user",
            display_name="Notify user",
            description="Send an in-app notification to a user.",
            category="communication",
            handler=_notify_user,
            parameters={
                "type": "object",
                "properties": {
                    "user_id": {"type": "string"},
                    "title": {"type": "string"},
                    "message": {"type": "string"},
                },
                "required": ["title", "message"],
            },
            rate_limit_per_minute=10,
            rate_limit_per_hour=100,
        ),
        ToolDefinition(
            name="web_search",
            display_name="Web search",
            description="Search the web and return result snippets.",
            category="data",
            handler=_web_search,
            parameters={
                "type": "object",
                "properties": {"query": {"type": "string"}},
                "required": ["query"],
            },
            rate_limit_per_minute=10,
            rate_limit_per_hour=200,
        ),
    ]


def build_default_registry(*extra: ToolDefinition) -> ToolRegistry:
    """Register builtin tools plus ``extra`` and freeze the registry."""
    registry = ToolRegistry(builtin_tools())
    for tool in extra:
        registry.register(tool)
    return registry.freeze()
