from __future__ import annotations

"""Tool registry.

The registry maps a tool name to its ``ToolDefinition``.

Tools are registered during process start-up and the registry is then frozen;
dispatch only ever reads from it, so concurrent executions can share one
instance without locking.
"""

from typing import Dict, Iterable, List, Optional

from .base import ToolDefinition


class ToolRegistry:
    """
    In-memory mapping of tool names to definitions.

    Notes:
        - ``register`` rejects duplicate names; tool names are globally unique.
        - ``register`` raises once ``freeze`` has been called.
        - ``get`` will raise ``KeyError`` if the tool is missing; ``find``
          returns ``None`` instead.
    """

    def __init__(self, tools: Iterable[ToolDefinition] = ()) -> None:
        self._tools: Dict[str, ToolDefinition] = {}
        self._frozen = False
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        """
        Register a tool definition.

        Args:
            tool: The definition to register.

        Raises:
            RuntimeError: If the registry has been frozen.
            ValueError: If a tool with the same name already exists.
        """
        if self._frozen:
            raise RuntimeError("tool registry is frozen")
        if tool.name in self._tools:
            raise ValueError(f"tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def freeze(self) -> "ToolRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> ToolDefinition:
        return self._tools[name]

    def find(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def list(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
