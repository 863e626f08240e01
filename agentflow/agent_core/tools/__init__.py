"""Tool definitions, registry, input validation and builtin tools."""

from .base import ToolContext, ToolDefinition, ToolHandler, ToolResult
from .builtin import build_default_registry, builtin_tools
from .registry import ToolRegistry
from .validation import validate_input

__all__ = [
    "ToolContext",
    "ToolDefinition",
    "ToolHandler",
    "ToolResult",
    "ToolRegistry",
    "build_default_registry",
    "builtin_tools",
    "validate_input",
]
