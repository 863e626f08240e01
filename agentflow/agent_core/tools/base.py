from __future__ import annotations

"""Tool protocol and execution data models.

A tool is a named, schema-validated capability an agent may invoke.

The dispatcher resolves a tool name through a ``ToolRegistry`` and, after
rate limiting, validation, permission and risk checks, calls the definition's
``handler`` with the validated input and a ``ToolContext``.

Handlers should:

- return JSON-serializable data,
- raise on failure (the dispatcher converts the exception into a failed
  ``ToolResult``),
- never perform permission or approval decisions themselves.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Optional, Protocol, Tuple

from ..schemas.domain import AgentConfig, RiskLevel


@dataclass(frozen=True)
class ToolContext:
    """Execution context passed to tool handlers.

    Attributes
    ----------
    agent:
        The agent configuration snapshot of the calling run.
    execution_id:
        The execution the call belongs to, if any. Builder consoles dispatch
        without an execution.
    user_id:
        The human on whose behalf the run was triggered, if known.
    skip_approval:
        When true the dispatcher bypasses the approval gate. Used when
        replaying an already approved action on resume.
    services:
        Free-form collaborators (memory manager, notifier) that builtin tools
        delegate to.
    """

    agent: AgentConfig
    execution_id: Optional[str] = None
    user_id: Optional[str] = None
    skip_approval: bool = False
    services: Dict[str, Any] = field(default_factory=dict)

    @property
    def agent_id(self) -> str:
        return self.agent.id

    @property
    def tenant_id(self) -> Optional[str]:
        return self.agent.tenant_id


class ToolHandler(Protocol):
    def __call__(self, input: Dict[str, Any], ctx: ToolContext) -> Awaitable[Any]:
        ...


@dataclass(frozen=True)
class ToolDefinition:
    """Registered description of a tool.

    ``parameters`` is a JSON-schema-like object with ``properties`` and an
    optional ``required`` list. ``required_permissions`` are extra tags that
    must be allowed by the agent's tool patterns in addition to the tool name.
    """

    name: str
    description: str
    handler: ToolHandler
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    display_name: Optional[str] = None
    category: str = "system"
    is_dangerous: bool = False
    rate_limit_per_minute: Optional[int] = None
    rate_limit_per_hour: Optional[int] = None
    required_permissions: Tuple[str, ...] = ()
    risk_level: Optional[RiskLevel] = None

    def to_openai_tool(self) -> Dict[str, Any]:
        """Render the definition in the function-calling catalog format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(frozen=True)
class ToolResult:
    """Structured dispatch outcome.

    ``pending_approval`` marks the distinguished result returned when the
    action was parked behind an approval request instead of executing.
    """

    success: bool
    data: Any = None
    error: Optional[str] = None
    pending_approval: bool = False
    approval_id: Optional[str] = None
    risk_level: Optional[RiskLevel] = None
    duration_ms: int = 0

    @classmethod
    def ok(cls, data: Any, *, duration_ms: int = 0, risk_level: Optional[RiskLevel] = None) -> "ToolResult":
        return cls(success=True, data=data, duration_ms=duration_ms, risk_level=risk_level)

    @classmethod
    def fail(cls, error: str, *, duration_ms: int = 0, risk_level: Optional[RiskLevel] = None) -> "ToolResult":
        return cls(success=False, error=error, duration_ms=duration_ms, risk_level=risk_level)

    @classmethod
    def pending(cls, approval_id: str, risk_level: RiskLevel) -> "ToolResult":
        return cls(
            success=False,
            error="Action requires approval",
            pending_approval=True,
            approval_id=approval_id,
            risk_level=risk_level,
        )
