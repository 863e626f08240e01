"""Error types for the agent runtime.

A small hierarchy of exceptions raised by the executor, dispatcher, approval
gate and providers. Tool-layer errors never escape ``ToolDispatcher.invoke``;
they are converted into failed ``ToolResult`` values carrying the message.
"""

from __future__ import annotations

from typing import Optional


class AgentRuntimeError(Exception):
    """Base error for all agent runtime exceptions."""


class AgentNotFound(AgentRuntimeError):
    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__(f"Agent not found: {agent_id}")


class AgentInactive(AgentRuntimeError):
    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__("Agent is not active")


class ExecutionNotFound(AgentRuntimeError):
    def __init__(self, execution_id: str) -> None:
        self.execution_id = execution_id
        super().__init__(f"Execution not found: {execution_id}")


class UnknownTool(AgentRuntimeError):
    """Raised when a tool name is not present in the registry."""

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class RateLimitExceeded(AgentRuntimeError):
    """Raised when a per-minute or per-hour tool limit is exhausted."""

    def __init__(self, tool_name: str, limit: int, window: str) -> None:
        self.tool_name = tool_name
        self.limit = limit
        self.window = window
        super().__init__(f"Rate limit exceeded: {limit} calls per {window}")


class InvalidInput(AgentRuntimeError):
    """Raised when tool input fails schema validation; ``field`` names the offender."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid input for '{field}': {reason}")


class InsufficientPermissions(AgentRuntimeError):
    def __init__(self, tool_name: str, permission: Optional[str] = None) -> None:
        self.tool_name = tool_name
        self.permission = permission
        if permission is None or permission == tool_name:
            message = f"Agent is not permitted to use tool '{tool_name}'"
        else:
            message = f"Agent lacks permission '{permission}' required by tool '{tool_name}'"
        super().__init__(message)


class ApprovalPending(AgentRuntimeError):
    """Control-flow signal: the action is parked until a human resolves it."""

    def __init__(self, approval_id: str) -> None:
        self.approval_id = approval_id
        super().__init__(f"Approval pending: {approval_id}")


class ApprovalNotFound(AgentRuntimeError):
    def __init__(self, approval_id: str) -> None:
        self.approval_id = approval_id
        super().__init__(f"Approval request not found: {approval_id}")


class AlreadyResolved(AgentRuntimeError):
    def __init__(self, approval_id: str, status: str) -> None:
        self.approval_id = approval_id
        self.status = status
        super().__init__(f"Approval request {approval_id} is already {status}")


class MaxStepsReached(AgentRuntimeError):
    def __init__(self) -> None:
        super().__init__("Max steps reached without completion")


class TimedOut(AgentRuntimeError):
    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Execution timed out after {timeout_seconds:g} seconds")


class TokenBudgetExceeded(AgentRuntimeError):
    def __init__(self, used: int, budget: int) -> None:
        self.used = used
        self.budget = budget
        super().__init__(f"Token budget exhausted: used {used} of {budget}")


class ProviderError(AgentRuntimeError):
    """Wraps failures raised by a completion or embedding backend."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"Provider '{provider}' failed: {message}")


class Cancelled(AgentRuntimeError):
    def __init__(self, execution_id: str) -> None:
        self.execution_id = execution_id
        super().__init__(f"Execution cancelled: {execution_id}")
