"""Agent execution runtime: executor, tool dispatch, approvals and memory.

Design overview
---------------

An agent is a declarative ``AgentConfig`` (goals, constraints, allowed tools,
a completion backend). ``runtime.AgentExecutor`` pursues a trigger with a
Reason-Act-Observe loop:

- think: the completion provider proposes the next decision;
- act: ``dispatch.ToolDispatcher`` runs the tool after rate limiting, input
  validation, permission checks and risk assessment. Risky calls are parked
  behind ``approval.ApprovalGate`` and the execution is suspended;
- observe: the tool outcome is appended to the conversation.

Every run ends with an ``Episode`` recorded by ``memory.MemoryManager``.

Typical usage
-------------

Most applications use ``service.AgentService``, built with
``factory.build_service``:

1. ``service.run(agent_id, trigger)``.
2. If the result is ``waiting_approval``, call ``service.approve`` or
   ``service.deny`` with the returned ``approval_id``.
"""

from .errors import AgentRuntimeError
from .factory import build_in_memory_service, build_service
from .runtime import AgentExecutor, ExecutorDeps, RunOptions
from .schemas.domain import (
    AgentConfig,
    AgentGoal,
    ApprovalRequest,
    ExecutionResult,
    ExecutionStatus,
    RiskLevel,
    TriggerContext,
    TriggerType,
)
from .service import AgentService

__all__ = [
    "AgentConfig",
    "AgentExecutor",
    "AgentGoal",
    "AgentRuntimeError",
    "AgentService",
    "ApprovalRequest",
    "ExecutionResult",
    "ExecutionStatus",
    "ExecutorDeps",
    "RiskLevel",
    "RunOptions",
    "TriggerContext",
    "TriggerType",
    "build_in_memory_service",
    "build_service",
]
