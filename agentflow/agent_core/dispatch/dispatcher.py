from __future__ import annotations

"""Tool dispatcher.

``ToolDispatcher.invoke`` is the only path by which an agent's tool call
reaches a handler. Each stage is a distinct failure mode:

1. Lookup: unknown names fail without writing a log row.
2. Rate limit: per-minute, then per-hour.
3. Schema validation of the input.
4. Permission check against the agent's allow/deny patterns.
5. Risk assessment; risky calls are parked behind an approval request and
   return a ``pending_approval`` result instead of executing.
6. Execution; handler exceptions become failed results.
7. Audit logging of the attempt in ``ToolCallLog``.

The dispatcher never raises for tool-level problems. Audit log writes are
best effort: a failing log store is reported as a warning and the call still
proceeds.
"""

import logging
import time
from typing import Any, Awaitable, Dict, Optional

from ..approval.gate import ApprovalGate
from ..errors import InsufficientPermissions, InvalidInput, RateLimitExceeded, UnknownTool
from ..policy.permissions import check_tool_permissions
from ..policy.risk import RiskAssessor
from ..repos.interfaces import ToolCallLogRepository
from ..schemas.domain import ToolCallLog, ToolCallStatus, _utc_now
from ..tools.base import ToolContext, ToolResult
from ..tools.registry import ToolRegistry
from ..tools.validation import validate_input
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class ToolDispatcher:
    """Compose registry, limiter, validation, permissions, risk and approvals."""

    def __init__(
        self,
        *,
        registry: ToolRegistry,
        rate_limiter: RateLimiter,
        risk_assessor: RiskAssessor,
        approvals: ApprovalGate,
        tool_logs: ToolCallLogRepository,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            registry: Frozen tool registry.
            rate_limiter: Process-wide limiter shared by all executions.
            risk_assessor: Classifies calls and applies the approval policy.
            approvals: The ``ApprovalGate`` used to park risky calls.
            tool_logs: Audit log store.
        """
        self._registry = registry
        self._limiter = rate_limiter
        self._risk = risk_assessor
        self._approvals = approvals
        self._logs = tool_logs

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def approvals(self) -> ApprovalGate:
        return self._approvals

    async def _audit(self, op: Awaitable[Any], *, tool_name: str) -> None:
        try:
            await op
        except Exception as e:
            logger.warning(f"Tool call log write failed for '{tool_name}': {e}")

    async def invoke(self, tool_name: str, input: Optional[Dict[str, Any]], ctx: ToolContext) -> ToolResult:
        """
        Dispatch one tool call.

        Args:
            tool_name: Registered tool name.
            input: Arguments proposed by the agent.
            ctx: Calling agent and execution context.

        Returns:
            A ``ToolResult``; ``pending_approval`` is set when the call was
            parked behind an approval request.
        """
        start = time.perf_counter()
        tool = self._registry.find(tool_name)
        if tool is None:
            logger.info(f"Rejected unknown tool '{tool_name}' for agent {ctx.agent_id}")
            return ToolResult.fail(str(UnknownTool(tool_name)))

        args: Dict[str, Any] = dict(input or {})
        log = ToolCallLog(
            agent_id=ctx.agent_id,
            execution_id=ctx.execution_id,
            tool_name=tool.name,
            input=args,
        )

        try:
            self._limiter.acquire(
                tool.name,
                ctx.agent_id,
                per_minute=tool.rate_limit_per_minute,
                per_hour=tool.rate_limit_per_hour,
            )
            validate_input(tool.parameters, args)
            check_tool_permissions(tool, ctx.agent)
        except (RateLimitExceeded, InvalidInput, InsufficientPermissions) as e:
            logger.info(f"Denied tool '{tool.name}' for agent {ctx.agent_id}: {e}")
            denied = log.model_copy(
                update={
                    "status": ToolCallStatus.denied,
                    "error": str(e),
                    "completed_at": _utc_now(),
                    "duration_ms": _elapsed_ms(start),
                }
            )
            await self._audit(self._logs.create(denied), tool_name=tool.name)
            return ToolResult.fail(str(e), duration_ms=_elapsed_ms(start))

        assessment = self._risk.assess(tool, args)
        if not ctx.skip_approval:
            decision = self._risk.requires_approval(tool, assessment, ctx.agent)
            if decision.require_approval:
                approval = await self._approvals.request(
                    agent=ctx.agent,
                    execution_id=ctx.execution_id,
                    tool_name=tool.name,
                    description=tool.display_name or tool.description,
                    params=args,
                    risk_level=assessment.level,
                    risk_explanation=f"{assessment.reason}; approval required ({decision.reason})",
                )
                await self._audit(self._logs.create(log), tool_name=tool.name)
                logger.info(
                    f"Tool '{tool.name}' parked for approval {approval.id} (risk={assessment.level.value})"
                )
                return ToolResult.pending(approval.id, assessment.level)

        running = log.model_copy(update={"status": ToolCallStatus.running})
        await self._audit(self._logs.create(running), tool_name=tool.name)

        try:
            data = await tool.handler(args, ctx)
        except Exception as e:
            logger.warning(f"Tool '{tool.name}' raised: {e!r}")
            result = ToolResult.fail(
                str(e) or type(e).__name__, duration_ms=_elapsed_ms(start), risk_level=assessment.level
            )
            status = ToolCallStatus.failed
        else:
            result = ToolResult.ok(data, duration_ms=_elapsed_ms(start), risk_level=assessment.level)
            status = ToolCallStatus.completed

        await self._audit(
            self._logs.update(
                log.id,
                {
                    "status": status,
                    "output": result.data,
                    "error": result.error,
                    "completed_at": _utc_now(),
                    "duration_ms": result.duration_ms,
                },
            ),
            tool_name=tool.name,
        )
        return result
