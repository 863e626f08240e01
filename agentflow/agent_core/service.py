from __future__ import annotations

"""High-level service for agent executions.

``AgentService`` is the trigger-side API: it runs agents, and drives the
approval workflow end to end so callers never have to coordinate the gate and
the executor themselves.

Workflow
--------

- ``run``: execute an agent; the result may be ``waiting_approval``.
- ``approve``: resolve the request, then resume the execution from the record
  store.
- ``deny``: resolve the request (the gate cancels the execution), then resume
  so the cancelled run is finalized and its failure episode recorded.
- ``sweep_expired``: expire stale requests and finalize executions the expiry
  cancelled.
- ``cancel``: cooperative cancellation. A running loop stops before its next
  iteration; a suspended execution is finalized immediately.

``AgentService`` holds no policy logic; it delegates to ``AgentExecutor`` and
``ApprovalGate``.
"""

import logging
from datetime import datetime
from typing import List, Optional

from .approval.gate import ApprovalGate
from .repos.interfaces import ExecutionRepository
from .runtime import AgentExecutor, RunOptions
from .runtime.engine import CANCELLED_ERROR
from .schemas.domain import (
    ApprovalRequest,
    Execution,
    ExecutionResult,
    ExecutionStatus,
    TriggerContext,
)

logger = logging.getLogger(__name__)

_CANCELLABLE = (ExecutionStatus.pending, ExecutionStatus.running, ExecutionStatus.waiting_approval)


class AgentService:
    """Run agents and resolve their approval requests."""

    def __init__(
        self,
        *,
        executor: AgentExecutor,
        gate: ApprovalGate,
        executions: ExecutionRepository,
    ) -> None:
        self._executor = executor
        self._gate = gate
        self._executions = executions

    @property
    def executor(self) -> AgentExecutor:
        return self._executor

    @property
    def gate(self) -> ApprovalGate:
        return self._gate

    async def run(
        self,
        agent_id: str,
        trigger: Optional[TriggerContext] = None,
        options: Optional[RunOptions] = None,
    ) -> ExecutionResult:
        """Execute an agent. Never raises; branch on ``result.success``."""
        return await self._executor.run(agent_id, trigger, options)

    async def resume(self, execution_id: str, options: Optional[RunOptions] = None) -> ExecutionResult:
        return await self._executor.resume(execution_id, options)

    async def get_execution(self, execution_id: str) -> Optional[Execution]:
        return await self._executions.get(execution_id)

    async def list_pending(
        self, *, tenant_id: Optional[str] = None, execution_id: Optional[str] = None
    ) -> List[ApprovalRequest]:
        return await self._gate.list_pending(tenant_id=tenant_id, execution_id=execution_id)

    async def approve(
        self,
        approval_id: str,
        *,
        resolved_by: Optional[str] = None,
        note: Optional[str] = None,
        options: Optional[RunOptions] = None,
    ) -> Optional[ExecutionResult]:
        """
        Approve a request and continue the execution waiting on it.

        Returns:
            The resumed execution's result, or None for requests created
            outside an execution.

        Raises:
            ApprovalNotFound: If the id is unknown.
            AlreadyResolved: If the request is no longer pending.
        """
        approval = await self._gate.approve(approval_id, resolved_by=resolved_by, note=note)
        if approval.execution_id is None:
            return None
        return await self._executor.resume(approval.execution_id, options)

    async def deny(
        self,
        approval_id: str,
        *,
        resolved_by: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Optional[ExecutionResult]:
        """
        Deny a request; the waiting execution ends ``cancelled``.

        Raises:
            ApprovalNotFound: If the id is unknown.
            AlreadyResolved: If the request is no longer pending.
        """
        approval = await self._gate.deny(approval_id, resolved_by=resolved_by, note=note)
        if approval.execution_id is None:
            return None
        return await self._executor.resume(approval.execution_id)

    async def sweep_expired(self, now: Optional[datetime] = None) -> List[ApprovalRequest]:
        """Expire stale approval requests and finalize the executions they cancelled."""
        expired = await self._gate.expire_stale(now)
        for approval in expired:
            if approval.execution_id is None:
                continue
            execution = await self._executions.get(approval.execution_id)
            if execution is not None and execution.status == ExecutionStatus.cancelled:
                await self._executor.resume(execution.id)
        return expired

    async def cancel(self, execution_id: str, *, reason: Optional[str] = None) -> bool:
        """
        Request cancellation of an execution.

        Returns:
            True if the execution was still cancellable.
        """
        execution = await self._executions.get(execution_id)
        if execution is None or execution.status not in _CANCELLABLE:
            return False

        cancelled = await self._executions.update(
            execution_id,
            {"status": ExecutionStatus.cancelled, "error": reason or CANCELLED_ERROR},
            expected_status=[execution.status],
        )
        if not cancelled:
            return False
        logger.info(f"Execution {execution_id} cancelled (was {execution.status.value})")

        # Nothing is looping for suspended or never-started executions; finalize now.
        if execution.status != ExecutionStatus.running:
            await self._executor.resume(execution_id)
        return True
