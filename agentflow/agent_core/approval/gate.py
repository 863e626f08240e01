from __future__ import annotations

"""Approval gate.

State machine per request::

    pending -(approve)-> approved
    pending -(deny)----> denied
    pending -(expiry)--> expired

Resolution is a compare-and-set on ``status == pending`` in the record store,
so exactly one resolver wins. The gate only flips execution status flags;
re-driving a suspended execution is the caller's job (see
``AgentService.approve``).

Expiry policy
-------------

A request past ``expires_at`` is expired either by ``expire_stale`` or lazily
when someone tries to resolve it. With ``cancel_on_expiry`` enabled (the
default) the execution still waiting on it is cancelled; otherwise it stays
``waiting_approval`` until an operator intervenes.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import AlreadyResolved, ApprovalNotFound
from ..repos.interfaces import ApprovalRepository, ExecutionRepository
from ..schemas.domain import (
    AgentConfig,
    ApprovalRequest,
    ApprovalStatus,
    ExecutionStatus,
    RiskLevel,
    _utc_now,
)

logger = logging.getLogger(__name__)

DENIED_ERROR = "Action denied by user"
EXPIRED_ERROR = "Approval expired"

Notifier = Callable[[ApprovalRequest], Awaitable[None]]


class ApprovalGate:
    """Create and resolve human approval requests."""

    def __init__(
        self,
        *,
        approvals: ApprovalRepository,
        executions: ExecutionRepository,
        ttl: timedelta = timedelta(hours=24),
        cancel_on_expiry: bool = True,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._approvals = approvals
        self._executions = executions
        self._ttl = ttl
        self._cancel_on_expiry = cancel_on_expiry
        self._notifier = notifier
        self._clock = clock

    async def request(
        self,
        *,
        agent: AgentConfig,
        execution_id: Optional[str],
        tool_name: str,
        description: str,
        params: Dict[str, Any],
        risk_level: RiskLevel,
        risk_explanation: Optional[str] = None,
    ) -> ApprovalRequest:
        """
        Create a pending approval request.

        The expiry is fixed at creation. Notification failures are logged and
        never prevent the request from existing.
        """
        now = self._clock()
        approval = ApprovalRequest(
            execution_id=execution_id,
            agent_id=agent.id,
            tenant_id=agent.tenant_id,
            tool_name=tool_name,
            action_description=description,
            action_params=dict(params),
            risk_level=risk_level,
            risk_explanation=risk_explanation,
            expires_at=now + self._ttl,
            created_at=now,
        )
        await self._approvals.create(approval)
        logger.info(f"Approval {approval.id} requested for '{tool_name}' (execution={execution_id})")

        if self._notifier is not None:
            try:
                await self._notifier(approval)
            except Exception as e:
                logger.warning(f"Approval notification failed for {approval.id}: {e}")
        return approval

    async def get(self, approval_id: str) -> ApprovalRequest:
        approval = await self._approvals.get(approval_id)
        if approval is None:
            raise ApprovalNotFound(approval_id)
        return approval

    async def list_pending(
        self, *, tenant_id: Optional[str] = None, execution_id: Optional[str] = None
    ) -> List[ApprovalRequest]:
        return await self._approvals.list(
            status=ApprovalStatus.pending, tenant_id=tenant_id, execution_id=execution_id
        )

    async def approve(
        self, approval_id: str, *, resolved_by: Optional[str] = None, note: Optional[str] = None
    ) -> ApprovalRequest:
        """
        Approve a pending request.

        The associated execution, if it is ``waiting_approval``, goes back to
        ``running``.

        Raises:
            ApprovalNotFound: If the id is unknown.
            AlreadyResolved: If the request was already approved, denied or
                expired. Prior resolution fields are left untouched.
        """
        approval = await self._resolve(approval_id, ApprovalStatus.approved, resolved_by, note)
        if approval.execution_id:
            await self._executions.update(
                approval.execution_id,
                {"status": ExecutionStatus.running},
                expected_status=[ExecutionStatus.waiting_approval],
            )
        return approval

    async def deny(
        self, approval_id: str, *, resolved_by: Optional[str] = None, note: Optional[str] = None
    ) -> ApprovalRequest:
        """
        Deny a pending request and cancel the execution waiting on it.

        Raises:
            ApprovalNotFound: If the id is unknown.
            AlreadyResolved: If the request is no longer pending.
        """
        approval = await self._resolve(approval_id, ApprovalStatus.denied, resolved_by, note)
        if approval.execution_id:
            await self._executions.update(
                approval.execution_id,
                {"status": ExecutionStatus.cancelled, "error": DENIED_ERROR},
                expected_status=[ExecutionStatus.waiting_approval],
            )
        return approval

    async def expire_stale(self, now: Optional[datetime] = None) -> List[ApprovalRequest]:
        """Expire every pending request whose ``expires_at`` has passed."""
        now = now or self._clock()
        stale = await self._approvals.list(status=ApprovalStatus.pending, expires_before=now, limit=10_000)
        expired: List[ApprovalRequest] = []
        for approval in stale:
            if await self._expire(approval, now):
                expired.append(await self.get(approval.id))
        if expired:
            logger.info(f"Expired {len(expired)} stale approval request(s)")
        return expired

    async def _expire(self, approval: ApprovalRequest, now: datetime) -> bool:
        won = await self._approvals.resolve(
            approval.id,
            status=ApprovalStatus.expired,
            resolved_by=None,
            resolution_note="Expired without resolution",
            resolved_at=now,
        )
        if won and self._cancel_on_expiry and approval.execution_id:
            await self._executions.update(
                approval.execution_id,
                {"status": ExecutionStatus.cancelled, "error": EXPIRED_ERROR},
                expected_status=[ExecutionStatus.waiting_approval],
            )
        return won

    async def _resolve(
        self,
        approval_id: str,
        status: ApprovalStatus,
        resolved_by: Optional[str],
        note: Optional[str],
    ) -> ApprovalRequest:
        approval = await self.get(approval_id)
        now = self._clock()
        if approval.status == ApprovalStatus.pending and approval.is_expired(now):
            await self._expire(approval, now)
            raise AlreadyResolved(approval_id, ApprovalStatus.expired.value)

        won = await self._approvals.resolve(
            approval_id,
            status=status,
            resolved_by=resolved_by,
            resolution_note=note,
            resolved_at=now,
        )
        if not won:
            current = await self.get(approval_id)
            raise AlreadyResolved(approval_id, current.status.value)

        logger.info(f"Approval {approval_id} {status.value} by {resolved_by or 'unknown'}")
        return await self.get(approval_id)
