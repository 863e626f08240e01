from __future__ import annotations

"""In-process repository implementations.

These implement the Protocols in ``repos.interfaces`` with plain dicts. They
are used by unit tests, by local development wiring and by the builder test
console where no database is available.

Every read returns a deep copy so callers can never mutate stored state
behind the repository's back. None of the methods await while holding
intermediate state, so compare-and-set operations are atomic on a single
event loop.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..schemas.domain import (
    AgentConfig,
    ApprovalRequest,
    ApprovalStatus,
    Conversation,
    ConversationContextType,
    Episode,
    EpisodeOutcome,
    Execution,
    ExecutionStatus,
    ExecutionStep,
    Memory,
    MemoryType,
    Message,
    ToolCallLog,
    _utc_now,
)


def _apply(entity, changes: Dict[str, Any]):
    data = entity.model_dump()
    data.update(changes)
    return type(entity).model_validate(data)


class InMemoryAgentRepository:
    def __init__(self, agents: Iterable[AgentConfig] = ()) -> None:
        self._by_id: Dict[str, AgentConfig] = {a.id: a for a in agents}

    async def get(self, agent_id: str) -> Optional[AgentConfig]:
        # AgentConfig is frozen; no copy needed.
        return self._by_id.get(agent_id)

    async def save(self, agent: AgentConfig) -> None:
        self._by_id[agent.id] = agent


class InMemoryExecutionRepository:
    def __init__(self) -> None:
        self._by_id: Dict[str, Execution] = {}

    async def create(self, execution: Execution) -> None:
        self._by_id[execution.id] = execution.model_copy(deep=True)

    async def get(self, execution_id: str) -> Optional[Execution]:
        execution = self._by_id.get(execution_id)
        return execution.model_copy(deep=True) if execution is not None else None

    async def update(
        self,
        execution_id: str,
        changes: Dict[str, Any],
        *,
        expected_status: Optional[Iterable[ExecutionStatus]] = None,
    ) -> bool:
        execution = self._by_id.get(execution_id)
        if execution is None:
            return False
        if expected_status is not None and execution.status not in set(expected_status):
            return False
        self._by_id[execution_id] = _apply(execution, changes)
        return True

    async def list(
        self,
        *,
        agent_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100,
    ) -> list[Execution]:
        rows = [
            e
            for e in self._by_id.values()
            if (agent_id is None or e.agent_id == agent_id) and (status is None or e.status == status)
        ]
        rows.sort(key=lambda e: e.created_at, reverse=True)
        return [e.model_copy(deep=True) for e in rows[:limit]]


class InMemoryStepRepository:
    def __init__(self) -> None:
        self._by_execution: Dict[str, List[ExecutionStep]] = {}

    async def append(self, step: ExecutionStep) -> None:
        self._by_execution.setdefault(step.execution_id, []).append(step.model_copy(deep=True))

    async def list(self, execution_id: str) -> list[ExecutionStep]:
        steps = sorted(self._by_execution.get(execution_id, []), key=lambda s: s.step_number)
        return [s.model_copy(deep=True) for s in steps]


class InMemoryToolCallLogRepository:
    def __init__(self) -> None:
        self._by_id: Dict[str, ToolCallLog] = {}

    async def create(self, log: ToolCallLog) -> None:
        self._by_id[log.id] = log.model_copy(deep=True)

    async def update(self, log_id: str, changes: Dict[str, Any]) -> bool:
        log = self._by_id.get(log_id)
        if log is None:
            return False
        self._by_id[log_id] = _apply(log, changes)
        return True

    async def list(
        self,
        *,
        agent_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[ToolCallLog]:
        rows = [
            log
            for log in self._by_id.values()
            if (agent_id is None or log.agent_id == agent_id)
            and (execution_id is None or log.execution_id == execution_id)
        ]
        rows.sort(key=lambda log: log.started_at)
        return [log.model_copy(deep=True) for log in rows[:limit]]


class InMemoryApprovalRepository:
    def __init__(self) -> None:
        self._by_id: Dict[str, ApprovalRequest] = {}

    async def create(self, approval: ApprovalRequest) -> None:
        self._by_id[approval.id] = approval.model_copy(deep=True)

    async def get(self, approval_id: str) -> Optional[ApprovalRequest]:
        approval = self._by_id.get(approval_id)
        return approval.model_copy(deep=True) if approval is not None else None

    async def resolve(
        self,
        approval_id: str,
        *,
        status: ApprovalStatus,
        resolved_by: Optional[str],
        resolution_note: Optional[str],
        resolved_at: datetime,
    ) -> bool:
        approval = self._by_id.get(approval_id)
        if approval is None or approval.status != ApprovalStatus.pending:
            return False
        self._by_id[approval_id] = _apply(
            approval,
            {
                "status": status,
                "resolved_by": resolved_by,
                "resolution_note": resolution_note,
                "resolved_at": resolved_at,
            },
        )
        return True

    async def list(
        self,
        *,
        status: Optional[ApprovalStatus] = None,
        tenant_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        expires_before: Optional[datetime] = None,
        limit: int = 100,
    ) -> list[ApprovalRequest]:
        rows = [
            a
            for a in self._by_id.values()
            if (status is None or a.status == status)
            and (tenant_id is None or a.tenant_id == tenant_id)
            and (execution_id is None or a.execution_id == execution_id)
            and (expires_before is None or a.expires_at <= expires_before)
        ]
        rows.sort(key=lambda a: a.created_at)
        return [a.model_copy(deep=True) for a in rows[:limit]]


class InMemoryMemoryRepository:
    def __init__(self) -> None:
        self._by_id: Dict[str, Memory] = {}

    async def create(self, memory: Memory) -> None:
        self._by_id[memory.id] = memory.model_copy(deep=True)

    async def get(self, memory_id: str) -> Optional[Memory]:
        memory = self._by_id.get(memory_id)
        return memory.model_copy(deep=True) if memory is not None else None

    async def list(
        self,
        agent_id: str,
        *,
        types: Optional[Sequence[MemoryType]] = None,
        subject_type: Optional[str] = None,
        subject_id: Optional[str] = None,
        min_confidence: Optional[float] = None,
        active_at: Optional[datetime] = None,
    ) -> list[Memory]:
        wanted = set(types) if types else None
        rows = []
        for m in self._by_id.values():
            if m.agent_id != agent_id:
                continue
            if wanted is not None and m.memory_type not in wanted:
                continue
            if subject_type is not None and m.subject_type != subject_type:
                continue
            if subject_id is not None and m.subject_id != subject_id:
                continue
            if min_confidence is not None and m.confidence < min_confidence:
                continue
            if active_at is not None and m.expires_at is not None and m.expires_at <= active_at:
                continue
            rows.append(m.model_copy(deep=True))
        return rows

    async def count(self, agent_id: str) -> int:
        return sum(1 for m in self._by_id.values() if m.agent_id == agent_id)

    async def update(self, memory_id: str, changes: Dict[str, Any]) -> bool:
        memory = self._by_id.get(memory_id)
        if memory is None:
            return False
        self._by_id[memory_id] = _apply(memory, {**changes, "updated_at": _utc_now()})
        return True

    async def touch(self, memory_ids: Sequence[str], *, at: datetime) -> None:
        for memory_id in memory_ids:
            memory = self._by_id.get(memory_id)
            if memory is not None:
                self._by_id[memory_id] = _apply(
                    memory, {"access_count": memory.access_count + 1, "last_accessed_at": at}
                )

    async def delete(self, memory_id: str) -> bool:
        return self._by_id.pop(memory_id, None) is not None

    async def delete_stale(
        self,
        agent_id: str,
        *,
        importance_below: int,
        access_count_below: int,
        created_before: datetime,
    ) -> int:
        doomed = [
            m.id
            for m in self._by_id.values()
            if m.agent_id == agent_id
            and m.importance < importance_below
            and m.access_count < access_count_below
            and m.created_at < created_before
        ]
        for memory_id in doomed:
            del self._by_id[memory_id]
        return len(doomed)

    async def delete_expired(self, agent_id: str, *, now: datetime) -> int:
        doomed = [
            m.id
            for m in self._by_id.values()
            if m.agent_id == agent_id and m.expires_at is not None and m.expires_at < now
        ]
        for memory_id in doomed:
            del self._by_id[memory_id]
        return len(doomed)


class InMemoryEpisodeRepository:
    def __init__(self) -> None:
        self._rows: List[Episode] = []

    async def create(self, episode: Episode) -> None:
        self._rows.append(episode.model_copy(deep=True))

    async def list(
        self,
        agent_id: str,
        *,
        trigger_event: Optional[str] = None,
        outcome: Optional[EpisodeOutcome] = None,
        should_repeat: Optional[bool] = None,
        execution_id: Optional[str] = None,
        limit: int = 10,
    ) -> list[Episode]:
        rows = [
            e
            for e in self._rows
            if e.agent_id == agent_id
            and (trigger_event is None or e.trigger_event == trigger_event)
            and (outcome is None or e.outcome == outcome)
            and (should_repeat is None or e.should_repeat == should_repeat)
            and (execution_id is None or e.execution_id == execution_id)
        ]
        rows.sort(key=lambda e: e.created_at, reverse=True)
        return [e.model_copy(deep=True) for e in rows[:limit]]


class InMemoryConversationRepository:
    def __init__(self) -> None:
        self._by_id: Dict[str, Conversation] = {}

    async def create(self, conversation: Conversation) -> None:
        self._by_id[conversation.id] = conversation.model_copy(deep=True)

    async def get(self, conversation_id: str) -> Optional[Conversation]:
        conversation = self._by_id.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation is not None else None

    async def find(
        self,
        agent_id: str,
        context_type: ConversationContextType,
        context_id: str,
        *,
        active_at: Optional[datetime] = None,
    ) -> Optional[Conversation]:
        matches = [
            c
            for c in self._by_id.values()
            if c.agent_id == agent_id
            and c.context_type == context_type
            and c.context_id == context_id
            and (active_at is None or c.expires_at > active_at)
        ]
        if not matches:
            return None
        return max(matches, key=lambda c: c.created_at).model_copy(deep=True)

    async def append_message(self, conversation_id: str, message: Message, *, tokens: int) -> bool:
        conversation = self._by_id.get(conversation_id)
        if conversation is None:
            return False
        conversation.messages.append(message.model_copy(deep=True))
        conversation.message_count += 1
        conversation.tokens_used += tokens
        conversation.last_message_at = message.created_at
        return True

    async def clear(self, conversation_id: str) -> bool:
        conversation = self._by_id.get(conversation_id)
        if conversation is None:
            return False
        conversation.messages = []
        conversation.message_count = 0
        conversation.tokens_used = 0
        return True


@dataclass(frozen=True)
class InMemoryRepoBundle:
    """Bundle of in-process repositories, mirroring ``SqlRepoBundle``."""

    agents: InMemoryAgentRepository = field(default_factory=InMemoryAgentRepository)
    executions: InMemoryExecutionRepository = field(default_factory=InMemoryExecutionRepository)
    steps: InMemoryStepRepository = field(default_factory=InMemoryStepRepository)
    tool_logs: InMemoryToolCallLogRepository = field(default_factory=InMemoryToolCallLogRepository)
    approvals: InMemoryApprovalRepository = field(default_factory=InMemoryApprovalRepository)
    memories: InMemoryMemoryRepository = field(default_factory=InMemoryMemoryRepository)
    episodes: InMemoryEpisodeRepository = field(default_factory=InMemoryEpisodeRepository)
    conversations: InMemoryConversationRepository = field(default_factory=InMemoryConversationRepository)
