from __future__ import annotations

"""Repository interface contracts.

The runtime depends on these Protocols instead of concrete persistence
implementations.

Contract guidelines
-------------------

- All methods are async.
- Implementations return strongly typed domain entities; untyped rows never
  leave the repository layer.
- Updating an unknown id is a no-op that reports ``False``.
- Step, tool-call-log and episode stores are append/transition only.
- ``ApprovalRepository.resolve`` and ``ExecutionRepository.update`` with
  ``expected_status`` are compare-and-set operations: exactly one concurrent
  writer wins.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Protocol, Sequence

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
)


class AgentRepository(Protocol):
    """Read agent configuration snapshots."""

    async def get(self, agent_id: str) -> Optional[AgentConfig]:
        """
        Retrieve an agent by its ID.

        Args:
            agent_id: The agent identifier.

        Returns:
            The AgentConfig snapshot if found, else None.
        """
        ...

    async def save(self, agent: AgentConfig) -> None:
        """Insert or replace an agent configuration."""
        ...


class ExecutionRepository(Protocol):
    """Persist and query the lifecycle of an execution."""

    async def create(self, execution: Execution) -> None:
        """
        Create a new execution record.

        Args:
            execution: The initial execution state to persist.
        """
        ...

    async def get(self, execution_id: str) -> Optional[Execution]:
        ...

    async def update(
        self,
        execution_id: str,
        changes: Dict[str, Any],
        *,
        expected_status: Optional[Iterable[ExecutionStatus]] = None,
    ) -> bool:
        """
        Apply field changes to an execution.

        Args:
            execution_id: The execution to update.
            changes: Mapping of field name to new value.
            expected_status: When given, the update only applies if the
                current status is one of these values.

        Returns:
            True if a row was updated.
        """
        ...

    async def list(
        self,
        *,
        agent_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100,
    ) -> list[Execution]:
        """List executions, newest first."""
        ...


class StepRepository(Protocol):
    """Append-only store of execution steps."""

    async def append(self, step: ExecutionStep) -> None:
        ...

    async def list(self, execution_id: str) -> list[ExecutionStep]:
        """Return steps ordered by ``step_number``."""
        ...


class ToolCallLogRepository(Protocol):
    """Audit log of tool dispatch attempts."""

    async def create(self, log: ToolCallLog) -> None:
        ...

    async def update(self, log_id: str, changes: Dict[str, Any]) -> bool:
        ...

    async def list(
        self,
        *,
        agent_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[ToolCallLog]:
        """List logs ordered by ``started_at`` ascending."""
        ...


class ApprovalRepository(Protocol):
    """Persist approval requests and their single resolution."""

    async def create(self, approval: ApprovalRequest) -> None:
        ...

    async def get(self, approval_id: str) -> Optional[ApprovalRequest]:
        ...

    async def resolve(
        self,
        approval_id: str,
        *,
        status: ApprovalStatus,
        resolved_by: Optional[str],
        resolution_note: Optional[str],
        resolved_at: datetime,
    ) -> bool:
        """
        Resolve a request if and only if it is still pending.

        Returns:
            True if this call performed the transition, False if the request
            was missing or already resolved.
        """
        ...

    async def list(
        self,
        *,
        status: Optional[ApprovalStatus] = None,
        tenant_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        expires_before: Optional[datetime] = None,
        limit: int = 100,
    ) -> list[ApprovalRequest]:
        """List approvals ordered by creation time, oldest first."""
        ...


class MemoryRepository(Protocol):
    """Durable long-term memories."""

    async def create(self, memory: Memory) -> None:
        ...

    async def get(self, memory_id: str) -> Optional[Memory]:
        ...

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
        """
        List memories for an agent.

        Args:
            active_at: When set, memories whose ``expires_at`` is at or before
                this instant are excluded.
        """
        ...

    async def count(self, agent_id: str) -> int:
        ...

    async def update(self, memory_id: str, changes: Dict[str, Any]) -> bool:
        ...

    async def touch(self, memory_ids: Sequence[str], *, at: datetime) -> None:
        """Increment ``access_count`` and set ``last_accessed_at`` for each id."""
        ...

    async def delete(self, memory_id: str) -> bool:
        ...

    async def delete_stale(
        self,
        agent_id: str,
        *,
        importance_below: int,
        access_count_below: int,
        created_before: datetime,
    ) -> int:
        """Delete low-value memories matching all three conditions; return the count."""
        ...

    async def delete_expired(self, agent_id: str, *, now: datetime) -> int:
        ...


class EpisodeRepository(Protocol):
    """Append-only episodic log."""

    async def create(self, episode: Episode) -> None:
        ...

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
        """List episodes newest first."""
        ...


class ConversationRepository(Protocol):
    """Short-term conversational memory."""

    async def create(self, conversation: Conversation) -> None:
        ...

    async def get(self, conversation_id: str) -> Optional[Conversation]:
        ...

    async def find(
        self,
        agent_id: str,
        context_type: ConversationContextType,
        context_id: str,
        *,
        active_at: Optional[datetime] = None,
    ) -> Optional[Conversation]:
        """Return the most recent matching conversation that has not expired."""
        ...

    async def append_message(self, conversation_id: str, message: Message, *, tokens: int) -> bool:
        """Append one message, bumping ``message_count``, ``tokens_used`` and ``last_message_at``."""
        ...

    async def clear(self, conversation_id: str) -> bool:
        ...
