from __future__ import annotations

"""SQLAlchemy async repository implementations.

This module provides a SQL-backed persistence implementation for the
repository interfaces defined in ``agentflow.agent_core.repos.interfaces``.

Usage
-----

Typical wiring (tests or application setup):

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (for tests/dev).
- Create a session factory with ``create_sessionmaker``.
- Build repository instances with ``build_sql_repos``.

Transaction model
-----------------

Each repository method opens an ``AsyncSession``, performs its operation, and
commits. Compare-and-set transitions (approval resolution, execution status
guards) are single conditional ``UPDATE`` statements so the database decides
the winner under concurrent writers.

Translation
-----------

Rows never leave this module. Each entity has one ``_<entity>_from_row``
function that maps a row into its domain model. SQLite drops timezone
information, so every timestamp passes through ``_as_utc`` on the way out.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..schemas.domain import (
    ActionRecord,
    AgentConfig,
    AgentGoal,
    AgentType,
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
    RiskLevel,
    StepType,
    ToolCallLog,
    ToolCallStatus,
    TriggerContext,
)
from .models import (
    AgentRow,
    ApprovalRow,
    Base,
    ConversationRow,
    EpisodeRow,
    ExecutionRow,
    MemoryRow,
    StepRow,
    ToolCallLogRow,
)


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    The helper normalizes Postgres URLs to ensure the async driver is used.
    For example, it rewrites ``postgresql://`` and other variants to
    ``postgresql+asyncpg://``.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    return create_async_engine(url, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata.

    This is mainly intended for tests and local development.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _jsonable(value: Any) -> Any:
    """Convert nested pydantic models (and their datetimes) into JSON-safe data."""
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _column_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in changes.items():
        if isinstance(value, datetime) or value is None:
            out[key] = value
        elif isinstance(value, (list, dict)) or hasattr(value, "model_dump"):
            out[key] = _jsonable(value)
        else:
            out[key] = _enum_value(value)
    return out


# ---------------------------------------------------------------------------
# Row -> entity translation
# ---------------------------------------------------------------------------


def _agent_from_row(row: AgentRow) -> AgentConfig:
    return AgentConfig(
        id=row.id,
        tenant_id=row.tenant_id,
        name=row.name,
        slug=row.slug,
        description=row.description,
        personality=row.personality,
        agent_type=AgentType(row.agent_type),
        domain=row.domain,
        system_prompt=row.system_prompt,
        goals=[AgentGoal.model_validate(g) for g in row.goals or []],
        constraints=list(row.constraints or []),
        allowed_tools=list(row.allowed_tools or []),
        denied_tools=list(row.denied_tools or []),
        max_steps_per_run=row.max_steps_per_run,
        max_tool_calls_per_step=row.max_tool_calls_per_step,
        max_tokens=row.max_tokens,
        timeout_seconds=row.timeout_seconds,
        max_runs_per_hour=row.max_runs_per_hour,
        max_runs_per_day=row.max_runs_per_day,
        llm_provider=row.llm_provider,
        llm_model=row.llm_model,
        temperature=row.temperature,
        is_active=row.is_active,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _execution_from_row(row: ExecutionRow) -> Execution:
    return Execution(
        id=row.id,
        agent_id=row.agent_id,
        tenant_id=row.tenant_id,
        trigger=TriggerContext.model_validate(row.trigger or {}),
        status=ExecutionStatus(row.status),
        current_step=row.current_step,
        pending_approval_id=row.pending_approval_id,
        tokens_input=row.tokens_input,
        tokens_output=row.tokens_output,
        tokens_total=row.tokens_total,
        llm_calls=row.llm_calls,
        tool_calls=row.tool_calls,
        actions_taken=[ActionRecord.model_validate(a) for a in row.actions_taken or []],
        result=row.result,
        error=row.error,
        started_at=_as_utc(row.started_at),
        completed_at=_as_utc(row.completed_at),
        duration_ms=row.duration_ms,
        created_at=_as_utc(row.created_at),
    )


def _step_from_row(row: StepRow) -> ExecutionStep:
    return ExecutionStep(
        id=row.id,
        execution_id=row.execution_id,
        step_number=row.step_number,
        iteration=row.iteration,
        step_type=StepType(row.step_type),
        input_text=row.input_text,
        reasoning=row.reasoning,
        tool_name=row.tool_name,
        tool_input=row.tool_input,
        tool_output=row.tool_output,
        approval_id=row.approval_id,
        started_at=_as_utc(row.started_at),
        completed_at=_as_utc(row.completed_at),
        duration_ms=row.duration_ms,
        tokens_used=row.tokens_used,
    )


def _tool_log_from_row(row: ToolCallLogRow) -> ToolCallLog:
    return ToolCallLog(
        id=row.id,
        agent_id=row.agent_id,
        execution_id=row.execution_id,
        tool_name=row.tool_name,
        input=dict(row.input or {}),
        output=row.output,
        status=ToolCallStatus(row.status),
        error=row.error,
        started_at=_as_utc(row.started_at),
        completed_at=_as_utc(row.completed_at),
        duration_ms=row.duration_ms,
    )


def _approval_from_row(row: ApprovalRow) -> ApprovalRequest:
    return ApprovalRequest(
        id=row.id,
        execution_id=row.execution_id,
        agent_id=row.agent_id,
        tenant_id=row.tenant_id,
        tool_name=row.tool_name,
        action_description=row.action_description,
        action_params=dict(row.action_params or {}),
        risk_level=RiskLevel(row.risk_level),
        risk_explanation=row.risk_explanation,
        status=ApprovalStatus(row.status),
        resolved_by=row.resolved_by,
        resolved_at=_as_utc(row.resolved_at),
        resolution_note=row.resolution_note,
        expires_at=_as_utc(row.expires_at),
        created_at=_as_utc(row.created_at),
    )


def _memory_from_row(row: MemoryRow) -> Memory:
    return Memory(
        id=row.id,
        agent_id=row.agent_id,
        tenant_id=row.tenant_id,
        memory_type=MemoryType(row.memory_type),
        content=row.content,
        embedding=list(row.embedding) if row.embedding is not None else None,
        confidence=row.confidence,
        importance=row.importance,
        subject_type=row.subject_type,
        subject_id=row.subject_id,
        source=row.source,
        tags=list(row.tags or []),
        access_count=row.access_count,
        last_accessed_at=_as_utc(row.last_accessed_at),
        expires_at=_as_utc(row.expires_at),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _episode_from_row(row: EpisodeRow) -> Episode:
    return Episode(
        id=row.id,
        agent_id=row.agent_id,
        tenant_id=row.tenant_id,
        execution_id=row.execution_id,
        trigger_event=row.trigger_event,
        context_summary=row.context_summary,
        actions_taken=[ActionRecord.model_validate(a) for a in row.actions_taken or []],
        outcome=EpisodeOutcome(row.outcome),
        outcome_details=row.outcome_details,
        lessons_learned=list(row.lessons_learned or []),
        should_repeat=row.should_repeat,
        duration_ms=row.duration_ms,
        tokens_used=row.tokens_used,
        created_at=_as_utc(row.created_at),
    )


def _conversation_from_row(row: ConversationRow) -> Conversation:
    return Conversation(
        id=row.id,
        agent_id=row.agent_id,
        tenant_id=row.tenant_id,
        context_type=ConversationContextType(row.context_type),
        context_id=row.context_id,
        messages=[Message.model_validate(m) for m in row.messages or []],
        message_count=row.message_count,
        tokens_used=row.tokens_used,
        last_message_at=_as_utc(row.last_message_at),
        expires_at=_as_utc(row.expires_at),
        created_at=_as_utc(row.created_at),
    )


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SqlAgentRepository:
    """SQL implementation of ``AgentRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def get(self, agent_id: str) -> Optional[AgentConfig]:
        async with self.session_factory() as s:
            row = await s.get(AgentRow, agent_id)
            return _agent_from_row(row) if row is not None else None

    async def save(self, agent: AgentConfig) -> None:
        """
        Insert or replace an agent configuration.

        Args:
            agent: The configuration snapshot to persist.
        """
        values = {
            "tenant_id": agent.tenant_id,
            "name": agent.name,
            "slug": agent.slug,
            "description": agent.description,
            "personality": agent.personality,
            "agent_type": _enum_value(agent.agent_type),
            "domain": agent.domain,
            "system_prompt": agent.system_prompt,
            "goals": [g.model_dump(mode="json") for g in agent.goals],
            "constraints": list(agent.constraints),
            "allowed_tools": list(agent.allowed_tools),
            "denied_tools": list(agent.denied_tools),
            "max_steps_per_run": agent.max_steps_per_run,
            "max_tool_calls_per_step": agent.max_tool_calls_per_step,
            "max_tokens": agent.max_tokens,
            "timeout_seconds": agent.timeout_seconds,
            "max_runs_per_hour": agent.max_runs_per_hour,
            "max_runs_per_day": agent.max_runs_per_day,
            "llm_provider": agent.llm_provider,
            "llm_model": agent.llm_model,
            "temperature": agent.temperature,
            "is_active": agent.is_active,
            "created_at": agent.created_at,
            "updated_at": agent.updated_at,
        }
        async with self.session_factory() as s:
            row = await s.get(AgentRow, agent.id)
            if row is None:
                s.add(AgentRow(id=agent.id, **values))
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            await s.commit()


@dataclass(frozen=True)
class SqlExecutionRepository:
    """SQL implementation of ``ExecutionRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, execution: Execution) -> None:
        """
        Persist a new execution record.

        Args:
            execution: The execution domain object to insert.
        """
        async with self.session_factory() as s:
            s.add(
                ExecutionRow(
                    id=execution.id,
                    agent_id=execution.agent_id,
                    tenant_id=execution.tenant_id,
                    trigger=execution.trigger.model_dump(mode="json"),
                    status=_enum_value(execution.status),
                    current_step=execution.current_step,
                    pending_approval_id=execution.pending_approval_id,
                    tokens_input=execution.tokens_input,
                    tokens_output=execution.tokens_output,
                    tokens_total=execution.tokens_total,
                    llm_calls=execution.llm_calls,
                    tool_calls=execution.tool_calls,
                    actions_taken=_jsonable(execution.actions_taken),
                    result=_jsonable(execution.result),
                    error=execution.error,
                    started_at=execution.started_at,
                    completed_at=execution.completed_at,
                    duration_ms=execution.duration_ms,
                    created_at=execution.created_at,
                )
            )
            await s.commit()

    async def get(self, execution_id: str) -> Optional[Execution]:
        async with self.session_factory() as s:
            row = await s.get(ExecutionRow, execution_id)
            return _execution_from_row(row) if row is not None else None

    async def update(
        self,
        execution_id: str,
        changes: Dict[str, Any],
        *,
        expected_status: Optional[Iterable[ExecutionStatus]] = None,
    ) -> bool:
        """
        Apply field changes, optionally guarded by the current status.

        Args:
            execution_id: The execution to update.
            changes: Mapping of column name to new value.
            expected_status: Statuses the row must currently hold.

        Returns:
            True if exactly one row was updated.
        """
        stmt = update(ExecutionRow).where(ExecutionRow.id == execution_id)
        if expected_status is not None:
            stmt = stmt.where(ExecutionRow.status.in_([_enum_value(st) for st in expected_status]))
        stmt = stmt.values(**_column_changes(changes))
        async with self.session_factory() as s:
            res = await s.execute(stmt)
            await s.commit()
            return res.rowcount == 1

    async def list(
        self,
        *,
        agent_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100,
    ) -> list[Execution]:
        async with self.session_factory() as s:
            stmt = select(ExecutionRow)
            if agent_id:
                stmt = stmt.where(ExecutionRow.agent_id == agent_id)
            if status is not None:
                stmt = stmt.where(ExecutionRow.status == _enum_value(status))
            stmt = stmt.order_by(ExecutionRow.created_at.desc()).limit(limit)
            result = await s.execute(stmt)
            return [_execution_from_row(row) for row in result.scalars().all()]


@dataclass(frozen=True)
class SqlStepRepository:
    """SQL implementation of ``StepRepository`` (append-only)."""

    session_factory: async_sessionmaker[AsyncSession]

    async def append(self, step: ExecutionStep) -> None:
        async with self.session_factory() as s:
            s.add(
                StepRow(
                    id=step.id,
                    execution_id=step.execution_id,
                    step_number=step.step_number,
                    iteration=step.iteration,
                    step_type=_enum_value(step.step_type),
                    input_text=step.input_text,
                    reasoning=step.reasoning,
                    tool_name=step.tool_name,
                    tool_input=_jsonable(step.tool_input),
                    tool_output=_jsonable(step.tool_output),
                    approval_id=step.approval_id,
                    started_at=step.started_at,
                    completed_at=step.completed_at,
                    duration_ms=step.duration_ms,
                    tokens_used=step.tokens_used,
                )
            )
            await s.commit()

    async def list(self, execution_id: str) -> list[ExecutionStep]:
        async with self.session_factory() as s:
            stmt = select(StepRow).where(StepRow.execution_id == execution_id).order_by(StepRow.step_number.asc())
            result = await s.execute(stmt)
            return [_step_from_row(row) for row in result.scalars().all()]


@dataclass(frozen=True)
class SqlToolCallLogRepository:
    """SQL implementation of ``ToolCallLogRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, log: ToolCallLog) -> None:
        async with self.session_factory() as s:
            s.add(
                ToolCallLogRow(
                    id=log.id,
                    agent_id=log.agent_id,
                    execution_id=log.execution_id,
                    tool_name=log.tool_name,
                    input=_jsonable(log.input),
                    output=_jsonable(log.output),
                    status=_enum_value(log.status),
                    error=log.error,
                    started_at=log.started_at,
                    completed_at=log.completed_at,
                    duration_ms=log.duration_ms,
                )
            )
            await s.commit()

    async def update(self, log_id: str, changes: Dict[str, Any]) -> bool:
        stmt = update(ToolCallLogRow).where(ToolCallLogRow.id == log_id).values(**_column_changes(changes))
        async with self.session_factory() as s:
            res = await s.execute(stmt)
            await s.commit()
            return res.rowcount == 1

    async def list(
        self,
        *,
        agent_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[ToolCallLog]:
        async with self.session_factory() as s:
            stmt = select(ToolCallLogRow)
            if agent_id:
                stmt = stmt.where(ToolCallLogRow.agent_id == agent_id)
            if execution_id:
                stmt = stmt.where(ToolCallLogRow.execution_id == execution_id)
            stmt = stmt.order_by(ToolCallLogRow.started_at.asc()).limit(limit)
            result = await s.execute(stmt)
            return [_tool_log_from_row(row) for row in result.scalars().all()]


@dataclass(frozen=True)
class SqlApprovalRepository:
    """SQL implementation of ``ApprovalRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, approval: ApprovalRequest) -> None:
        async with self.session_factory() as s:
            s.add(
                ApprovalRow(
                    id=approval.id,
                    execution_id=approval.execution_id,
                    agent_id=approval.agent_id,
                    tenant_id=approval.tenant_id,
                    tool_name=approval.tool_name,
                    action_description=approval.action_description,
                    action_params=_jsonable(approval.action_params),
                    risk_level=_enum_value(approval.risk_level),
                    risk_explanation=approval.risk_explanation,
                    status=_enum_value(approval.status),
                    resolved_by=approval.resolved_by,
                    resolved_at=approval.resolved_at,
                    resolution_note=approval.resolution_note,
                    expires_at=approval.expires_at,
                    created_at=approval.created_at,
                )
            )
            await s.commit()

    async def get(self, approval_id: str) -> Optional[ApprovalRequest]:
        async with self.session_factory() as s:
            row = await s.get(ApprovalRow, approval_id)
            return _approval_from_row(row) if row is not None else None

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
        Resolve an approval only while it is still pending.

        The status guard lives in the ``WHERE`` clause so that the first
        committed writer wins and every later writer sees ``rowcount == 0``.
        """
        stmt = (
            update(ApprovalRow)
            .where(ApprovalRow.id == approval_id, ApprovalRow.status == ApprovalStatus.pending.value)
            .values(
                status=_enum_value(status),
                resolved_by=resolved_by,
                resolution_note=resolution_note,
                resolved_at=resolved_at,
            )
        )
        async with self.session_factory() as s:
            res = await s.execute(stmt)
            await s.commit()
            return res.rowcount == 1

    async def list(
        self,
        *,
        status: Optional[ApprovalStatus] = None,
        tenant_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        expires_before: Optional[datetime] = None,
        limit: int = 100,
    ) -> list[ApprovalRequest]:
        async with self.session_factory() as s:
            stmt = select(ApprovalRow)
            if status is not None:
                stmt = stmt.where(ApprovalRow.status == _enum_value(status))
            if tenant_id:
                stmt = stmt.where(ApprovalRow.tenant_id == tenant_id)
            if execution_id:
                stmt = stmt.where(ApprovalRow.execution_id == execution_id)
            if expires_before is not None:
                stmt = stmt.where(ApprovalRow.expires_at <= expires_before)
            stmt = stmt.order_by(ApprovalRow.created_at.asc()).limit(limit)
            result = await s.execute(stmt)
            return [_approval_from_row(row) for row in result.scalars().all()]


@dataclass(frozen=True)
class SqlMemoryRepository:
    """SQL implementation of ``MemoryRepository``.

    Similarity ranking happens in ``MemoryManager``; this layer only filters.
    """

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, memory: Memory) -> None:
        async with self.session_factory() as s:
            s.add(
                MemoryRow(
                    id=memory.id,
                    agent_id=memory.agent_id,
                    tenant_id=memory.tenant_id,
                    memory_type=_enum_value(memory.memory_type),
                    content=memory.content,
                    embedding=list(memory.embedding) if memory.embedding is not None else None,
                    confidence=memory.confidence,
                    importance=memory.importance,
                    subject_type=memory.subject_type,
                    subject_id=memory.subject_id,
                    source=memory.source,
                    tags=list(memory.tags),
                    access_count=memory.access_count,
                    last_accessed_at=memory.last_accessed_at,
                    expires_at=memory.expires_at,
                    created_at=memory.created_at,
                    updated_at=memory.updated_at,
                )
            )
            await s.commit()

    async def get(self, memory_id: str) -> Optional[Memory]:
        async with self.session_factory() as s:
            row = await s.get(MemoryRow, memory_id)
            return _memory_from_row(row) if row is not None else None

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
        async with self.session_factory() as s:
            stmt = select(MemoryRow).where(MemoryRow.agent_id == agent_id)
            if types:
                stmt = stmt.where(MemoryRow.memory_type.in_([_enum_value(t) for t in types]))
            if subject_type is not None:
                stmt = stmt.where(MemoryRow.subject_type == subject_type)
            if subject_id is not None:
                stmt = stmt.where(MemoryRow.subject_id == subject_id)
            if min_confidence is not None:
                stmt = stmt.where(MemoryRow.confidence >= min_confidence)
            if active_at is not None:
                stmt = stmt.where((MemoryRow.expires_at.is_(None)) | (MemoryRow.expires_at > active_at))
            result = await s.execute(stmt)
            return [_memory_from_row(row) for row in result.scalars().all()]

    async def count(self, agent_id: str) -> int:
        async with self.session_factory() as s:
            stmt = select(func.count()).select_from(MemoryRow).where(MemoryRow.agent_id == agent_id)
            return int((await s.execute(stmt)).scalar_one())

    async def update(self, memory_id: str, changes: Dict[str, Any]) -> bool:
        values = _column_changes({**changes, "updated_at": _utc_now()})
        stmt = update(MemoryRow).where(MemoryRow.id == memory_id).values(**values)
        async with self.session_factory() as s:
            res = await s.execute(stmt)
            await s.commit()
            return res.rowcount == 1

    async def touch(self, memory_ids: Sequence[str], *, at: datetime) -> None:
        if not memory_ids:
            return
        stmt = (
            update(MemoryRow)
            .where(MemoryRow.id.in_(list(memory_ids)))
            .values(access_count=MemoryRow.access_count + 1, last_accessed_at=at)
        )
        async with self.session_factory() as s:
            await s.execute(stmt)
            await s.commit()

    async def delete(self, memory_id: str) -> bool:
        async with self.session_factory() as s:
            res = await s.execute(delete(MemoryRow).where(MemoryRow.id == memory_id))
            await s.commit()
            return res.rowcount == 1

    async def delete_stale(
        self,
        agent_id: str,
        *,
        importance_below: int,
        access_count_below: int,
        created_before: datetime,
    ) -> int:
        stmt = delete(MemoryRow).where(
            MemoryRow.agent_id == agent_id,
            MemoryRow.importance < importance_below,
            MemoryRow.access_count < access_count_below,
            MemoryRow.created_at < created_before,
        )
        async with self.session_factory() as s:
            res = await s.execute(stmt)
            await s.commit()
            return int(res.rowcount or 0)

    async def delete_expired(self, agent_id: str, *, now: datetime) -> int:
        stmt = delete(MemoryRow).where(
            MemoryRow.agent_id == agent_id,
            MemoryRow.expires_at.is_not(None),
            MemoryRow.expires_at < now,
        )
        async with self.session_factory() as s:
            res = await s.execute(stmt)
            await s.commit()
            return int(res.rowcount or 0)


@dataclass(frozen=True)
class SqlEpisodeRepository:
    """SQL implementation of ``EpisodeRepository`` (append-only)."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, episode: Episode) -> None:
        async with self.session_factory() as s:
            s.add(
                EpisodeRow(
                    id=episode.id,
                    agent_id=episode.agent_id,
                    tenant_id=episode.tenant_id,
                    execution_id=episode.execution_id,
                    trigger_event=episode.trigger_event,
                    context_summary=episode.context_summary,
                    actions_taken=_jsonable(episode.actions_taken),
                    outcome=_enum_value(episode.outcome),
                    outcome_details=episode.outcome_details,
                    lessons_learned=list(episode.lessons_learned),
                    should_repeat=episode.should_repeat,
                    duration_ms=episode.duration_ms,
                    tokens_used=episode.tokens_used,
                    created_at=episode.created_at,
                )
            )
            await s.commit()

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
        async with self.session_factory() as s:
            stmt = select(EpisodeRow).where(EpisodeRow.agent_id == agent_id)
            if trigger_event is not None:
                stmt = stmt.where(EpisodeRow.trigger_event == trigger_event)
            if outcome is not None:
                stmt = stmt.where(EpisodeRow.outcome == _enum_value(outcome))
            if should_repeat is not None:
                stmt = stmt.where(EpisodeRow.should_repeat == should_repeat)
            if execution_id is not None:
                stmt = stmt.where(EpisodeRow.execution_id == execution_id)
            stmt = stmt.order_by(EpisodeRow.created_at.desc()).limit(limit)
            result = await s.execute(stmt)
            return [_episode_from_row(row) for row in result.scalars().all()]


@dataclass(frozen=True)
class SqlConversationRepository:
    """SQL implementation of ``ConversationRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, conversation: Conversation) -> None:
        async with self.session_factory() as s:
            s.add(
                ConversationRow(
                    id=conversation.id,
                    agent_id=conversation.agent_id,
                    tenant_id=conversation.tenant_id,
                    context_type=_enum_value(conversation.context_type),
                    context_id=conversation.context_id,
                    messages=_jsonable(conversation.messages),
                    message_count=conversation.message_count,
                    tokens_used=conversation.tokens_used,
                    last_message_at=conversation.last_message_at,
                    expires_at=conversation.expires_at,
                    created_at=conversation.created_at,
                )
            )
            await s.commit()

    async def get(self, conversation_id: str) -> Optional[Conversation]:
        async with self.session_factory() as s:
            row = await s.get(ConversationRow, conversation_id)
            return _conversation_from_row(row) if row is not None else None

    async def find(
        self,
        agent_id: str,
        context_type: ConversationContextType,
        context_id: str,
        *,
        active_at: Optional[datetime] = None,
    ) -> Optional[Conversation]:
        async with self.session_factory() as s:
            stmt = select(ConversationRow).where(
                ConversationRow.agent_id == agent_id,
                ConversationRow.context_type == _enum_value(context_type),
                ConversationRow.context_id == context_id,
            )
            if active_at is not None:
                stmt = stmt.where(ConversationRow.expires_at > active_at)
            stmt = stmt.order_by(ConversationRow.created_at.desc()).limit(1)
            row = (await s.execute(stmt)).scalar_one_or_none()
            return _conversation_from_row(row) if row is not None else None

    async def append_message(self, conversation_id: str, message: Message, *, tokens: int) -> bool:
        async with self.session_factory() as s:
            row = await s.get(ConversationRow, conversation_id, with_for_update=True)
            if row is None:
                return False
            # Reassign rather than mutate so the JSON column is flagged dirty.
            row.messages = list(row.messages or []) + [message.model_dump(mode="json")]
            row.message_count = row.message_count + 1
            row.tokens_used = row.tokens_used + tokens
            row.last_message_at = message.created_at
            await s.commit()
            return True

    async def clear(self, conversation_id: str) -> bool:
        stmt = (
            update(ConversationRow)
            .where(ConversationRow.id == conversation_id)
            .values(messages=[], message_count=0, tokens_used=0)
        )
        async with self.session_factory() as s:
            res = await s.execute(stmt)
            await s.commit()
            return res.rowcount == 1


@dataclass(frozen=True)
class SqlRepoBundle:
    """Convenience bundle of all SQL repositories for dependency injection."""

    agents: SqlAgentRepository
    executions: SqlExecutionRepository
    steps: SqlStepRepository
    tool_logs: SqlToolCallLogRepository
    approvals: SqlApprovalRepository
    memories: SqlMemoryRepository
    episodes: SqlEpisodeRepository
    conversations: SqlConversationRepository


def build_sql_repos(*, session_factory: async_sessionmaker[AsyncSession]) -> SqlRepoBundle:
    """Build a ``SqlRepoBundle`` from a session factory."""
    return SqlRepoBundle(
        agents=SqlAgentRepository(session_factory=session_factory),
        executions=SqlExecutionRepository(session_factory=session_factory),
        steps=SqlStepRepository(session_factory=session_factory),
        tool_logs=SqlToolCallLogRepository(session_factory=session_factory),
        approvals=SqlApprovalRepository(session_factory=session_factory),
        memories=SqlMemoryRepository(session_factory=session_factory),
        episodes=SqlEpisodeRepository(session_factory=session_factory),
        conversations=SqlConversationRepository(session_factory=session_factory),
    )
