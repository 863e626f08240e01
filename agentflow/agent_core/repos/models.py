from __future__ import annotations

"""SQLAlchemy ORM models for agent runtime persistence.

These ORM models define the SQL schema used by the SQL repository
implementation in ``agentflow.agent_core.repos.sql``.

Design
------

- Agents hold the configuration snapshot loaded at run start.
- Executions store coarse run state plus the loop cursor needed to resume.
- Steps, tool call logs and episodes are append-only timelines.
- Approvals carry a single resolution guarded by a conditional update.
- Memories store their embedding as a JSON array; similarity is computed in
  the memory subsystem.

JSON columns use ``JSONB`` on Postgres and plain ``JSON`` elsewhere. Table
names are prefixed with ``af_`` to avoid collisions in shared databases.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class AgentRow(Base):
    """Row model for ``af_agents``.

    Goals, constraints and tool patterns are stored as JSON arrays.
    """

    __tablename__ = "af_agents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(255), default="")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    personality: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    agent_type: Mapped[str] = mapped_column(String(32))
    domain: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    system_prompt: Mapped[str] = mapped_column(Text, default="")
    goals: Mapped[List[Dict[str, Any]]] = mapped_column(JsonType, default=list)
    constraints: Mapped[List[str]] = mapped_column(JsonType, default=list)
    allowed_tools: Mapped[List[str]] = mapped_column(JsonType, default=list)
    denied_tools: Mapped[List[str]] = mapped_column(JsonType, default=list)

    max_steps_per_run: Mapped[int] = mapped_column(Integer)
    max_tool_calls_per_step: Mapped[int] = mapped_column(Integer)
    max_tokens: Mapped[int] = mapped_column(Integer)
    timeout_seconds: Mapped[int] = mapped_column(Integer)
    max_runs_per_hour: Mapped[int] = mapped_column(Integer)
    max_runs_per_day: Mapped[int] = mapped_column(Integer)

    llm_provider: Mapped[str] = mapped_column(String(64))
    llm_model: Mapped[str] = mapped_column(String(128))
    temperature: Mapped[float] = mapped_column(Float)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ExecutionRow(Base):
    """Row model for ``af_executions``.

    ``current_step`` and ``pending_approval_id`` form the resume cursor.
    """

    __tablename__ = "af_executions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    agent_id: Mapped[str] = mapped_column(String(64), index=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    trigger: Mapped[Dict[str, Any]] = mapped_column(JsonType, default=dict)
    status: Mapped[str] = mapped_column(String(32), index=True)

    current_step: Mapped[int] = mapped_column(Integer, default=0)
    pending_approval_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    tokens_input: Mapped[int] = mapped_column(Integer, default=0)
    tokens_output: Mapped[int] = mapped_column(Integer, default=0)
    tokens_total: Mapped[int] = mapped_column(Integer, default=0)
    llm_calls: Mapped[int] = mapped_column(Integer, default=0)
    tool_calls: Mapped[int] = mapped_column(Integer, default=0)
    actions_taken: Mapped[List[Dict[str, Any]]] = mapped_column(JsonType, default=list)

    result: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonType, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class StepRow(Base):
    """Row model for ``af_execution_steps`` (append-only)."""

    __tablename__ = "af_execution_steps"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    execution_id: Mapped[str] = mapped_column(String(64), index=True)
    step_number: Mapped[int] = mapped_column(Integer)
    iteration: Mapped[int] = mapped_column(Integer, default=0)
    step_type: Mapped[str] = mapped_column(String(16))
    input_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tool_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    tool_input: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonType, nullable=True)
    tool_output: Mapped[Optional[Any]] = mapped_column(JsonType, nullable=True)
    approval_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0)
    tokens_used: Mapped[int] = mapped_column(Integer, default=0)


class ToolCallLogRow(Base):
    """Row model for ``af_tool_call_logs``."""

    __tablename__ = "af_tool_call_logs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    agent_id: Mapped[str] = mapped_column(String(64), index=True)
    execution_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    tool_name: Mapped[str] = mapped_column(String(128))
    input: Mapped[Dict[str, Any]] = mapped_column(JsonType, default=dict)
    output: Mapped[Optional[Any]] = mapped_column(JsonType, nullable=True)
    status: Mapped[str] = mapped_column(String(16))
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class ApprovalRow(Base):
    """Row model for ``af_approvals``."""

    __tablename__ = "af_approvals"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    execution_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    agent_id: Mapped[str] = mapped_column(String(64))
    tenant_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    tool_name: Mapped[str] = mapped_column(String(128))
    action_description: Mapped[str] = mapped_column(Text, default="")
    action_params: Mapped[Dict[str, Any]] = mapped_column(JsonType, default=dict)
    risk_level: Mapped[str] = mapped_column(String(16))
    risk_explanation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), index=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class MemoryRow(Base):
    """Row model for ``af_memories``."""

    __tablename__ = "af_memories"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    agent_id: Mapped[str] = mapped_column(String(64), index=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    memory_type: Mapped[str] = mapped_column(String(32))
    content: Mapped[str] = mapped_column(Text)
    embedding: Mapped[Optional[List[float]]] = mapped_column(JsonType, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, default=0.8)
    importance: Mapped[int] = mapped_column(Integer, default=5)
    subject_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    subject_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    source: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    tags: Mapped[List[str]] = mapped_column(JsonType, default=list)
    access_count: Mapped[int] = mapped_column(Integer, default=0)
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class EpisodeRow(Base):
    """Row model for ``af_episodes`` (append-only)."""

    __tablename__ = "af_episodes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    agent_id: Mapped[str] = mapped_column(String(64), index=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    execution_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    trigger_event: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    context_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actions_taken: Mapped[List[Dict[str, Any]]] = mapped_column(JsonType, default=list)
    outcome: Mapped[str] = mapped_column(String(16))
    outcome_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    lessons_learned: Mapped[List[str]] = mapped_column(JsonType, default=list)
    should_repeat: Mapped[bool] = mapped_column(Boolean, default=False)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tokens_used: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ConversationRow(Base):
    """Row model for ``af_conversations``.

    Messages are kept inline as a JSON array in append order.
    """

    __tablename__ = "af_conversations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    agent_id: Mapped[str] = mapped_column(String(64), index=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    context_type: Mapped[str] = mapped_column(String(16))
    context_id: Mapped[str] = mapped_column(String(128))
    messages: Mapped[List[Dict[str, Any]]] = mapped_column(JsonType, default=list)
    message_count: Mapped[int] = mapped_column(Integer, default=0)
    tokens_used: Mapped[int] = mapped_column(Integer, default=0)
    last_message_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
