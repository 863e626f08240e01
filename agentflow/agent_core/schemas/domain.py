from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import Field

from .base import BaseSchema, FrozenSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class AgentType(str, Enum):
    assistant = "assistant"
    specialist = "specialist"
    orchestrator = "orchestrator"
    analyst = "analyst"
    guardian = "guardian"


class GoalComparison(str, Enum):
    gt = "gt"
    gte = "gte"
    lt = "lt"
    lte = "lte"
    eq = "eq"


class TriggerType(str, Enum):
    manual = "manual"
    schedule = "schedule"
    event = "event"
    webhook = "webhook"


class ExecutionStatus(str, Enum):
    pending = "pending"
    running = "running"
    waiting_approval = "waiting_approval"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"
    timed_out = "timed_out"


TERMINAL_EXECUTION_STATUSES = frozenset(
    {
        ExecutionStatus.completed,
        ExecutionStatus.failed,
        ExecutionStatus.cancelled,
        ExecutionStatus.timed_out,
    }
)


class StepType(str, Enum):
    observe = "observe"
    think = "think"
    act = "act"


class ToolCallStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"
    denied = "denied"


class RiskLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class ApprovalStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    denied = "denied"
    expired = "expired"


class MemoryType(str, Enum):
    fact = "fact"
    preference = "preference"
    pattern = "pattern"
    relationship = "relationship"
    outcome = "outcome"


class EpisodeOutcome(str, Enum):
    success = "success"
    partial = "partial"
    failure = "failure"


class MessageRole(str, Enum):
    system = "system"
    user = "user"
    assistant = "assistant"
    tool = "tool"


class ConversationContextType(str, Enum):
    entity = "entity"
    user = "user"
    session = "session"


class DecisionAction(str, Enum):
    use_tool = "use_tool"
    finish = "finish"


# ---------------------------------------------------------------------------
# Agent configuration
# ---------------------------------------------------------------------------


class AgentGoal(FrozenSchema):
    name: str
    description: str = ""
    priority: int = Field(default=5, ge=1, le=10)
    success_metric: Optional[str] = None
    target_value: Optional[float] = None
    comparison: Optional[GoalComparison] = None


class AgentConfig(FrozenSchema):
    """Snapshot of an agent's policy.

    The executor loads one snapshot per run and never re-reads it, so edits to
    the stored agent only affect later runs.
    """

    id: str = Field(default_factory=_new_id)
    tenant_id: Optional[str] = None
    name: str
    slug: str = ""
    description: Optional[str] = None
    personality: Optional[str] = None
    agent_type: AgentType = AgentType.assistant
    domain: Optional[str] = None

    system_prompt: str = ""
    goals: List[AgentGoal] = Field(default_factory=list)
    constraints: List[str] = Field(default_factory=list)

    allowed_tools: List[str] = Field(default_factory=list)
    denied_tools: List[str] = Field(default_factory=list)

    max_steps_per_run: int = Field(default=10, ge=1)
    max_tool_calls_per_step: int = Field(default=3, ge=1)
    max_tokens: int = Field(default=4096, ge=1)
    timeout_seconds: int = Field(default=120, ge=1)
    max_runs_per_hour: int = Field(default=60, ge=0)
    max_runs_per_day: int = Field(default=500, ge=0)

    llm_provider: str = "openai"
    llm_model: str = "gpt-4o"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    is_active: bool = True
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    def ranked_goals(self) -> List[AgentGoal]:
        """Goals ordered by priority, highest first; ties keep declaration order."""
        return sorted(self.goals, key=lambda g: -g.priority)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class TriggerContext(BaseSchema):
    type: TriggerType = TriggerType.manual
    event_type: Optional[str] = None
    event_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class ExecutionContext(BaseSchema):
    execution_id: str
    tenant_id: Optional[str] = None
    agent_id: str
    trigger: TriggerContext
    summary: str = ""
    entities: Dict[str, Any] = Field(default_factory=dict)
    variables: Dict[str, Any] = Field(default_factory=dict)


class ActionRecord(BaseSchema):
    tool: str
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    success: bool
    timestamp: datetime = Field(default_factory=_utc_now)


class Execution(BaseSchema):
    """Persisted state of one run.

    ``current_step`` is the loop iteration the run continues from, which is
    what makes a suspended run resumable from a fresh process.
    """

    id: str = Field(default_factory=_new_id)
    agent_id: str
    tenant_id: Optional[str] = None
    trigger: TriggerContext = Field(default_factory=TriggerContext)
    status: ExecutionStatus = ExecutionStatus.pending

    current_step: int = 0
    pending_approval_id: Optional[str] = None

    tokens_input: int = 0
    tokens_output: int = 0
    tokens_total: int = 0
    llm_calls: int = 0
    tool_calls: int = 0
    actions_taken: List[ActionRecord] = Field(default_factory=list)

    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    created_at: datetime = Field(default_factory=_utc_now)


class ExecutionStep(BaseSchema):
    id: str = Field(default_factory=_new_id)
    execution_id: str
    step_number: int = Field(ge=0)
    iteration: int = Field(default=0, ge=0)
    step_type: StepType
    input_text: Optional[str] = None
    reasoning: Optional[str] = None
    tool_name: Optional[str] = None
    tool_input: Optional[Dict[str, Any]] = None
    tool_output: Any = None
    approval_id: Optional[str] = None
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: Optional[datetime] = None
    duration_ms: int = 0
    tokens_used: int = 0


class ToolCall(BaseSchema):
    """A native tool call returned by a completion backend."""

    id: str = Field(default_factory=_new_id)
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class Message(BaseSchema):
    id: str = Field(default_factory=_new_id)
    role: MessageRole
    content: str
    tool_call_id: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    created_at: datetime = Field(default_factory=_utc_now)


class Conversation(BaseSchema):
    id: str = Field(default_factory=_new_id)
    agent_id: str
    tenant_id: Optional[str] = None
    context_type: ConversationContextType = ConversationContextType.session
    context_id: str
    messages: List[Message] = Field(default_factory=list)
    message_count: int = 0
    tokens_used: int = 0
    last_message_at: Optional[datetime] = None
    expires_at: datetime = Field(default_factory=lambda: _utc_now() + timedelta(hours=24))
    created_at: datetime = Field(default_factory=_utc_now)


class ThoughtResult(BaseSchema):
    reasoning: str = ""
    action: DecisionAction = DecisionAction.finish
    tool: Optional[str] = None
    input: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = 0.5
    tool_calls: List[ToolCall] = Field(default_factory=list)


class ExecutionResult(BaseSchema):
    """Outcome of ``run``/``resume``.

    Failed runs have the same shape as successful ones; callers branch on
    ``success`` and ``status`` instead of catching exceptions.
    """

    execution_id: Optional[str] = None
    success: bool
    status: ExecutionStatus
    steps: List[ExecutionStep] = Field(default_factory=list)
    actions: List[ActionRecord] = Field(default_factory=list)
    result: Optional[Dict[str, Any]] = None
    tokens_input: int = 0
    tokens_output: int = 0
    tokens_total: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    approval_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Tools and approvals
# ---------------------------------------------------------------------------


class ToolCallLog(BaseSchema):
    id: str = Field(default_factory=_new_id)
    agent_id: str
    execution_id: Optional[str] = None
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    status: ToolCallStatus = ToolCallStatus.pending
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


class ApprovalRequest(BaseSchema):
    id: str = Field(default_factory=_new_id)
    execution_id: Optional[str] = None
    agent_id: str
    tenant_id: Optional[str] = None
    tool_name: str
    action_description: str = ""
    action_params: Dict[str, Any] = Field(default_factory=dict)
    risk_level: RiskLevel = RiskLevel.low
    risk_explanation: Optional[str] = None
    status: ApprovalStatus = ApprovalStatus.pending
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_note: Optional[str] = None
    expires_at: datetime = Field(default_factory=lambda: _utc_now() + timedelta(hours=24))
    created_at: datetime = Field(default_factory=_utc_now)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or _utc_now()) >= self.expires_at


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------


class Memory(BaseSchema):
    id: str = Field(default_factory=_new_id)
    agent_id: str
    tenant_id: Optional[str] = None
    memory_type: MemoryType
    content: str
    embedding: Optional[List[float]] = None
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    importance: int = Field(default=5, ge=1, le=10)
    subject_type: Optional[str] = None
    subject_id: Optional[str] = None
    source: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    access_count: int = 0
    last_accessed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class ScoredMemory(BaseSchema):
    memory: Memory
    similarity: float


class Episode(BaseSchema):
    id: str = Field(default_factory=_new_id)
    agent_id: str
    tenant_id: Optional[str] = None
    execution_id: Optional[str] = None
    trigger_event: Optional[str] = None
    context_summary: Optional[str] = None
    actions_taken: List[ActionRecord] = Field(default_factory=list)
    outcome: EpisodeOutcome
    outcome_details: Optional[str] = None
    lessons_learned: List[str] = Field(default_factory=list)
    should_repeat: bool = False
    duration_ms: Optional[int] = None
    tokens_used: Optional[int] = None
    created_at: datetime = Field(default_factory=_utc_now)
