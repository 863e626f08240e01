"""Domain schemas shared by every runtime component."""

from .base import BaseSchema, FrozenSchema
from .domain import (
    ActionRecord,
    AgentConfig,
    AgentGoal,
    AgentType,
    ApprovalRequest,
    ApprovalStatus,
    Conversation,
    ConversationContextType,
    DecisionAction,
    Episode,
    EpisodeOutcome,
    Execution,
    ExecutionContext,
    ExecutionResult,
    ExecutionStatus,
    ExecutionStep,
    GoalComparison,
    Memory,
    MemoryType,
    Message,
    MessageRole,
    RiskLevel,
    ScoredMemory,
    StepType,
    ThoughtResult,
    ToolCall,
    ToolCallLog,
    ToolCallStatus,
    TriggerContext,
    TriggerType,
)

__all__ = [
    "BaseSchema",
    "FrozenSchema",
    "ActionRecord",
    "AgentConfig",
    "AgentGoal",
    "AgentType",
    "ApprovalRequest",
    "ApprovalStatus",
    "Conversation",
    "ConversationContextType",
    "DecisionAction",
    "Episode",
    "EpisodeOutcome",
    "Execution",
    "ExecutionContext",
    "ExecutionResult",
    "ExecutionStatus",
    "ExecutionStep",
    "GoalComparison",
    "Memory",
    "MemoryType",
    "Message",
    "MessageRole",
    "RiskLevel",
    "ScoredMemory",
    "StepType",
    "ThoughtResult",
    "ToolCall",
    "ToolCallLog",
    "ToolCallStatus",
    "TriggerContext",
    "TriggerType",
]
