"""Repository interfaces and implementations for runtime persistence.

The repository layer is the persistence boundary for the agent runtime.

Responsibilities
----------------

- Provide a small set of async repository interfaces (Protocols) that the
  runtime depends on.
- Persist durable, auditable records of an execution:

  - agent configuration snapshots,
  - execution status and resume cursor,
  - append-only steps and tool call logs,
  - approval requests and their single resolution,
  - long-term memories, episodes and conversations.

Design notes
------------

The runtime is written against interfaces so it can be used with:

- a SQL database (async SQLAlchemy implementation in ``repos.sql``),
- the in-process implementation in ``repos.memory`` for tests and local use.
"""

from .interfaces import (
    AgentRepository,
    ApprovalRepository,
    ConversationRepository,
    EpisodeRepository,
    ExecutionRepository,
    MemoryRepository,
    StepRepository,
    ToolCallLogRepository,
)

__all__ = [
    "AgentRepository",
    "ApprovalRepository",
    "ConversationRepository",
    "EpisodeRepository",
    "ExecutionRepository",
    "MemoryRepository",
    "StepRepository",
    "ToolCallLogRepository",
]
