"""LangGraph-based ReAct runtime for agent executions.

The runtime loads an agent configuration, retrieves relevant memories, and
iterates think -> act -> observe through a completion provider and the tool
dispatcher:

- think steps ask the model for a JSON decision (or a native tool call) and
  never have side effects;
- act steps go through the dispatcher, which enforces rate limits, input
  schemas, permissions and the approval gate.

The main entry point is ``AgentExecutor``. Suspension for approval is a
persisted state transition; ``AgentExecutor.resume`` continues from the record
store alone.
"""

from .engine import AgentExecutor
from .models import ExecutorDeps, RunOptions

__all__ = [
    "AgentExecutor",
    "ExecutorDeps",
    "RunOptions",
]
