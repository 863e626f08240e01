from __future__ import annotations

"""Executor dependency bundle, run options and LangGraph state types.

- ``ExecutorDeps`` collects the repositories and collaborators the executor
  needs; it is built by wiring code (see ``agentflow.agent_core.service``).
- ``RunOptions`` are per-call overrides of the agent's budgets.
- ``_RunState`` is the per-call working set (messages, counters, steps).
- ``_LoopState`` is the LangGraph state passed between nodes. It only carries
  routing flags plus a reference to the ``_RunState``; everything needed to
  continue a run later lives in the record store, not in the graph.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, NotRequired, Optional, Required, TypedDict

from agentflow.core.config import RuntimeConfig

from ..dispatch.dispatcher import ToolDispatcher
from ..memory.manager import MemoryManager
from ..providers.factory import ProviderFactory
from ..repos.interfaces import AgentRepository, ExecutionRepository, StepRepository
from ..schemas.domain import (
    ActionRecord,
    AgentConfig,
    Execution,
    ExecutionContext,
    ExecutionResult,
    ExecutionStep,
    Message,
    ThoughtResult,
)


@dataclass(frozen=True)
class ExecutorDeps:
    """Dependency bundle for ``AgentExecutor``.

    ``tool_services`` is merged into every ``ToolContext.services``; the
    memory manager is always exposed there under ``"memory"``.
    """

    agents: AgentRepository
    executions: ExecutionRepository
    steps: StepRepository
    dispatcher: ToolDispatcher
    memory: MemoryManager
    providers: ProviderFactory
    config: RuntimeConfig = field(default_factory=RuntimeConfig)
    tool_services: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RunOptions:
    """Per-call overrides.

    Attributes:
        max_steps: Overrides ``AgentConfig.max_steps_per_run``.
        timeout_seconds: Overrides ``AgentConfig.timeout_seconds``.
        skip_approval: Bypass the approval gate (builder test consoles).
        user_id: Human on whose behalf the run happens; passed to tools.
        max_total_tokens: Stop the run once this many tokens were spent.
    """

    max_steps: Optional[int] = None
    timeout_seconds: Optional[float] = None
    skip_approval: bool = False
    user_id: Optional[str] = None
    max_total_tokens: Optional[int] = None


@dataclass
class _RunState:
    """Working set of one ``run``/``resume`` call.

    Counters start from the persisted execution row, so a resumed run keeps
    accumulating tokens and actions where the suspended call left off.
    """

    agent: AgentConfig
    execution: Execution
    context: ExecutionContext
    conversation_id: str
    options: RunOptions
    max_steps: int
    catalog: List[Dict[str, Any]]
    messages: List[Message] = field(default_factory=list)
    steps: List[ExecutionStep] = field(default_factory=list)
    actions: List[ActionRecord] = field(default_factory=list)
    next_step_number: int = 0
    tokens_input: int = 0
    tokens_output: int = 0
    llm_calls: int = 0
    thought: Optional[ThoughtResult] = None
    pending_approval_id: Optional[str] = None
    outcome: Optional[ExecutionResult] = None
    started_at: Optional[datetime] = None
    clock_start: float = field(default_factory=time.perf_counter)

    @property
    def tokens_total(self) -> int:
        return self.tokens_input + self.tokens_output


class _LoopState(TypedDict):
    """Mutable LangGraph state for one pass through the loop.

    Required keys:

    - ``run``: the ``_RunState`` working set.
    - ``iteration``: loop index about to run.
    - ``awaiting_approval_id``: set when the run is parked for approval.

    Optional keys:

    - ``_decision``: ``use_tool`` or ``finish`` from the last think step.
    - ``_finished`` / ``_terminal_status`` / ``_error``: terminate the graph.
    - ``_resume_approval_id``: approved request to execute before thinking.
    """

    run: Required[_RunState]
    iteration: Required[int]
    awaiting_approval_id: Required[Optional[str]]
    _decision: NotRequired[str]
    _finished: NotRequired[bool]
    _terminal_status: NotRequired[str]
    _error: NotRequired[Optional[str]]
    _resume_approval_id: NotRequired[str]
