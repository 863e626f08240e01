from __future__ import annotations

"""LangGraph runtime for the ReAct loop.

``AgentExecutor`` runs an agent against a trigger by iterating
think -> act -> observe until the model finishes, the step budget runs out or
an error aborts the run.

Graph
-----

::

    start -> think -(use_tool)-> act -(continue)-> think
                   -(finish)---> finish          -(approval)-> suspend

- ``start`` executes an approved action when resuming.
- ``think`` checks for cancellation and budgets, then asks the completion
  provider for a decision and records a think step.
- ``act`` dispatches the chosen tool call(s) and records act steps. A call
  parked behind an approval request routes to ``suspend``.
- ``suspend`` persists the cursor (``current_step``, ``pending_approval_id``)
  and counters on the execution row; the graph then ends. ``resume`` rebuilds
  the working set from the record store, so it may run in another process.
- ``finish`` finalizes the execution and records an episode.

Failure semantics
-----------------

``run`` and ``resume`` never raise. Any error escaping the graph is caught
once, recorded as ``failed`` and returned as a normal ``ExecutionResult``. The
whole graph invocation is bounded by the timeout; on deadline the execution is
``timed_out``.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from langgraph.graph import END, StateGraph

from ..approval.gate import DENIED_ERROR
from ..errors import (
    AgentInactive,
    AgentNotFound,
    ExecutionNotFound,
    MaxStepsReached,
    TimedOut,
    TokenBudgetExceeded,
)
from ..policy.permissions import filter_tools
from ..providers.base import CompletionOptions
from ..schemas.domain import (
    ActionRecord,
    AgentConfig,
    ApprovalStatus,
    ConversationContextType,
    DecisionAction,
    EpisodeOutcome,
    Execution,
    ExecutionContext,
    ExecutionResult,
    ExecutionStatus,
    ExecutionStep,
    MemoryType,
    Message,
    MessageRole,
    ScoredMemory,
    TERMINAL_EXECUTION_STATUSES,
    StepType,
    ThoughtResult,
    ToolCall,
    TriggerContext,
    _utc_now,
)
from ..tools.base import ToolContext, ToolResult
from .models import ExecutorDeps, RunOptions, _LoopState, _RunState
from .prompts import (
    build_context_summary,
    build_observation,
    build_system_prompt,
    build_think_prompt,
    format_tool_message,
    parse_decision,
)

logger = logging.getLogger(__name__)

CANCELLED_ERROR = "Execution cancelled"
MEMORY_TYPES = (MemoryType.fact, MemoryType.preference, MemoryType.outcome)

# Nodes visited per loop iteration (think + act), plus start and a terminal node.
_NODES_PER_ITERATION = 2
_GRAPH_OVERHEAD = 4


class AgentExecutor:
    """Run and resume agent executions.

    The executor holds no per-run state between calls; everything it needs to
    continue a suspended run is read back from the repositories in
    ``ExecutorDeps``.
    """

    def __init__(self, deps: ExecutorDeps) -> None:
        """
        Initialize the executor.

        Args:
            deps: Repositories, dispatcher, memory manager and provider factory.
        """
        self._deps = deps
        self._graph = self._build_graph()

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_LoopState)
        g.add_node("start", self._node_start)
        g.add_node("think", self._node_think)
        g.add_node("act", self._node_act)
        g.add_node("suspend", self._node_suspend)
        g.add_node("finish", self._node_finish)

        g.set_entry_point("start")
        g.add_conditional_edges(
            "start",
            self._route_after_start,
            {"think": "think", "suspend": "suspend", "finish": "finish"},
        )
        g.add_conditional_edges(
            "think",
            self._route_after_think,
            {"act": "act", "finish": "finish"},
        )
        g.add_conditional_edges(
            "act",
            self._route_after_act,
            {"suspend": "suspend", "think": "think"},
        )
        g.add_edge("suspend", END)
        g.add_edge("finish", END)
        return g.compile()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        agent_id: str,
        trigger: Optional[TriggerContext] = None,
        options: Optional[RunOptions] = None,
    ) -> ExecutionResult:
        """
        Execute an agent against a trigger.

        Args:
            agent_id: The agent to run.
            trigger: What started the run; defaults to a manual trigger.
            options: Per-call overrides.

        Returns:
            The outcome. ``status`` is ``waiting_approval`` (with
            ``approval_id`` set) when a tool call was parked for approval.
        """
        trigger = trigger or TriggerContext()
        options = options or RunOptions()
        started = time.perf_counter()

        try:
            agent = await self._deps.agents.get(agent_id)
        except Exception as e:
            logger.exception(f"Loading agent {agent_id} failed")
            return ExecutionResult(success=False, status=ExecutionStatus.failed, error=str(e) or type(e).__name__)
        if agent is None or not agent.is_active:
            error = AgentNotFound(agent_id) if agent is None else AgentInactive(agent_id)
            return await self._reject(agent_id, agent, trigger, str(error), started)

        execution = Execution(agent_id=agent.id, tenant_id=agent.tenant_id, trigger=trigger)
        run: Optional[_RunState] = None
        try:
            await self._deps.executions.create(execution)
            now = _utc_now()
            await self._deps.executions.update(
                execution.id, {"status": ExecutionStatus.running, "started_at": now}
            )
            execution = execution.model_copy(update={"status": ExecutionStatus.running, "started_at": now})
            run = await self._start_run(agent, execution, options)
            state: _LoopState = {"run": run, "iteration": 0, "awaiting_approval_id": None}
            return await self._drive(run, state)
        except Exception as e:
            logger.exception(f"Execution {execution.id} aborted")
            return await self._abort(execution, run, str(e) or type(e).__name__, started)

    async def resume(self, execution_id: str, options: Optional[RunOptions] = None) -> ExecutionResult:
        """
        Continue an execution from its persisted state.

        - ``running`` after an approval: the approved call is executed (with
          the approval gate bypassed) and the loop continues from
          ``current_step``.
        - ``waiting_approval``: returned unchanged, unless the request was
          already resolved, in which case it is reconciled first.
        - ``cancelled``/``failed``/``timed_out`` and never finalized (e.g. the
          approval was denied or expired): finalized once with a failure
          episode.
        - Already finalized: the stored outcome is returned.
        """
        options = options or RunOptions()
        started = time.perf_counter()

        try:
            execution = await self._deps.executions.get(execution_id)
        except Exception as e:
            logger.exception(f"Loading execution {execution_id} failed")
            return ExecutionResult(
                execution_id=execution_id,
                success=False,
                status=ExecutionStatus.failed,
                error=str(e) or type(e).__name__,
            )
        if execution is None:
            return ExecutionResult(
                execution_id=execution_id,
                success=False,
                status=ExecutionStatus.failed,
                error=str(ExecutionNotFound(execution_id)),
            )

        run: Optional[_RunState] = None
        try:
            if execution.status == ExecutionStatus.waiting_approval:
                execution = await self._reconcile_approval(execution)
                if execution.status == ExecutionStatus.waiting_approval:
                    return await self._stored_result(execution)

            if execution.completed_at is not None:
                return await self._stored_result(execution)

            agent = await self._deps.agents.get(execution.agent_id)
            if agent is None:
                raise AgentNotFound(execution.agent_id)

            if execution.status == ExecutionStatus.pending:
                return await self._stored_result(execution)
            run = await self._restore_run(agent, execution, options)
            if execution.status in TERMINAL_EXECUTION_STATUSES:
                return await self._finalize(run, execution.status, execution.error or CANCELLED_ERROR)

            state: _LoopState = {
                "run": run,
                "iteration": execution.current_step,
                "awaiting_approval_id": None,
            }
            if execution.pending_approval_id:
                state["_resume_approval_id"] = execution.pending_approval_id
            return await self._drive(run, state)
        except Exception as e:
            logger.exception(f"Resume of execution {execution_id} aborted")
            return await self._abort(execution, run, str(e) or type(e).__name__, started)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _catalog(self, agent: AgentConfig) -> List[Dict[str, Any]]:
        tools = filter_tools(self._deps.dispatcher.registry.list(), agent)
        return [t.to_openai_tool() for t in tools]

    def _max_steps(self, agent: AgentConfig, options: RunOptions) -> int:
        return options.max_steps or agent.max_steps_per_run or self._deps.config.default_max_steps

    async def _recall(self, agent: AgentConfig, summary: str) -> List[ScoredMemory]:
        limit = self._deps.config.memory_retrieval_limit
        try:
            return await self._deps.memory.retrieve(agent.id, summary, limit=limit, types=MEMORY_TYPES)
        except Exception as e:
            logger.warning(f"Memory retrieval failed for agent {agent.id}: {e}")
            return []

    async def _start_run(self, agent: AgentConfig, execution: Execution, options: RunOptions) -> _RunState:
        context = ExecutionContext(
            execution_id=execution.id,
            tenant_id=agent.tenant_id,
            agent_id=agent.id,
            trigger=execution.trigger,
            summary=build_context_summary(agent, execution.trigger),
            entities=dict(execution.trigger.data),
        )
        catalog = self._catalog(agent)
        memories = await self._recall(agent, context.summary)
        conversation = await self._deps.memory.get_or_create_conversation(
            agent.id, ConversationContextType.session, execution.id, tenant_id=agent.tenant_id
        )
        run = _RunState(
            agent=agent,
            execution=execution,
            context=context,
            conversation_id=conversation.id,
            options=options,
            max_steps=self._max_steps(agent, options),
            catalog=catalog,
            started_at=execution.started_at,
        )
        tool_names = [entry["function"]["name"] for entry in catalog]
        await self._append_message(run, MessageRole.system, build_system_prompt(agent, memories, tool_names))
        await self._append_message(run, MessageRole.user, build_observation(context))
        return run

    async def _restore_run(self, agent: AgentConfig, execution: Execution, options: RunOptions) -> _RunState:
        conversation = await self._deps.memory.get_or_create_conversation(
            agent.id, ConversationContextType.session, execution.id, tenant_id=agent.tenant_id
        )
        steps = await self._deps.steps.list(execution.id)
        context = ExecutionContext(
            execution_id=execution.id,
            tenant_id=execution.tenant_id,
            agent_id=agent.id,
            trigger=execution.trigger,
            summary=build_context_summary(agent, execution.trigger),
            entities=dict(execution.trigger.data),
        )
        return _RunState(
            agent=agent,
            execution=execution,
            context=context,
            conversation_id=conversation.id,
            options=options,
            max_steps=self._max_steps(agent, options),
            catalog=self._catalog(agent),
            messages=list(conversation.messages),
            steps=steps,
            actions=list(execution.actions_taken),
            next_step_number=(steps[-1].step_number + 1) if steps else 0,
            tokens_input=execution.tokens_input,
            tokens_output=execution.tokens_output,
            llm_calls=execution.llm_calls,
            started_at=execution.started_at,
        )

    async def _reconcile_approval(self, execution: Execution) -> Execution:
        """Catch up with an approval resolved while the run was still suspending."""
        if not execution.pending_approval_id:
            return execution
        approval = await self._deps.dispatcher.approvals.get(execution.pending_approval_id)
        if approval.status == ApprovalStatus.approved:
            changes: Dict[str, Any] = {"status": ExecutionStatus.running}
        elif approval.status == ApprovalStatus.denied:
            changes = {"status": ExecutionStatus.cancelled, "error": DENIED_ERROR}
        else:
            return execution
        await self._deps.executions.update(
            execution.id, changes, expected_status=[ExecutionStatus.waiting_approval]
        )
        return await self._deps.executions.get(execution.id) or execution

    # ------------------------------------------------------------------
    # Graph driving
    # ------------------------------------------------------------------

    async def _drive(self, run: _RunState, state: _LoopState) -> ExecutionResult:
        timeout = run.options.timeout_seconds or run.agent.timeout_seconds
        remaining = max(0, run.max_steps - state["iteration"])
        config = {"recursion_limit": remaining * _NODES_PER_ITERATION + _GRAPH_OVERHEAD}
        try:
            await asyncio.wait_for(self._graph.ainvoke(state, config=config), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Execution {run.execution.id} timed out after {timeout}s")
            return await self._finalize(run, ExecutionStatus.timed_out, str(TimedOut(timeout)))
        if run.outcome is None:
            raise RuntimeError("loop ended without an outcome")
        return run.outcome

    async def _node_start(self, state: _LoopState) -> _LoopState:
        """Entry node; executes the approved action when resuming."""
        approval_id = state.pop("_resume_approval_id", None)
        if not approval_id:
            return state

        run = state["run"]
        approval = await self._deps.dispatcher.approvals.get(approval_id)
        reasoning = self._last_reasoning(run)
        logger.info(f"Executing approved action {approval.tool_name} for execution {run.execution.id}")
        await self._act_once(
            run,
            iteration=max(0, state["iteration"] - 1),
            tool_name=approval.tool_name,
            arguments=dict(approval.action_params),
            reasoning=reasoning,
            skip_approval=True,
        )
        run.pending_approval_id = None
        await self._deps.executions.update(run.execution.id, {"pending_approval_id": None})
        return state

    async def _node_think(self, state: _LoopState) -> _LoopState:
        """Check stop conditions, then ask the model for the next decision."""
        run = state["run"]
        iteration = state["iteration"]

        stop = await self._stop_reason(run, iteration)
        if stop is not None:
            status, error = stop
            state["_finished"] = True
            state["_terminal_status"] = status.value
            state["_error"] = error
            return state

        run.thought = await self._think(run, iteration)
        if run.thought.action == DecisionAction.finish:
            await self._append_message(run, MessageRole.assistant, run.thought.reasoning)
            state["_finished"] = True
            state["_terminal_status"] = ExecutionStatus.completed.value
            state["_error"] = None
        state["_decision"] = run.thought.action.value
        return state

    async def _node_act(self, state: _LoopState) -> _LoopState:
        """Dispatch the decided tool call(s) sequentially."""
        run = state["run"]
        iteration = state["iteration"]
        thought = run.thought
        calls = thought.tool_calls[: run.agent.max_tool_calls_per_step] or [
            ToolCall(name=thought.tool or "", arguments=thought.input)
        ]
        for call in calls:
            result = await self._act_once(
                run,
                iteration=iteration,
                tool_name=call.name,
                arguments=call.arguments,
                reasoning=thought.reasoning,
                skip_approval=run.options.skip_approval,
            )
            if result.pending_approval:
                # Remaining calls of this step are dropped; the model re-plans after resume.
                run.pending_approval_id = result.approval_id
                state["awaiting_approval_id"] = result.approval_id
                return state
        state["iteration"] = iteration + 1
        return state

    async def _node_suspend(self, state: _LoopState) -> _LoopState:
        """Persist the resume cursor and park the execution."""
        run = state["run"]
        next_iteration = state["iteration"] + 1
        changes = {
            "status": ExecutionStatus.waiting_approval,
            "current_step": next_iteration,
            "pending_approval_id": state["awaiting_approval_id"],
            **self._counters(run),
        }
        parked = await self._deps.executions.update(
            run.execution.id, changes, expected_status=[ExecutionStatus.running]
        )
        current = await self._deps.executions.get(run.execution.id)
        if parked and current is not None:
            # A denial that landed during dispatch could not move a running row.
            approval = await self._deps.dispatcher.approvals.get(state["awaiting_approval_id"])
            if approval.status == ApprovalStatus.denied:
                current = await self._reconcile_approval(current)
        if current is not None and current.status in TERMINAL_EXECUTION_STATUSES:
            logger.info(f"Execution {run.execution.id} ended {current.status.value} while suspending for approval")
            await self._finalize(run, current.status, current.error or CANCELLED_ERROR)
            return state
        if not parked:
            logger.warning(f"Execution {run.execution.id} changed state while suspending for approval")
        logger.info(f"Execution {run.execution.id} waiting on approval {state['awaiting_approval_id']}")
        run.outcome = self._result(
            run,
            ExecutionStatus.waiting_approval,
            error=None,
            approval_id=state["awaiting_approval_id"],
        )
        return state

    async def _node_finish(self, state: _LoopState) -> _LoopState:
        run = state["run"]
        status = ExecutionStatus(state.get("_terminal_status") or ExecutionStatus.completed.value)
        await self._finalize(run, status, state.get("_error"))
        return state

    def _route_after_start(self, state: _LoopState) -> str:
        if state.get("awaiting_approval_id"):
            return "suspend"
        if state.get("_finished"):
            return "finish"
        return "think"

    def _route_after_think(self, state: _LoopState) -> str:
        if state.get("_finished"):
            return "finish"
        return "act"

    def _route_after_act(self, state: _LoopState) -> str:
        if state.get("awaiting_approval_id"):
            return "suspend"
        return "think"

    # ------------------------------------------------------------------
    # Loop steps
    # ------------------------------------------------------------------

    async def _stop_reason(self, run: _RunState, iteration: int) -> Optional[Tuple[ExecutionStatus, str]]:
        current = await self._deps.executions.get(run.execution.id)
        if current is not None and current.status == ExecutionStatus.cancelled:
            logger.info(f"Execution {run.execution.id} cancelled before iteration {iteration}")
            return ExecutionStatus.cancelled, current.error or CANCELLED_ERROR
        if iteration >= run.max_steps:
            return ExecutionStatus.failed, str(MaxStepsReached())
        budget = run.options.max_total_tokens
        if budget is not None and run.tokens_total >= budget:
            return ExecutionStatus.failed, str(TokenBudgetExceeded(run.tokens_total, budget))
        return None

    async def _think(self, run: _RunState, iteration: int) -> ThoughtResult:
        agent = run.agent
        provider = self._deps.providers.create(agent.llm_provider)
        prompt = Message(role=MessageRole.user, content=build_think_prompt(agent))
        options = CompletionOptions(
            model=agent.llm_model,
            temperature=agent.temperature,
            max_tokens=min(agent.max_tokens, self._deps.config.think_max_tokens),
            response_format="json",
        )

        started_at = _utc_now()
        t0 = time.perf_counter()
        response = await provider.complete_with_tools([*run.messages, prompt], run.catalog, options)
        run.tokens_input += response.tokens_in
        run.tokens_output += response.tokens_out
        run.llm_calls += 1

        thought = parse_decision(response.content, response.tool_calls)
        await self._record_step(
            run,
            ExecutionStep(
                execution_id=run.execution.id,
                step_number=run.next_step_number,
                iteration=iteration,
                step_type=StepType.think,
                input_text=run.messages[-1].content if run.messages else None,
                reasoning=thought.reasoning,
                started_at=started_at,
                completed_at=_utc_now(),
                duration_ms=int((time.perf_counter() - t0) * 1000),
                tokens_used=response.tokens_total,
            ),
        )
        logger.debug(
            f"Execution {run.execution.id} iteration {iteration}: {thought.action.value}"
            + (f" {thought.tool}" if thought.tool else "")
        )
        return thought

    async def _act_once(
        self,
        run: _RunState,
        *,
        iteration: int,
        tool_name: str,
        arguments: Dict[str, Any],
        reasoning: str,
        skip_approval: bool,
    ) -> ToolResult:
        ctx = ToolContext(
            agent=run.agent,
            execution_id=run.execution.id,
            user_id=run.options.user_id,
            skip_approval=skip_approval,
            services={"memory": self._deps.memory, **self._deps.tool_services},
        )
        started_at = _utc_now()
        result = await self._deps.dispatcher.invoke(tool_name, arguments, ctx)

        if not result.pending_approval:
            run.actions.append(
                ActionRecord(
                    tool=tool_name,
                    input=dict(arguments),
                    output=result.data if result.success else result.error,
                    success=result.success,
                )
            )
        await self._record_step(
            run,
            ExecutionStep(
                execution_id=run.execution.id,
                step_number=run.next_step_number,
                iteration=iteration,
                step_type=StepType.act,
                tool_name=tool_name,
                tool_input=dict(arguments),
                tool_output=result.data if result.success else {"error": result.error},
                approval_id=result.approval_id,
                started_at=started_at,
                completed_at=_utc_now(),
                duration_ms=result.duration_ms,
            ),
        )
        await self._append_message(run, MessageRole.user, format_tool_message(tool_name, result))
        await self._append_message(run, MessageRole.assistant, reasoning)
        return result

    async def _record_step(self, run: _RunState, step: ExecutionStep) -> None:
        await self._deps.steps.append(step)
        run.steps.append(step)
        run.next_step_number = step.step_number + 1

    async def _append_message(self, run: _RunState, role: MessageRole, content: str) -> None:
        message = await self._deps.memory.add_message(run.conversation_id, role, content)
        run.messages.append(message)

    def _last_reasoning(self, run: _RunState) -> str:
        for step in reversed(run.steps):
            if step.step_type == StepType.think:
                return step.reasoning or ""
        return ""

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def _counters(self, run: _RunState) -> Dict[str, Any]:
        return {
            "tokens_input": run.tokens_input,
            "tokens_output": run.tokens_output,
            "tokens_total": run.tokens_total,
            "llm_calls": run.llm_calls,
            "tool_calls": len(run.actions),
            "actions_taken": list(run.actions),
        }

    def _duration_ms(self, run: _RunState) -> int:
        if run.started_at is not None:
            return max(0, int((_utc_now() - run.started_at).total_seconds() * 1000))
        return int((time.perf_counter() - run.clock_start) * 1000)

    def _result(
        self,
        run: _RunState,
        status: ExecutionStatus,
        *,
        error: Optional[str],
        approval_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> ExecutionResult:
        return ExecutionResult(
            execution_id=run.execution.id,
            success=status == ExecutionStatus.completed,
            status=status,
            steps=list(run.steps),
            actions=list(run.actions),
            result=payload,
            tokens_input=run.tokens_input,
            tokens_output=run.tokens_output,
            tokens_total=run.tokens_total,
            duration_ms=self._duration_ms(run),
            error=error,
            approval_id=approval_id,
        )

    async def _finalize(self, run: _RunState, status: ExecutionStatus, error: Optional[str]) -> ExecutionResult:
        """Persist the terminal state and record the episode."""
        completed = status == ExecutionStatus.completed
        payload = {"completed": completed, "steps_executed": len(run.steps)}
        result = self._result(run, status, error=error, payload=payload)
        run.outcome = result

        await self._deps.executions.update(
            run.execution.id,
            {
                "status": status,
                "error": error,
                "result": payload,
                "pending_approval_id": None,
                "completed_at": _utc_now(),
                "duration_ms": result.duration_ms,
                **self._counters(run),
            },
        )
        await self._record_episode(run, result)
        logger.info(
            f"Execution {run.execution.id} finished: status={status.value} "
            f"steps={len(run.steps)} tokens={run.tokens_total}"
        )
        return result

    async def _record_episode(self, run: _RunState, result: ExecutionResult) -> None:
        if result.status == ExecutionStatus.completed:
            outcome = EpisodeOutcome.success
        elif result.status in (ExecutionStatus.failed, ExecutionStatus.timed_out) and any(
            a.success for a in run.actions
        ):
            outcome = EpisodeOutcome.partial
        else:
            outcome = EpisodeOutcome.failure

        trigger = run.execution.trigger
        await self._deps.memory.record_episode(
            run.agent.id,
            tenant_id=run.agent.tenant_id,
            execution_id=run.execution.id,
            trigger_event=trigger.event_type or trigger.type.value,
            context_summary=run.context.summary,
            actions_taken=run.actions,
            outcome=outcome,
            outcome_details=result.error,
            should_repeat=outcome == EpisodeOutcome.success,
            duration_ms=result.duration_ms,
            tokens_used=result.tokens_total,
        )

    async def _abort(
        self,
        execution: Execution,
        run: Optional[_RunState],
        error: str,
        started: float,
    ) -> ExecutionResult:
        """Record an unexpected failure; never raises."""
        if run is not None:
            try:
                return await self._finalize(run, ExecutionStatus.failed, error)
            except Exception as e:
                logger.warning(f"Finalizing failed execution {execution.id} raised: {e}")
                return self._result(run, ExecutionStatus.failed, error=error)

        duration_ms = int((time.perf_counter() - started) * 1000)
        try:
            await self._deps.executions.update(
                execution.id,
                {
                    "status": ExecutionStatus.failed,
                    "error": error,
                    "completed_at": _utc_now(),
                    "duration_ms": duration_ms,
                },
            )
        except Exception as e:
            logger.warning(f"Could not mark execution {execution.id} failed: {e}")
        return ExecutionResult(
            execution_id=execution.id,
            success=False,
            status=ExecutionStatus.failed,
            duration_ms=duration_ms,
            error=error,
        )

    async def _reject(
        self,
        agent_id: str,
        agent: Optional[AgentConfig],
        trigger: TriggerContext,
        error: str,
        started: float,
    ) -> ExecutionResult:
        """Fail a run that cannot start; the execution row is created only for known agents."""
        logger.info(f"Rejected run for agent {agent_id}: {error}")
        if agent is None:
            return ExecutionResult(
                success=False,
                status=ExecutionStatus.failed,
                duration_ms=int((time.perf_counter() - started) * 1000),
                error=error,
            )
        execution = Execution(agent_id=agent.id, tenant_id=agent.tenant_id, trigger=trigger)
        try:
            await self._deps.executions.create(execution)
        except Exception as e:
            logger.warning(f"Could not record rejected execution for agent {agent_id}: {e}")
        return await self._abort(execution, None, error, started)

    async def _stored_result(self, execution: Execution) -> ExecutionResult:
        steps = await self._deps.steps.list(execution.id)
        return ExecutionResult(
            execution_id=execution.id,
            success=execution.status == ExecutionStatus.completed,
            status=execution.status,
            steps=steps,
            actions=list(execution.actions_taken),
            result=execution.result,
            tokens_input=execution.tokens_input,
            tokens_output=execution.tokens_output,
            tokens_total=execution.tokens_total,
            duration_ms=execution.duration_ms or 0,
            error=execution.error,
            approval_id=execution.pending_approval_id,
        )
