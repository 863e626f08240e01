"""End-to-end tests for ``AgentService`` over SQLite-backed repositories.

These runs go through the real wiring (``build_service``) and persist every
record with SQLAlchemy, so suspension and resumption are exercised across
the database rather than in-process state.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest

from agentflow.agent_core.factory import build_service
from agentflow.agent_core.providers.factory import ProviderFactory
from agentflow.agent_core.providers.testing import ScriptedProvider
from agentflow.agent_core.repos.sql import build_sql_repos, create_all, create_engine, create_sessionmaker
from agentflow.agent_core.schemas.domain import (
    ApprovalStatus,
    EpisodeOutcome,
    ExecutionStatus,
    StepType,
    ToolCallStatus,
    TriggerContext,
    TriggerType,
)
from agentflow.agent_core.tools.base import ToolContext, ToolDefinition
from agentflow.core.config import Settings

FINISH = {"reasoning": "All done", "action": "finish", "confidence": 0.9}
TRANSFER = {"reasoning": "Pay the invoice", "action": "use_tool", "tool": "wire_funds", "input": {"amount": 250}}


class _Ledger:
    def __init__(self) -> None:
        self.transfers: List[Dict[str, Any]] = []

    async def __call__(self, input: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
        self.transfers.append({"amount": input["amount"], "execution_id": ctx.execution_id})
        return {"transferred": input["amount"]}


@pytest.fixture
async def sql_repos(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'service.db'}")
    await create_all(engine)
    yield build_sql_repos(session_factory=create_sessionmaker(engine))
    await engine.dispose()


@pytest.fixture
def ledger() -> _Ledger:
    return _Ledger()


def _service(repos, provider: ScriptedProvider, ledger: _Ledger):
    providers = ProviderFactory()
    providers.register_instance("scripted", provider)
    wire_funds = ToolDefinition(
        name="wire_funds",
        description="Move money to a supplier.",
        handler=ledger,
        parameters={"type": "object", "properties": {"amount": {"type": "integer"}}, "required": ["amount"]},
        is_dangerous=True,
    )
    return build_service(
        repos,
        providers=providers,
        settings=Settings(_env_file=None, memory={"embedding_dim": 64}),
        tools=[wire_funds],
    )


@pytest.mark.asyncio
async def test_run_to_completion_persists_history(sql_repos, ledger, make_agent) -> None:
    agent = make_agent()
    await sql_repos.agents.save(agent)
    provider = ScriptedProvider(
        [{"reasoning": "Say hi", "action": "use_tool", "tool": "echo", "input": {"message": "hi"}}, FINISH]
    )
    service = _service(sql_repos, provider, ledger)

    result = await service.run(
        agent.id, TriggerContext(type=TriggerType.event, event_type="contact.created", data={"contact_id": "c1"})
    )

    assert result.status == ExecutionStatus.completed
    assert result.result == {"completed": True, "steps_executed": 3}
    stored = await sql_repos.executions.get(result.execution_id)
    assert stored.status == ExecutionStatus.completed
    assert stored.tokens_total == 30
    assert [a.tool for a in stored.actions_taken] == ["echo"]
    steps = await sql_repos.steps.list(result.execution_id)
    assert [s.step_type for s in steps] == [StepType.think, StepType.act, StepType.think]
    logs = await sql_repos.tool_logs.list(execution_id=result.execution_id)
    assert [(entry.tool_name, entry.status) for entry in logs] == [("echo", ToolCallStatus.completed)]
    episodes = await sql_repos.episodes.list(agent.id, trigger_event="contact.created")
    assert [e.outcome for e in episodes] == [EpisodeOutcome.success]


@pytest.mark.asyncio
async def test_approval_round_trip_through_database(sql_repos, ledger, make_agent) -> None:
    agent = make_agent()
    await sql_repos.agents.save(agent)
    service = _service(sql_repos, ScriptedProvider([TRANSFER, FINISH]), ledger)

    suspended = await service.run(agent.id)

    assert suspended.status == ExecutionStatus.waiting_approval
    assert ledger.transfers == []
    pending = await service.list_pending(tenant_id=agent.tenant_id)
    assert [a.id for a in pending] == [suspended.approval_id]
    assert pending[0].action_params == {"amount": 250}

    # A fresh service over the same database stands in for another process.
    resumed = await _service(sql_repos, ScriptedProvider([FINISH]), ledger).approve(
        suspended.approval_id, resolved_by="alice"
    )

    assert resumed.status == ExecutionStatus.completed
    assert ledger.transfers == [{"amount": 250, "execution_id": suspended.execution_id}]
    assert (await sql_repos.approvals.get(suspended.approval_id)).status == ApprovalStatus.approved
    stored = await sql_repos.executions.get(suspended.execution_id)
    assert stored.status == ExecutionStatus.completed
    assert stored.pending_approval_id is None
    numbers = [s.step_number for s in await sql_repos.steps.list(suspended.execution_id)]
    assert numbers == list(range(len(numbers)))


@pytest.mark.asyncio
async def test_denial_cancels_and_records_failure(sql_repos, ledger, make_agent) -> None:
    agent = make_agent()
    await sql_repos.agents.save(agent)
    service = _service(sql_repos, ScriptedProvider([TRANSFER, FINISH]), ledger)
    suspended = await service.run(agent.id)

    result = await service.deny(suspended.approval_id, resolved_by="bob", note="wrong supplier")

    assert result.status == ExecutionStatus.cancelled
    assert result.error == "Action denied by user"
    assert ledger.transfers == []
    episodes = await sql_repos.episodes.list(agent.id)
    assert [e.outcome for e in episodes] == [EpisodeOutcome.failure]


@pytest.mark.asyncio
async def test_expired_request_cancels_waiting_execution(sql_repos, ledger, make_agent) -> None:
    agent = make_agent()
    await sql_repos.agents.save(agent)
    service = _service(sql_repos, ScriptedProvider([TRANSFER, FINISH]), ledger)
    suspended = await service.run(agent.id)

    expired = await service.sweep_expired(datetime.now(timezone.utc) + timedelta(days=2))

    assert [a.id for a in expired] == [suspended.approval_id]
    stored = await sql_repos.executions.get(suspended.execution_id)
    assert stored.status == ExecutionStatus.cancelled
    assert stored.error == "Approval expired"
    assert stored.completed_at is not None
