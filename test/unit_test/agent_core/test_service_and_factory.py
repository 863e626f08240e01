from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from agentflow.agent_core.errors import AlreadyResolved, ApprovalNotFound
from agentflow.agent_core.factory import build_in_memory_service, build_service
from agentflow.agent_core.providers.factory import ProviderFactory
from agentflow.agent_core.providers.testing import ScriptedProvider
from agentflow.agent_core.repos.memory import InMemoryAgentRepository, InMemoryRepoBundle
from agentflow.agent_core.schemas.domain import (
    ApprovalRequest,
    ApprovalStatus,
    ExecutionStatus,
    RiskLevel,
)
from agentflow.core.config import Settings

FINISH = {"reasoning": "done", "action": "finish"}


async def _detached_request(service, agent, tool_name: str = "export_contacts") -> ApprovalRequest:
    return await service.gate.request(
        agent=agent,
        execution_id=None,
        tool_name=tool_name,
        description="Export every contact",
        params={"format": "csv"},
        risk_level=RiskLevel.high,
    )


class TestApprovalWorkflow:
    @pytest.mark.asyncio
    async def test_requests_outside_an_execution_resolve_without_resume(self, make_agent) -> None:
        agent = make_agent()
        service, repos = build_in_memory_service([agent], ScriptedProvider([FINISH]))
        first = await _detached_request(service, agent)
        second = await _detached_request(service, agent)

        assert await service.approve(first.id, resolved_by="alice") is None
        assert await service.deny(second.id, resolved_by="bob", note="too broad") is None

        assert (await repos.approvals.get(first.id)).status == ApprovalStatus.approved
        denied = await repos.approvals.get(second.id)
        assert denied.status == ApprovalStatus.denied
        assert denied.resolution_note == "too broad"
        assert await repos.executions.list() == []

    @pytest.mark.asyncio
    async def test_resolution_errors_propagate(self, make_agent) -> None:
        agent = make_agent()
        service, _ = build_in_memory_service([agent], ScriptedProvider([FINISH]))
        request = await _detached_request(service, agent)
        await service.approve(request.id)

        with pytest.raises(AlreadyResolved, match="already approved"):
            await service.deny(request.id)
        with pytest.raises(ApprovalNotFound):
            await service.approve("missing")

    @pytest.mark.asyncio
    async def test_list_pending_filters_by_tenant(self, make_agent) -> None:
        ours = make_agent()
        theirs = make_agent(name="Other", tenant_id="tenant-2")
        service, _ = build_in_memory_service([ours, theirs], ScriptedProvider([FINISH]))
        mine = await _detached_request(service, ours)
        await _detached_request(service, theirs)

        pending = await service.list_pending(tenant_id="tenant-1")

        assert [a.id for a in pending] == [mine.id]

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_block_request(self, make_agent) -> None:
        seen: List[str] = []

        async def _notify(approval: ApprovalRequest) -> None:
            seen.append(approval.id)
            raise RuntimeError("smtp down")

        agent = make_agent()
        service, repos = build_in_memory_service([agent], ScriptedProvider([FINISH]), notifier=_notify)

        request = await _detached_request(service, agent)

        assert seen == [request.id]
        assert (await repos.approvals.get(request.id)).status == ApprovalStatus.pending

    @pytest.mark.asyncio
    async def test_sweep_skips_detached_requests(self, make_agent) -> None:
        agent = make_agent()
        service, repos = build_in_memory_service([agent], ScriptedProvider([FINISH]))
        request = await _detached_request(service, agent)

        expired = await service.sweep_expired(datetime.now(timezone.utc) + timedelta(days=2))

        assert [a.id for a in expired] == [request.id]
        assert expired[0].status == ApprovalStatus.expired


class TestCancel:
    @pytest.mark.asyncio
    async def test_finished_or_unknown_execution_is_not_cancellable(self, make_agent) -> None:
        agent = make_agent()
        service, _ = build_in_memory_service([agent], ScriptedProvider([FINISH]))
        result = await service.run(agent.id)

        assert await service.cancel(result.execution_id) is False
        assert await service.cancel("missing") is False
        assert (await service.get_execution(result.execution_id)).status == ExecutionStatus.completed


class TestBuildService:
    @pytest.mark.asyncio
    async def test_wires_named_provider_and_default_embedder(self, make_agent) -> None:
        agent = make_agent()
        provider = ScriptedProvider(
            [
                {
                    "reasoning": "remember it",
                    "action": "use_tool",
                    "tool": "memory_store",
                    "input": {"content": "Customer prefers email"},
                },
                FINISH,
            ]
        )
        providers = ProviderFactory()
        providers.register_instance("scripted", provider)
        repos = InMemoryRepoBundle(agents=InMemoryAgentRepository([agent]))
        settings = Settings(_env_file=None, memory={"embedding_dim": 32})

        service = build_service(repos, providers=providers, settings=settings)
        result = await service.run(agent.id)

        assert result.status == ExecutionStatus.completed
        memories = await repos.memories.list(agent.id)
        assert [m.content for m in memories] == ["Customer prefers email"]
        assert len(memories[0].embedding) == 32

    @pytest.mark.asyncio
    async def test_unknown_provider_fails_the_run(self, make_agent) -> None:
        agent = make_agent(llm_provider="nowhere")
        repos = InMemoryRepoBundle(agents=InMemoryAgentRepository([agent]))

        service = build_service(repos, providers=ProviderFactory(), settings=Settings(_env_file=None))
        result = await service.run(agent.id)

        assert result.success is False
        assert result.status == ExecutionStatus.failed
        assert "nowhere" in result.error

    @pytest.mark.asyncio
    async def test_in_memory_service_serves_every_backend_name(self, make_agent) -> None:
        agents = [make_agent(), make_agent(name="Twin"), make_agent(name="Gpt", llm_provider="openai")]
        provider = ScriptedProvider([FINISH])

        service, _ = build_in_memory_service(agents, provider)

        for agent in agents:
            assert (await service.run(agent.id)).status == ExecutionStatus.completed
        assert len(provider.calls) == 3
