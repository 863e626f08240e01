from __future__ import annotations

"""Convenience factories for wiring the agent core.

``build_service`` assembles registry, rate limiter, risk assessor, approval
gate, dispatcher, memory manager and executor over any repository bundle.
``build_in_memory_service`` does the same over in-process repositories with a
single completion provider, which keeps tests and builder consoles concise.
"""

from datetime import timedelta
from typing import Any, Dict, Iterable, Optional, Tuple

from agentflow.core.config import Settings, settings as default_settings

from .approval.gate import ApprovalGate, Notifier
from .dispatch.dispatcher import ToolDispatcher
from .dispatch.rate_limiter import RateLimiter
from .memory.manager import MemoryManager
from .policy.models import ApprovalPolicy, RiskPolicy
from .policy.risk import RiskAssessor
from .providers.base import CompletionProvider, EmbeddingProvider
from .providers.factory import ProviderFactory
from .providers.testing import HashEmbeddingProvider
from .repos.memory import InMemoryAgentRepository, InMemoryRepoBundle
from .runtime import AgentExecutor, ExecutorDeps
from .schemas.domain import AgentConfig
from .service import AgentService
from .tools.base import ToolDefinition
from .tools.builtin import build_default_registry


def build_service(
    repos: Any,
    *,
    providers: ProviderFactory,
    settings: Optional[Settings] = None,
    tools: Iterable[ToolDefinition] = (),
    embedder: Optional[EmbeddingProvider] = None,
    notifier: Optional[Notifier] = None,
    tool_services: Optional[Dict[str, Any]] = None,
    rate_limiter: Optional[RateLimiter] = None,
    risk_policy: Optional[RiskPolicy] = None,
    approval_policy: Optional[ApprovalPolicy] = None,
) -> AgentService:
    """
    Wire an ``AgentService`` over a repository bundle.

    Args:
        repos: ``SqlRepoBundle`` or ``InMemoryRepoBundle``.
        providers: Completion providers, resolved per agent by ``llm_provider``.
        settings: Defaults to the process settings.
        tools: Extra tools registered next to the builtins.
        embedder: Embedding backend for memories; defaults to hashed
            pseudo-embeddings of ``settings.memory.embedding_dim``.
        notifier: Called after every approval request is created.
        tool_services: Collaborators exposed to tool handlers.
        rate_limiter: Share one limiter between services in the same process.
    """
    cfg = settings or default_settings
    risk_policy = risk_policy or RiskPolicy(bulk_recipient_threshold=cfg.risk.bulk_recipient_threshold)

    gate = ApprovalGate(
        approvals=repos.approvals,
        executions=repos.executions,
        ttl=timedelta(hours=cfg.runtime.approval_ttl_hours),
        cancel_on_expiry=cfg.runtime.cancel_on_expiry,
        notifier=notifier,
    )
    dispatcher = ToolDispatcher(
        registry=build_default_registry(*tools),
        rate_limiter=rate_limiter or RateLimiter(),
        risk_assessor=RiskAssessor(risk_policy, approval_policy),
        approvals=gate,
        tool_logs=repos.tool_logs,
    )
    memory = MemoryManager(
        memories=repos.memories,
        episodes=repos.episodes,
        conversations=repos.conversations,
        embedder=embedder or HashEmbeddingProvider(dim=cfg.memory.embedding_dim),
        config=cfg.memory,
    )
    executor = AgentExecutor(
        ExecutorDeps(
            agents=repos.agents,
            executions=repos.executions,
            steps=repos.steps,
            dispatcher=dispatcher,
            memory=memory,
            providers=providers,
            config=cfg.runtime,
            tool_services=dict(tool_services or {}),
        )
    )
    return AgentService(executor=executor, gate=gate, executions=repos.executions)


def build_in_memory_service(
    agents: Iterable[AgentConfig],
    provider: CompletionProvider,
    **kwargs: Any,
) -> Tuple[AgentService, InMemoryRepoBundle]:
    """
    Wire a service over fresh in-process repositories.

    ``provider`` is registered under every ``llm_provider`` name used by
    ``agents``, so each agent talks to it regardless of its configured backend.
    """
    agents = list(agents)
    repos = InMemoryRepoBundle(agents=InMemoryAgentRepository(agents))
    providers = ProviderFactory()
    for agent in agents:
        if not providers.is_registered(agent.llm_provider):
            providers.register_instance(agent.llm_provider, provider)
    kwargs.setdefault("embedder", provider)
    return build_service(repos, providers=providers, **kwargs), repos
