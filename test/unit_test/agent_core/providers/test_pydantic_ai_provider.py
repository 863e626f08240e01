from __future__ import annotations

from types import SimpleNamespace
from typing import List

import pytest
from pydantic_ai.messages import ModelMessage, ModelResponse, TextPart
from pydantic_ai.models.function import AgentInfo, FunctionModel
from pydantic_ai.models.test import TestModel

from agentflow.agent_core.errors import ProviderError
from agentflow.agent_core.providers.base import CompletionOptions
from agentflow.agent_core.providers.pydantic_ai_provider import PydanticAIProvider, _usage_tokens
from agentflow.agent_core.providers.testing import HashEmbeddingProvider
from agentflow.agent_core.schemas.domain import Message, MessageRole

MESSAGES = [
    Message(role=MessageRole.system, content="You are a CRM assistant."),
    Message(role=MessageRole.user, content="A contact was created."),
]
CATALOG = [
    {
        "type": "function",
        "function": {
            "name": "echo",
            "description": "Return the given message unchanged.",
            "parameters": {"type": "object", "properties": {"message": {"type": "string"}}},
        },
    }
]


def _capturing_model(seen: List[List[ModelMessage]], reply: str) -> FunctionModel:
    def _respond(messages: List[ModelMessage], info: AgentInfo) -> ModelResponse:
        seen.append(messages)
        return ModelResponse(parts=[TextPart(reply)])

    return FunctionModel(_respond)


def _parts_of_kind(messages: List[ModelMessage], kind: str) -> List[str]:
    return [p.content for m in messages for p in m.parts if getattr(p, "part_kind", None) == kind]


@pytest.mark.asyncio
async def test_complete_returns_model_text() -> None:
    provider = PydanticAIProvider(TestModel(custom_output_text='{"action": "finish"}'))

    response = await provider.complete(MESSAGES, CompletionOptions(temperature=0.1, max_tokens=50))

    assert response.content == '{"action": "finish"}'
    assert response.finish_reason == "stop"
    assert response.tool_calls == []


@pytest.mark.asyncio
async def test_catalog_is_rendered_into_system_prompt() -> None:
    seen: List[List[ModelMessage]] = []
    provider = PydanticAIProvider(_capturing_model(seen, "done"))

    response = await provider.complete_with_tools(MESSAGES, CATALOG, CompletionOptions())

    assert response.content == "done"
    system = "\n".join(_parts_of_kind(seen[0], "system-prompt"))
    assert "You are a CRM assistant." in system
    assert "## Tool Catalog" in system
    assert "- echo: Return the given message unchanged." in system
    user = "\n".join(_parts_of_kind(seen[0], "user-prompt"))
    assert "[user]\nA contact was created." in user


@pytest.mark.asyncio
async def test_model_failures_become_provider_errors() -> None:
    def _boom(messages: List[ModelMessage], info: AgentInfo) -> ModelResponse:
        raise RuntimeError("upstream 500")

    provider = PydanticAIProvider(FunctionModel(_boom))

    with pytest.raises(ProviderError, match="upstream 500"):
        await provider.complete(MESSAGES, CompletionOptions())


@pytest.mark.asyncio
async def test_stream_yields_text_then_done() -> None:
    provider = PydanticAIProvider(TestModel(custom_output_text="streamed reply"))

    chunks = [c async for c in provider.stream(MESSAGES, CompletionOptions())]

    assert "".join(c.delta for c in chunks) == "streamed reply"
    assert chunks[-1].done is True


@pytest.mark.asyncio
async def test_embed_requires_embedding_backend() -> None:
    with pytest.raises(ProviderError, match="embeddings are not supported"):
        await PydanticAIProvider(TestModel()).embed("text")

    vector = await PydanticAIProvider(TestModel(), embedder=HashEmbeddingProvider(dim=16)).embed("text")
    assert len(vector) == 16


def test_bare_model_names_are_qualified() -> None:
    provider = PydanticAIProvider("gpt-4o")

    assert provider._resolve_model(CompletionOptions()) == "openai:gpt-4o"
    assert provider._resolve_model(CompletionOptions(model="anthropic:claude")) == "anthropic:claude"


@pytest.mark.asyncio
async def test_complete_reports_token_usage() -> None:
    provider = PydanticAIProvider(TestModel(custom_output_text="two words"))

    response = await provider.complete(MESSAGES, CompletionOptions())

    assert response.tokens_in > 0
    assert response.tokens_out > 0


@pytest.mark.parametrize(
    "result",
    [
        SimpleNamespace(usage=SimpleNamespace(input_tokens=12, output_tokens=3)),
        SimpleNamespace(usage=lambda: SimpleNamespace(input_tokens=12, output_tokens=3)),
        SimpleNamespace(usage=lambda: SimpleNamespace(request_tokens=12, response_tokens=3)),
    ],
    ids=["attribute", "method", "legacy-names"],
)
def test_usage_is_read_from_attribute_or_method(result) -> None:
    assert _usage_tokens(result) == (12, 3)


def test_missing_usage_counts_as_zero() -> None:
    assert _usage_tokens(SimpleNamespace(usage=None)) == (0, 0)
    assert _usage_tokens(SimpleNamespace()) == (0, 0)
