from __future__ import annotations

import json

import numpy as np
import pytest

from agentflow.agent_core.errors import ProviderError
from agentflow.agent_core.providers.base import CompletionOptions, CompletionResponse
from agentflow.agent_core.providers.testing import HashEmbeddingProvider, ScriptedProvider, tool_call_response
from agentflow.agent_core.schemas.domain import Message, MessageRole

MESSAGES = [Message(role=MessageRole.user, content="hello")]


@pytest.mark.asyncio
async def test_steps_replay_in_order_and_last_repeats() -> None:
    provider = ScriptedProvider(["first", {"action": "finish"}])

    a = await provider.complete(MESSAGES, CompletionOptions())
    b = await provider.complete_with_tools(MESSAGES, [{"type": "function"}], CompletionOptions())
    c = await provider.complete(MESSAGES, CompletionOptions())

    assert a.content == "first"
    assert json.loads(b.content) == {"action": "finish"}
    assert c.content == b.content
    assert len(provider.calls) == 3
    assert provider.calls[1]["tools"] == [{"type": "function"}]
    assert a.tokens_total == 15


@pytest.mark.asyncio
async def test_exception_steps_raise_provider_error() -> None:
    provider = ScriptedProvider([ValueError("rate limited")])

    with pytest.raises(ProviderError, match="rate limited"):
        await provider.complete(MESSAGES, CompletionOptions())


@pytest.mark.asyncio
async def test_callable_steps_see_messages() -> None:
    provider = ScriptedProvider([lambda messages: f"saw {len(messages)}"])

    response = await provider.complete(MESSAGES, CompletionOptions())

    assert response.content == "saw 1"


@pytest.mark.asyncio
async def test_tool_call_response_and_explicit_response() -> None:
    explicit = CompletionResponse(content="x", tokens_in=1, tokens_out=2)
    provider = ScriptedProvider([tool_call_response("echo", {"message": "hi"}), explicit])

    first = await provider.complete_with_tools(MESSAGES, [], CompletionOptions())
    second = await provider.complete(MESSAGES, CompletionOptions())

    assert first.tool_calls[0].name == "echo"
    assert first.tool_calls[0].arguments == {"message": "hi"}
    assert second is explicit


@pytest.mark.asyncio
async def test_stream_yields_words_then_done() -> None:
    provider = ScriptedProvider(["one two"])

    chunks = [c async for c in provider.stream(MESSAGES, CompletionOptions())]

    assert "".join(c.delta for c in chunks) == "one two"
    assert chunks[-1].done is True


def test_empty_script_is_rejected() -> None:
    with pytest.raises(ValueError):
        ScriptedProvider([])


@pytest.mark.asyncio
async def test_hash_embeddings_are_deterministic_and_normalized() -> None:
    embedder = HashEmbeddingProvider(dim=32)

    a = await embedder.embed("Customer prefers email")
    b = await embedder.embed("customer prefers email")
    c = await embedder.embed("quarterly revenue report")
    empty = await embedder.embed("")

    assert a == b
    assert len(a) == 32
    assert np.linalg.norm(a) == pytest.approx(1.0)
    assert float(np.dot(a, c)) < 0.99
    assert empty == [0.0] * 32
