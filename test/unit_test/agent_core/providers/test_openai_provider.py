from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
from openai import OpenAIError

from agentflow.agent_core.errors import ProviderError
from agentflow.agent_core.providers.base import CompletionOptions
from agentflow.agent_core.providers.openai_provider import OpenAIProvider
from agentflow.agent_core.schemas.domain import Message, MessageRole, ToolCall


def _completion(content: str = "", tool_calls: List[Any] | None = None) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(content=content, tool_calls=tool_calls),
                finish_reason="tool_calls" if tool_calls else "stop",
            )
        ],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=4),
        model="gpt-4o-2024",
    )


class _Stream:
    def __init__(self, deltas: List[str]) -> None:
        self._events = [SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=d))]) for d in deltas]
        self._events.append(SimpleNamespace(choices=[]))

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for event in self._events:
            yield event


class _FakeCompletions:
    def __init__(self, response: Any = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.requests: List[Dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


class _FakeEmbeddings:
    async def create(self, **kwargs: Any) -> Any:
        return SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2, 0.3])])


def _client(completions: _FakeCompletions) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions), embeddings=_FakeEmbeddings())


@pytest.mark.asyncio
async def test_complete_maps_response_and_request() -> None:
    completions = _FakeCompletions(_completion('{"action": "finish"}'))
    provider = OpenAIProvider(client=_client(completions), model="gpt-4o")

    response = await provider.complete(
        [Message(role=MessageRole.system, content="sys"), Message(role=MessageRole.user, content="hi")],
        CompletionOptions(temperature=0.3, max_tokens=100, response_format="json"),
    )

    assert response.content == '{"action": "finish"}'
    assert (response.tokens_in, response.tokens_out) == (12, 4)
    assert response.model == "gpt-4o-2024"
    request = completions.requests[0]
    assert request["model"] == "gpt-4o"
    assert request["messages"] == [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}]
    assert request["temperature"] == 0.3
    assert request["max_tokens"] == 100
    assert request["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_tool_calls_are_parsed() -> None:
    raw = [
        SimpleNamespace(id="call_1", function=SimpleNamespace(name="echo", arguments='{"message": "hi"}')),
        SimpleNamespace(id="call_2", function=SimpleNamespace(name="get_current_time", arguments="not json")),
    ]
    completions = _FakeCompletions(_completion("", raw))
    provider = OpenAIProvider(client=_client(completions))
    catalog = [{"type": "function", "function": {"name": "echo", "description": "", "parameters": {}}}]

    response = await provider.complete_with_tools([Message(role=MessageRole.user, content="go")], catalog, CompletionOptions())

    assert [(c.id, c.name, c.arguments) for c in response.tool_calls] == [
        ("call_1", "echo", {"message": "hi"}),
        ("call_2", "get_current_time", {}),
    ]
    assert completions.requests[0]["tools"] == catalog
    assert completions.requests[0]["tool_choice"] == "auto"


@pytest.mark.asyncio
async def test_tool_messages_are_threaded() -> None:
    completions = _FakeCompletions(_completion("ok"))
    provider = OpenAIProvider(client=_client(completions))
    call = ToolCall(id="call_1", name="echo", arguments={"message": "hi"})

    await provider.complete(
        [
            Message(role=MessageRole.assistant, content="", tool_calls=[call]),
            Message(role=MessageRole.tool, content='{"echo": "hi"}', tool_call_id="call_1"),
            Message(role=MessageRole.tool, content="orphan result"),
        ],
        CompletionOptions(),
    )

    sent = completions.requests[0]["messages"]
    assert sent[0]["tool_calls"][0]["function"] == {"name": "echo", "arguments": json.dumps({"message": "hi"})}
    assert sent[1] == {"role": "tool", "content": '{"echo": "hi"}', "tool_call_id": "call_1"}
    assert sent[2] == {"role": "user", "content": "orphan result"}


@pytest.mark.asyncio
async def test_sdk_errors_become_provider_errors() -> None:
    provider = OpenAIProvider(client=_client(_FakeCompletions(error=OpenAIError("quota exceeded"))))

    with pytest.raises(ProviderError, match="quota exceeded"):
        await provider.complete([Message(role=MessageRole.user, content="hi")], CompletionOptions())


@pytest.mark.asyncio
async def test_stream_and_embed() -> None:
    provider = OpenAIProvider(client=_client(_FakeCompletions(_Stream(["Hel", "lo", ""]))))

    chunks = [c async for c in provider.stream([Message(role=MessageRole.user, content="hi")], CompletionOptions())]

    assert [c.delta for c in chunks[:-1]] == ["Hel", "lo"]
    assert chunks[-1].done is True
    assert await provider.embed("text") == [0.1, 0.2, 0.3]
