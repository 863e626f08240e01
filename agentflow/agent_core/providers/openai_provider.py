"""OpenAI completion provider.

Supports tool-calling chat completions, streaming and text embeddings through
the official ``openai`` SDK. Every SDK failure is re-raised as
``ProviderError``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from openai import AsyncOpenAI, OpenAIError

from ..errors import ProviderError
from ..schemas.domain import Message, MessageRole, ToolCall
from .base import CompletionOptions, CompletionProvider, CompletionResponse, StreamChunk

logger = logging.getLogger(__name__)


def _to_openai_message(message: Message) -> Dict[str, Any]:
    if message.role == MessageRole.tool and not message.tool_call_id:
        # A tool result without a call id cannot be threaded; send it as user text.
        return {"role": "user", "content": message.content}
    payload: Dict[str, Any] = {"role": message.role.value, "content": message.content}
    if message.tool_call_id:
        payload["tool_call_id"] = message.tool_call_id
    if message.tool_calls:
        payload["tool_calls"] = [
            {
                "id": tc.id,
                "type": "function",
                "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
            }
            for tc in message.tool_calls
        ]
    return payload


def _parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Discarding unparsable tool call arguments: {raw[:200]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class OpenAIProvider(CompletionProvider):
    """Chat completions, tool calling and embeddings via ``AsyncOpenAI``."""

    name = "openai"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = "gpt-4o",
        embedding_model: str = "text-embedding-3-small",
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
            api_key: OpenAI API key; falls back to ``OPENAI_API_KEY``.
            base_url: Optional custom endpoint.
            model: Default chat model when options do not name one.
            embedding_model: Model used by ``embed``.
            client: Pre-built client, mainly for tests.
        """
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._model = model
        self._embedding_model = embedding_model

    def _request(self, messages: Sequence[Message], options: CompletionOptions) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": options.model or self._model,
            "messages": [_to_openai_message(m) for m in messages],
        }
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.max_tokens is not None:
            kwargs["max_tokens"] = options.max_tokens
        if options.response_format == "json":
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    async def _create(self, kwargs: Dict[str, Any]) -> CompletionResponse:
        try:
            resp = await self._client.chat.completions.create(**kwargs)
        except OpenAIError as e:
            raise ProviderError(self.name, str(e)) from e

        choice = resp.choices[0]
        tool_calls: List[ToolCall] = [
            ToolCall(id=tc.id, name=tc.function.name, arguments=_parse_arguments(tc.function.arguments))
            for tc in (choice.message.tool_calls or [])
            if getattr(tc, "function", None) is not None
        ]
        usage = resp.usage
        return CompletionResponse(
            content=choice.message.content or "",
            tokens_in=usage.prompt_tokens if usage else 0,
            tokens_out=usage.completion_tokens if usage else 0,
            finish_reason=choice.finish_reason,
            tool_calls=tool_calls,
            model=resp.model,
        )

    async def complete(self, messages: Sequence[Message], options: CompletionOptions) -> CompletionResponse:
        return await self._create(self._request(messages, options))

    async def complete_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[Dict[str, Any]],
        options: CompletionOptions,
    ) -> CompletionResponse:
        kwargs = self._request(messages, options)
        if tools:
            kwargs["tools"] = list(tools)
            kwargs["tool_choice"] = "auto"
        return await self._create(kwargs)

    async def stream(self, messages: Sequence[Message], options: CompletionOptions) -> AsyncIterator[StreamChunk]:
        kwargs = self._request(messages, options)
        try:
            events = await self._client.chat.completions.create(stream=True, **kwargs)
            async for event in events:
                if not event.choices:
                    continue
                delta = event.choices[0].delta.content
                if delta:
                    yield StreamChunk(delta=delta)
        except OpenAIError as e:
            raise ProviderError(self.name, str(e)) from e
        yield StreamChunk(done=True)

    async def embed(self, text: str) -> List[float]:
        try:
            resp = await self._client.embeddings.create(model=self._embedding_model, input=text)
        except OpenAIError as e:
            raise ProviderError(self.name, str(e)) from e
        return list(resp.data[0].embedding)
