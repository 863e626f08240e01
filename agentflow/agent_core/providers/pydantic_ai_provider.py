"""Pydantic AI completion provider.

Text-only backend built on ``pydantic_ai.Agent``. It can drive the reasoning
step of the ReAct loop (the think prompt asks for a JSON decision, so native
tool calling is not required) but has no embedding endpoint of its own:
``embed`` delegates to an injected ``EmbeddingProvider`` and raises
``ProviderError`` when none is configured.
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union

from pydantic_ai import Agent
from pydantic_ai.models import Model

from agentflow.core.logging_config import get_logger

from ..errors import ProviderError
from ..schemas.domain import Message, MessageRole
from .base import (
    CompletionOptions,
    CompletionProvider,
    CompletionResponse,
    EmbeddingProvider,
    StreamChunk,
)

logger = get_logger(__name__)


def _split_messages(messages: Sequence[Message]) -> Tuple[str, str]:
    """Return ``(system_prompt, transcript)`` for a message list."""
    system_parts: List[str] = []
    turns: List[str] = []
    for m in messages:
        if m.role == MessageRole.system:
            system_parts.append(m.content)
        else:
            turns.append(f"[{m.role.value}]\n{m.content}")
    return "\n\n".join(system_parts), "\n\n".join(turns)


def _catalog_text(tools: Sequence[Dict[str, Any]]) -> str:
    lines = ["## Tool Catalog"]
    for entry in tools:
        fn = entry.get("function") or {}
        lines.append(f"- {fn.get('name')}: {fn.get('description', '')}")
        params = fn.get("parameters")
        if params:
            lines.append(f"  parameters: {json.dumps(params)}")
    return "\n".join(lines)


def _usage_tokens(result: Any) -> Tuple[int, int]:
    """
    Read ``(input, output)`` token counts from a run result.

    Older pydantic-ai releases expose ``usage`` as a method and name the
    counters ``request_tokens``/``response_tokens``; newer ones expose it as an
    attribute with ``input_tokens``/``output_tokens``.
    """
    usage = getattr(result, "usage", None)
    if callable(usage):
        usage = usage()
    if usage is None:
        return 0, 0
    tokens_in = getattr(usage, "input_tokens", None) or getattr(usage, "request_tokens", None) or 0
    tokens_out = getattr(usage, "output_tokens", None) or getattr(usage, "response_tokens", None) or 0
    return int(tokens_in), int(tokens_out)


class PydanticAIProvider(CompletionProvider):
    """Adapter exposing a pydantic-ai model as a ``CompletionProvider``.

    Attributes:
        _model: A pydantic-ai ``Model`` instance or a model name. Bare names
            are qualified with ``default_vendor`` (``gpt-4o`` becomes
            ``openai:gpt-4o``).
        _embedder: Optional provider used for ``embed``.
    """

    name = "pydantic_ai"

    def __init__(
        self,
        model: Union[str, Model] = "openai:gpt-4o",
        *,
        embedder: Optional[EmbeddingProvider] = None,
        default_vendor: str = "openai",
    ) -> None:
        self._model = model
        self._embedder = embedder
        self._default_vendor = default_vendor

    def _resolve_model(self, options: CompletionOptions) -> Union[str, Model]:
        if not isinstance(self._model, str):
            return self._model
        name = options.model or self._model
        return name if ":" in name else f"{self._default_vendor}:{name}"

    def _model_settings(self, options: CompletionOptions) -> Dict[str, Any]:
        settings: Dict[str, Any] = {}
        if options.temperature is not None:
            settings["temperature"] = options.temperature
        if options.max_tokens is not None:
            settings["max_tokens"] = options.max_tokens
        return settings

    async def _run(self, system_prompt: str, prompt: str, options: CompletionOptions) -> CompletionResponse:
        agent = Agent(self._resolve_model(options), output_type=str, system_prompt=system_prompt)
        try:
            result = await agent.run(prompt or "Continue.", model_settings=self._model_settings(options))
            tokens_in, tokens_out = _usage_tokens(result)
            return CompletionResponse(
                content=str(result.output),
                tokens_in=tokens_in,
                tokens_out=tokens_out,
                finish_reason="stop",
            )
        except Exception as e:
            raise ProviderError(self.name, str(e)) from e

    async def complete(self, messages: Sequence[Message], options: CompletionOptions) -> CompletionResponse:
        system_prompt, transcript = _split_messages(messages)
        return await self._run(system_prompt, transcript, options)

    async def complete_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[Dict[str, Any]],
        options: CompletionOptions,
    ) -> CompletionResponse:
        # No native tool calling: the catalog is rendered into the system prompt
        # and the caller parses the JSON decision from the text.
        system_prompt, transcript = _split_messages(messages)
        if tools:
            system_prompt = f"{system_prompt}\n\n{_catalog_text(tools)}".strip()
        return await self._run(system_prompt, transcript, options)

    async def stream(self, messages: Sequence[Message], options: CompletionOptions) -> AsyncIterator[StreamChunk]:
        system_prompt, transcript = _split_messages(messages)
        agent = Agent(self._resolve_model(options), output_type=str, system_prompt=system_prompt)
        try:
            async with agent.run_stream(
                transcript or "Continue.", model_settings=self._model_settings(options)
            ) as result:
                async for delta in result.stream_text(delta=True):
                    if delta:
                        yield StreamChunk(delta=delta)
        except Exception as e:
            raise ProviderError(self.name, str(e)) from e
        yield StreamChunk(done=True)

    async def embed(self, text: str) -> List[float]:
        if self._embedder is None:
            raise ProviderError(self.name, "embeddings are not supported; configure an embedding provider")
        return await self._embedder.embed(text)
