"""Deterministic providers for tests, local development and builder consoles.

``HashEmbeddingProvider`` produces bag-of-words pseudo-embeddings: each token
seeds a normal vector from its SHA-256 digest and the token vectors are summed
and normalized. Identical texts embed identically and texts that share words
land close together, with no network access.

``ScriptedProvider`` replays a fixed list of responses.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from ..errors import ProviderError
from ..schemas.domain import Message, ToolCall
from .base import CompletionOptions, CompletionProvider, CompletionResponse, EmbeddingProvider, StreamChunk

_TOKEN = re.compile(r"\w+")


def _token_vector(token: str, dim: int) -> np.ndarray:
    digest = hashlib.sha256(token.encode("utf-8")).digest()
    rng = np.random.default_rng(int.from_bytes(digest[:8], "big", signed=False))
    return rng.normal(size=dim)


class HashEmbeddingProvider(EmbeddingProvider):
    def __init__(self, dim: int = 256) -> None:
        self._dim = dim

    async def embed(self, text: str) -> List[float]:
        vector = np.zeros(self._dim)
        for token in _TOKEN.findall(text.lower()):
            vector += _token_vector(token, self._dim)
        norm = np.linalg.norm(vector)
        if norm == 0:
            return vector.tolist()
        return (vector / norm).tolist()


ScriptStep = Union[CompletionResponse, str, Dict[str, Any], Exception, Callable[[Sequence[Message]], Any]]


def _coerce(step: Any) -> CompletionResponse:
    if isinstance(step, CompletionResponse):
        return step
    if isinstance(step, str):
        return CompletionResponse(content=step, tokens_in=10, tokens_out=5, finish_reason="stop")
    if isinstance(step, dict):
        # A decision dict, serialized the way a JSON-mode model would answer.
        return CompletionResponse(content=json.dumps(step), tokens_in=10, tokens_out=5, finish_reason="stop")
    raise TypeError(f"unsupported scripted step: {step!r}")


def tool_call_response(name: str, arguments: Optional[Dict[str, Any]] = None, content: str = "") -> CompletionResponse:
    """Build a response carrying one native tool call."""
    return CompletionResponse(
        content=content,
        tokens_in=10,
        tokens_out=5,
        finish_reason="tool_calls",
        tool_calls=[ToolCall(name=name, arguments=dict(arguments or {}))],
    )


class ScriptedProvider(CompletionProvider):
    """Replays scripted responses in order; the last one repeats forever.

    Steps may be ``CompletionResponse`` objects, raw strings, decision dicts,
    exceptions (raised as ``ProviderError``) or callables receiving the
    message list.
    """

    name = "scripted"

    def __init__(self, script: Sequence[ScriptStep], *, embedder: Optional[EmbeddingProvider] = None) -> None:
        if not script:
            raise ValueError("script must contain at least one step")
        self._script = list(script)
        self._embedder = embedder or HashEmbeddingProvider()
        self.calls: List[Dict[str, Any]] = []

    def _next(self, messages: Sequence[Message]) -> CompletionResponse:
        idx = min(len(self.calls) - 1, len(self._script) - 1)
        step = self._script[idx]
        if isinstance(step, Exception):
            raise ProviderError(self.name, str(step)) from step
        if callable(step):
            step = step(messages)
        return _coerce(step)

    async def complete(self, messages: Sequence[Message], options: CompletionOptions) -> CompletionResponse:
        self.calls.append({"messages": list(messages), "tools": [], "options": options})
        return self._next(messages)

    async def complete_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[Dict[str, Any]],
        options: CompletionOptions,
    ) -> CompletionResponse:
        self.calls.append({"messages": list(messages), "tools": list(tools), "options": options})
        return self._next(messages)

    async def stream(self, messages: Sequence[Message], options: CompletionOptions) -> AsyncIterator[StreamChunk]:
        response = await self.complete(messages, options)
        for word in re.split(r"(\s+)", response.content):
            if word:
                yield StreamChunk(delta=word)
        yield StreamChunk(done=True)

    async def embed(self, text: str) -> List[float]:
        return await self._embedder.embed(text)
