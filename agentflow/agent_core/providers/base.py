"""Completion provider abstraction.

The executor and the memory subsystem depend only on ``CompletionProvider``.
Backends are interchangeable; one that cannot embed text must raise
``ProviderError`` from ``embed`` rather than return a degraded vector.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import Message, ToolCall


class CompletionOptions(BaseSchema):
    """Per-call generation settings."""

    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    response_format: Optional[str] = Field(default=None, description="'json' or 'text'")


class CompletionResponse(BaseSchema):
    """Normalized completion result."""

    content: str = ""
    tokens_in: int = 0
    tokens_out: int = 0
    finish_reason: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    model: Optional[str] = None

    @property
    def tokens_total(self) -> int:
        return self.tokens_in + self.tokens_out


class StreamChunk(BaseSchema):
    """One piece of a streamed completion; the last chunk has ``done=True``."""

    delta: str = ""
    done: bool = False


class EmbeddingProvider(ABC):
    """Anything that can turn text into a vector."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Return the embedding vector for ``text``."""


class CompletionProvider(EmbeddingProvider):
    """Abstract base for language-model backends.

    Attributes:
        name: Registry name of the backend (``openai``, ``pydantic_ai`` ...).
    """

    name: str = "base"

    @abstractmethod
    async def complete(self, messages: Sequence[Message], options: CompletionOptions) -> CompletionResponse:
        """Generate a plain completion for ``messages``."""

    @abstractmethod
    async def complete_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[Dict[str, Any]],
        options: CompletionOptions,
    ) -> CompletionResponse:
        """Generate a completion that may include native tool calls.

        Args:
            messages: The running conversation.
            tools: Catalog entries in function-calling format
                (``ToolDefinition.to_openai_tool``).
            options: Generation settings.
        """

    @abstractmethod
    def stream(self, messages: Sequence[Message], options: CompletionOptions) -> AsyncIterator[StreamChunk]:
        """Yield content deltas, terminated by a chunk with ``done=True``."""
