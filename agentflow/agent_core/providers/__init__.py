"""Completion provider interface and backends."""

from .base import (
    CompletionOptions,
    CompletionProvider,
    CompletionResponse,
    EmbeddingProvider,
    StreamChunk,
)
from .factory import ProviderFactory, build_default_factory, create_provider
from .testing import HashEmbeddingProvider, ScriptedProvider, tool_call_response

__all__ = [
    "CompletionOptions",
    "CompletionProvider",
    "CompletionResponse",
    "EmbeddingProvider",
    "HashEmbeddingProvider",
    "ProviderFactory",
    "ScriptedProvider",
    "StreamChunk",
    "build_default_factory",
    "create_provider",
    "tool_call_response",
]
