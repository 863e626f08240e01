"""Factory for creating completion providers by name.

Agents select a backend through ``AgentConfig.llm_provider``. The executor
asks a ``ProviderFactory`` for that name and caches the instance.

Usage:
    factory = ProviderFactory()
    factory.register("openai", lambda: OpenAIProvider(api_key="sk-..."))
    provider = factory.create("openai")
"""

from __future__ import annotations

from typing import Callable, Dict, Optional

from agentflow.core.config import Settings, settings as default_settings

from .base import CompletionProvider, EmbeddingProvider

ProviderBuilder = Callable[[], CompletionProvider]


class ProviderFactory:
    """Name -> builder registry with per-name instance caching."""

    def __init__(self) -> None:
        self._builders: Dict[str, ProviderBuilder] = {}
        self._instances: Dict[str, CompletionProvider] = {}

    def register(self, name: str, builder: ProviderBuilder) -> None:
        """Register a builder.

        Raises:
            ValueError: If a builder is already registered under ``name``.
        """
        if name in self._builders:
            raise ValueError(f"Provider '{name}' is already registered")
        self._builders[name] = builder

    def register_instance(self, name: str, provider: CompletionProvider) -> None:
        self.register(name, lambda: provider)

    def is_registered(self, name: str) -> bool:
        return name in self._builders

    def create(self, name: str) -> CompletionProvider:
        """Return the (cached) provider for ``name``.

        Raises:
            ValueError: If no builder is registered for ``name``.
        """
        if name not in self._instances:
            builder = self._builders.get(name)
            if builder is None:
                raise ValueError(f"Unknown completion provider: {name}")
            self._instances[name] = builder()
        return self._instances[name]


def build_default_factory(
    settings: Settings,
    *,
    embedder: Optional[EmbeddingProvider] = None,
) -> ProviderFactory:
    """Register the OpenAI and pydantic-ai backends from settings.

    The pydantic-ai backend borrows embeddings from ``embedder`` or, when not
    given, from the OpenAI backend.
    """
    from .openai_provider import OpenAIProvider
    from .pydantic_ai_provider import PydanticAIProvider

    factory = ProviderFactory()

    def _openai() -> CompletionProvider:
        return OpenAIProvider(
            api_key=settings.openai.api_key,
            base_url=settings.openai.base_url,
            model=settings.openai.model,
            embedding_model=settings.openai.embedding_model,
        )

    factory.register("openai", _openai)
    factory.register(
        "pydantic_ai",
        lambda: PydanticAIProvider(settings.openai.model, embedder=embedder or factory.create("openai")),
    )
    return factory


def create_provider(name: str, settings: Optional[Settings] = None) -> CompletionProvider:
    """Build one configured backend by name ("openai" or "pydantic_ai")."""
    return build_default_factory(settings or default_settings).create(name)
