"""Model backends used by the material generator."""

from __future__ import annotations

from ..config import AppConfig
from .ollama import OllamaProvider
from .openrouter import OpenRouterProvider
from .provider import (
    ChatChunk,
    ChatRequest,
    LLMProvider,
    LLMProviderError,
    Message,
    RoutingProvider,
)


def build_provider(config: AppConfig) -> RoutingProvider:
    """Return a routing provider with OpenRouter and Ollama registered.

    ``llm.provider`` selects which one handles unprefixed model names.
    """

    openrouter = OpenRouterProvider(config.llm.api_key, base_url=config.llm.base_url)
    ollama = OllamaProvider(config.llm.ollama_url)
    default = ollama if config.llm.provider == "ollama" else openrouter
    router = RoutingProvider(default)
    router.register("openrouter", openrouter)
    router.register("ollama", ollama)
    return router


__all__ = [
    "ChatChunk",
    "ChatRequest",
    "LLMProvider",
    "LLMProviderError",
    "Message",
    "OllamaProvider",
    "OpenRouterProvider",
    "RoutingProvider",
    "build_provider",
]
