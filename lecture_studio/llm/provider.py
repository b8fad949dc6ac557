"""Chat request types shared by every model backend, plus prefix routing."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Dict, Iterator, List, Optional, Protocol


LOGGER = logging.getLogger(__name__)


KNOWN_PREFIXES = ("openrouter", "ollama")


class LLMProviderError(RuntimeError):
    """Raised when a model backend cannot be reached or rejects a request."""


@dataclass
class Message:
    """A chat message; ``images`` holds data URIs or URLs sent alongside the text."""

    role: str
    content: str
    images: List[str] = field(default_factory=list)


@dataclass
class ChatRequest:
    model: str
    messages: List[Message]
    stream: bool = True


@dataclass
class ChatChunk:
    """A piece of a streamed response. Usage fields are set on the final chunk."""

    text: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0


class LLMProvider(Protocol):
    name: str

    def chat(self, request: ChatRequest) -> Iterator[ChatChunk]:
        """Send *request* and yield response chunks."""


def split_model_prefix(model: str) -> tuple:
    """Return ``(provider, model)`` for ``"provider:model"`` names, else ``("", model)``."""

    if ":" not in model:
        return "", model
    prefix, remainder = model.split(":", 1)
    return prefix, remainder


class RoutingProvider:
    """Dispatch requests to a registered provider chosen by the model prefix.

    ``openrouter:google/gemini-2.5-flash-lite`` is sent to the provider
    registered as ``openrouter`` with the prefix stripped. Unprefixed names,
    or prefixes that match nothing, go to the default provider.
    """

    name = "routing-provider"

    def __init__(self, default: Optional[LLMProvider] = None) -> None:
        self._default = default
        self._providers: Dict[str, LLMProvider] = {}
        self._lock = threading.RLock()

    def register(self, name: str, provider: LLMProvider) -> None:
        with self._lock:
            self._providers[name] = provider

    def get_provider(self, name: str) -> Optional[LLMProvider]:
        with self._lock:
            return self._providers.get(name)

    def resolve(self, model: str) -> tuple:
        """Return the provider and the model name it should receive."""

        prefix, stripped = split_model_prefix(model)
        with self._lock:
            registered = self._providers.get(prefix) if prefix else None
            default = self._default

        if prefix and (registered is not None or prefix in KNOWN_PREFIXES):
            if registered is not None:
                return registered, stripped
            if default is not None and getattr(default, "name", "") == prefix:
                return default, stripped

        if default is not None:
            return default, model
        raise LLMProviderError(f"no LLM provider found for: {model}")

    def chat(self, request: ChatRequest) -> Iterator[ChatChunk]:
        provider, model = self.resolve(request.model)
        LOGGER.debug("Routing LLM request for %s to %s", model, getattr(provider, "name", provider))
        return provider.chat(replace(request, model=model))


__all__ = [
    "ChatChunk",
    "ChatRequest",
    "KNOWN_PREFIXES",
    "LLMProvider",
    "LLMProviderError",
    "Message",
    "RoutingProvider",
    "split_model_prefix",
]
