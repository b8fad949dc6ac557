"""OpenRouter provider implementation using the openai SDK."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional

import openai
from openai import OpenAI

from .provider import ChatChunk, ChatRequest, LLMProviderError, Message


LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


def _usage_cost(usage: Any) -> float:
    """Return the ``cost`` OpenRouter reports next to the token counts."""

    cost = getattr(usage, "cost", None)
    if cost is None:
        extra = getattr(usage, "model_extra", None) or {}
        cost = extra.get("cost")
    try:
        return float(cost or 0.0)
    except (TypeError, ValueError):
        return 0.0


def _chunk_from_usage(text: str, usage: Any) -> ChatChunk:
    if usage is None:
        return ChatChunk(text=text)
    return ChatChunk(
        text=text,
        input_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
        output_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
        cost=_usage_cost(usage),
    )


def _convert_message(message: Message) -> Dict[str, Any]:
    if not message.images:
        return {"role": message.role, "content": message.content}
    parts: List[Dict[str, Any]] = [{"type": "text", "text": message.content}]
    for image in message.images:
        parts.append({"type": "image_url", "image_url": {"url": image}})
    return {"role": message.role, "content": parts}


class OpenRouterProvider:
    """Streamed chat completions through OpenRouter's OpenAI-compatible API."""

    name = "openrouter"

    def __init__(
        self,
        api_key: Optional[str],
        *,
        base_url: str = DEFAULT_BASE_URL,
        referer: Optional[str] = None,
        title: Optional[str] = "Lecture Studio",
        client: Optional[OpenAI] = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url or DEFAULT_BASE_URL
        self._referer = referer
        self._title = title
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise LLMProviderError("OpenRouter API key is not configured")
        default_headers = {}
        if self._referer:
            default_headers["HTTP-Referer"] = self._referer
        if self._title:
            default_headers["X-Title"] = self._title
        self._client = OpenAI(
            api_key=self._api_key,
            base_url=self._base_url,
            default_headers=default_headers or None,
        )
        return self._client

    def chat(self, request: ChatRequest) -> Iterator[ChatChunk]:
        client = self._get_client()
        model = request.model
        if model.startswith("openrouter:"):
            model = model[len("openrouter:"):]
        messages = [_convert_message(message) for message in request.messages]

        try:
            if not request.stream:
                response = client.chat.completions.create(
                    model=model,
                    messages=messages,
                    extra_body={"usage": {"include": True}},
                )
                text = ""
                if response.choices:
                    text = response.choices[0].message.content or ""
                yield _chunk_from_usage(text, response.usage)
                return

            stream = client.chat.completions.create(
                model=model,
                messages=messages,
                stream=True,
                stream_options={"include_usage": True},
                extra_body={"usage": {"include": True}},
            )
            for chunk in stream:
                text = ""
                if chunk.choices:
                    text = chunk.choices[0].delta.content or ""
                usage = getattr(chunk, "usage", None)
                if text or usage is not None:
                    yield _chunk_from_usage(text, usage)
        except openai.OpenAIError as error:
            LOGGER.debug("OpenRouter request for %s failed: %s", model, error)
            raise LLMProviderError(f"openrouter request failed: {error}") from error


__all__ = ["DEFAULT_BASE_URL", "OpenRouterProvider"]
