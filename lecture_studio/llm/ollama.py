"""Local model provider talking to the Ollama HTTP API."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, List, Optional

import httpx

from .provider import ChatChunk, ChatRequest, LLMProviderError


LOGGER = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


def _strip_data_uri(image: str) -> str:
    # Ollama expects bare base64 without the ``data:image/...`` prefix.
    _, separator, data = image.partition(",")
    return data if separator else image


class OllamaProvider:
    name = "ollama"

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        *,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._base_url = (base_url or DEFAULT_OLLAMA_URL).rstrip("/")
        self._timeout = timeout
        self._client = client

    def _payload(self, request: ChatRequest) -> Dict[str, Any]:
        model = request.model
        if model.startswith("ollama:"):
            model = model[len("ollama:"):]
        messages: List[Dict[str, Any]] = []
        for message in request.messages:
            entry: Dict[str, Any] = {"role": message.role, "content": message.content}
            if message.images:
                entry["images"] = [_strip_data_uri(image) for image in message.images]
            messages.append(entry)
        return {"model": model, "messages": messages, "stream": request.stream}

    def chat(self, request: ChatRequest) -> Iterator[ChatChunk]:
        payload = self._payload(request)
        url = f"{self._base_url}/api/chat"
        client = self._client or httpx.Client(timeout=self._timeout)
        try:
            with client.stream("POST", url, json=payload) as response:
                if response.status_code != 200:
                    body = response.read().decode("utf-8", errors="ignore")
                    raise LLMProviderError(
                        f"ollama API returned status {response.status_code}: {body}"
                    )
                for line in response.iter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError as error:
                        raise LLMProviderError(
                            f"failed to decode ollama response line: {line}"
                        ) from error
                    text = str((data.get("message") or {}).get("content") or "")
                    done = bool(data.get("done"))
                    if done:
                        yield ChatChunk(
                            text=text,
                            input_tokens=int(data.get("prompt_eval_count") or 0),
                            output_tokens=int(data.get("eval_count") or 0),
                        )
                    elif text:
                        yield ChatChunk(text=text)
        except httpx.HTTPError as error:
            LOGGER.debug("Ollama request to %s failed: %s", url, error)
            raise LLMProviderError(f"ollama request failed: {error}") from error
        finally:
            if self._client is None:
                client.close()


__all__ = ["DEFAULT_OLLAMA_URL", "OllamaProvider"]
