"""OpenAI-compatible chat provider over plain httpx.

Talks to any server exposing /chat/completions: OpenAI itself, Azure,
OpenRouter, or a local model server. An empty API key sends no
Authorization header, which is what most local servers expect.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

PLUGIN_META = {
    "name": "openai",
    "display_name": "OpenAI-compatible chat",
    "description": "GPT or any model behind an OpenAI-style /chat/completions endpoint",
    "category": "ai_provider",
    "protocols": ["llm"],
    "class_name": "OpenAIProvider",
    "env_var": "OPENAI_API_KEY",
    "default_model": "gpt-4o",
}

_DEFAULT_BASE = "https://api.openai.com/v1"
_COMPLETIONS_PATH = "/chat/completions"


class OpenAIProvider:
    """Implements the LLMProvider protocol for chat completion APIs.

    `base_url` may be the API root (".../v1") or the full completions URL.
    complete() accepts `json_mode=True` to request a JSON object response.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o",
        base_url: str = _DEFAULT_BASE,
        max_tokens: int = 4096,
        temperature: float = 0.3,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

        base_url = base_url.rstrip("/")
        if not base_url.endswith(_COMPLETIONS_PATH):
            base_url += _COMPLETIONS_PATH
        self._url = base_url

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.AsyncClient(timeout=120.0, headers=headers)

    @property
    def name(self) -> str:
        return "openai"

    async def complete(self, messages: list[dict], **kwargs: Any) -> str:
        """Return the text of the first choice. HTTP errors propagate."""
        payload: dict[str, Any] = {
            "model": kwargs.get("model") or self._model,
            "messages": messages,
            "max_tokens": kwargs.get("max_tokens", self._max_tokens),
            "temperature": kwargs.get("temperature", self._temperature),
        }
        if kwargs.get("json_mode"):
            payload["response_format"] = {"type": "json_object"}

        response = await self._client.post(self._url, json=payload)
        response.raise_for_status()
        data = response.json()

        choices = data.get("choices") or []
        if not choices:
            raise RuntimeError(f"Chat completion returned no choices: {str(data)[:200]}")
        choice = choices[0]
        if choice.get("finish_reason") == "length":
            logger.warning("Completion from %s was cut off at max_tokens", payload["model"])

        usage = data.get("usage") or {}
        logger.debug(
            "Chat completion used %s prompt + %s completion tokens",
            usage.get("prompt_tokens"), usage.get("completion_tokens"),
        )
        return (choice.get("message") or {}).get("content") or ""

    async def close(self) -> None:
        await self._client.aclose()
