"""Gemini LLM provider -- calls the Google Generative Language API via httpx.

No SDK dependency. Direct HTTP calls to the generateContent endpoint.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

PLUGIN_META = {
    "name": "gemini",
    "display_name": "Google Gemini",
    "description": "Gemini models via the Generative Language API",
    "category": "ai_provider",
    "protocols": ["llm"],
    "class_name": "GeminiProvider",
    "env_var": "GEMINI_API_KEY",
    "default_model": "gemini-2.5-flash",
}

_DEFAULT_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProvider:
    """LLM provider for the Google Gemini API.

    Implements the LLMProvider protocol. OpenAI-style messages are mapped
    to Gemini contents: the system message becomes `systemInstruction` and
    the assistant role becomes `model`.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str = _DEFAULT_URL,
        max_tokens: int = 4096,
        temperature: float = 0.3,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=120.0,
            headers={
                "x-goog-api-key": api_key,
                "Content-Type": "application/json",
            },
        )

    @property
    def name(self) -> str:
        return "gemini"

    async def complete(self, messages: list[dict], **kwargs: Any) -> str:
        """Send messages and return the concatenated text of the first candidate."""
        model = kwargs.get("model", self._model)
        system_text, contents = self._to_contents(messages)

        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": kwargs.get("max_tokens", self._max_tokens),
                "temperature": kwargs.get("temperature", self._temperature),
            },
        }
        if kwargs.get("json_mode"):
            body["generationConfig"]["responseMimeType"] = "application/json"
        if system_text:
            body["systemInstruction"] = {"parts": [{"text": system_text}]}

        url = f"{self._base_url}/models/{model}:generateContent"
        response = await self._client.post(url, json=body)
        response.raise_for_status()
        data = response.json()

        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback", {})
            raise RuntimeError(f"Gemini returned no candidates: {feedback}")

        parts = candidates[0].get("content", {}).get("parts", [])
        return "".join(part.get("text", "") for part in parts)

    @staticmethod
    def _to_contents(messages: list[dict]) -> tuple[str, list[dict]]:
        """Split out the system prompt and convert the rest to Gemini contents."""
        system_parts: list[str] = []
        contents: list[dict] = []
        for msg in messages:
            role = str(msg.get("role", "user"))
            text = str(msg.get("content", ""))
            if role == "system":
                system_parts.append(text)
                continue
            contents.append({
                "role": "model" if role == "assistant" else "user",
                "parts": [{"text": text}],
            })
        return "\n\n".join(system_parts), contents

    async def close(self) -> None:
        await self._client.aclose()
