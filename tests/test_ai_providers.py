from __future__ import annotations

import json

import httpx
import pytest

from core.protocols import LLMProvider
from plugins.ai_providers.gemini import GeminiProvider
from plugins.ai_providers.openai import OpenAIProvider

MESSAGES = [
    {"role": "system", "content": "You are an analyst."},
    {"role": "user", "content": "Forecast BTC."},
    {"role": "assistant", "content": "Need more data?"},
    {"role": "user", "content": "No, go ahead."},
]

pytestmark = pytest.mark.anyio


def recording_client(payload: dict, status: int = 200) -> tuple[httpx.AsyncClient, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status, json=payload)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


async def test_gemini_maps_messages_and_joins_parts():
    client, requests = recording_client({
        "candidates": [{"content": {"parts": [{"text": '{"direction": '}, {"text": '"UP"}'}]}}],
    })
    provider = GeminiProvider(api_key="k", model="gemini-test", base_url="https://g.test/v1beta/", client=client)

    text = await provider.complete(MESSAGES, temperature=0.1)

    assert text == '{"direction": "UP"}'
    request = requests[0]
    assert str(request.url) == "https://g.test/v1beta/models/gemini-test:generateContent"
    body = json.loads(request.content)
    assert body["systemInstruction"] == {"parts": [{"text": "You are an analyst."}]}
    assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
    assert body["generationConfig"]["temperature"] == 0.1
    assert body["generationConfig"]["maxOutputTokens"] == 4096


async def test_gemini_without_candidates_raises():
    client, _ = recording_client({"promptFeedback": {"blockReason": "SAFETY"}})
    provider = GeminiProvider(api_key="k", client=client)

    with pytest.raises(RuntimeError, match="no candidates"):
        await provider.complete(MESSAGES)


async def test_gemini_http_error_propagates():
    client, _ = recording_client({"error": {"message": "bad key"}}, status=403)
    provider = GeminiProvider(api_key="k", client=client)

    with pytest.raises(httpx.HTTPStatusError):
        await provider.complete(MESSAGES)


def test_gemini_sends_api_key_header():
    provider = GeminiProvider(api_key="secret")
    assert provider._client.headers["x-goog-api-key"] == "secret"


async def test_openai_json_mode():
    client, requests = recording_client({
        "choices": [{"message": {"content": '{"direction": "DOWN"}'}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5},
    })
    provider = OpenAIProvider(api_key="k", model="gpt-test", client=client)

    text = await provider.complete(MESSAGES, json_mode=True)

    assert text == '{"direction": "DOWN"}'
    body = json.loads(requests[0].content)
    assert body["model"] == "gpt-test"
    assert body["messages"] == MESSAGES
    assert body["response_format"] == {"type": "json_object"}


async def test_openai_null_content_is_empty_string():
    client, requests = recording_client({"choices": [{"message": {"content": None}}]})
    provider = OpenAIProvider(api_key="k", client=client)

    assert await provider.complete(MESSAGES) == ""
    assert "response_format" not in json.loads(requests[0].content)


def test_providers_satisfy_protocol():
    assert isinstance(GeminiProvider(api_key="k"), LLMProvider)
    assert isinstance(OpenAIProvider(api_key="k"), LLMProvider)


@pytest.mark.parametrize("base_url", [
    "http://localhost:8080/v1",
    "http://localhost:8080/v1/",
    "http://localhost:8080/v1/chat/completions",
])
async def test_openai_base_url_normalization(base_url):
    client, requests = recording_client({"choices": [{"message": {"content": "ok"}}]})
    provider = OpenAIProvider(base_url=base_url, client=client)

    await provider.complete(MESSAGES)

    assert str(requests[0].url) == "http://localhost:8080/v1/chat/completions"


def test_openai_without_key_sends_no_authorization():
    assert "authorization" not in OpenAIProvider()._client.headers
    assert OpenAIProvider(api_key="k")._client.headers["authorization"] == "Bearer k"


async def test_openai_without_choices_raises():
    client, _ = recording_client({"choices": []})
    provider = OpenAIProvider(api_key="k", client=client)

    with pytest.raises(RuntimeError, match="no choices"):
        await provider.complete(MESSAGES)


async def test_gemini_json_mode_requests_json_mime_type():
    client, requests = recording_client({"candidates": [{"content": {"parts": [{"text": "{}"}]}}]})
    provider = GeminiProvider(api_key="k", client=client)

    await provider.complete(MESSAGES, json_mode=True)
    await provider.complete(MESSAGES)

    assert json.loads(requests[0].content)["generationConfig"]["responseMimeType"] == "application/json"
    assert "responseMimeType" not in json.loads(requests[1].content)["generationConfig"]
