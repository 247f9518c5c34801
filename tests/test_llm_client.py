import json

import httpx
import pytest

from council.errors import ModelBackendError
from council.llm_client import ChatCompletionsClient


def _client(handler) -> ChatCompletionsClient:
    return ChatCompletionsClient(
        base_url="https://llm.test/v1",
        api_key="sk-test",
        model="gpt-4o",
        transport=httpx.MockTransport(handler),
    )


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.mark.asyncio
async def test_complete_sends_chat_request() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_completion("hello"))

    client = _client(handler)
    try:
        text = await client.complete("system", "user", temperature=0.7, max_tokens=2000)
    finally:
        await client.aclose()

    assert text == "hello"
    (request,) = seen
    assert request.url.path == "/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    body = json.loads(request.content)
    assert body["model"] == "gpt-4o"
    assert body["messages"] == [
        {"role": "system", "content": "system"},
        {"role": "user", "content": "user"},
    ]
    assert body["temperature"] == 0.7
    assert body["max_tokens"] == 2000
    assert "response_format" not in body


@pytest.mark.asyncio
async def test_json_mode_requests_json_object() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=_completion('{"actions": []}'))

    client = _client(handler)
    try:
        await client.complete("s", "u", temperature=0.7, max_tokens=3000, json_mode=True)
    finally:
        await client.aclose()

    assert bodies[0]["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_http_error_becomes_backend_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="quota exceeded")

    client = _client(handler)
    try:
        with pytest.raises(ModelBackendError, match="429"):
            await client.complete("s", "u", temperature=0.7, max_tokens=10)
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_transport_error_becomes_backend_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    try:
        with pytest.raises(ModelBackendError, match="request failed"):
            await client.complete("s", "u", temperature=0.7, max_tokens=10)
    finally:
        await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"choices": []},
        {"choices": [{"message": {"content": "   "}}]},
        {"unexpected": True},
    ],
)
async def test_malformed_or_empty_response(payload) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    client = _client(handler)
    try:
        with pytest.raises(ModelBackendError):
            await client.complete("s", "u", temperature=0.7, max_tokens=10)
    finally:
        await client.aclose()
