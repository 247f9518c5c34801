"""Async client for an OpenAI-compatible chat completions backend."""

from __future__ import annotations

from typing import Any

import httpx

from .config import settings
from .errors import ModelBackendError


def _extract_content(data: Any) -> str:
    if not isinstance(data, dict):
        raise ModelBackendError("Malformed model response: expected a JSON object")

    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ModelBackendError("Malformed model response: no choices returned")

    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content.strip():
        raise ModelBackendError("Model returned an empty response")
    return content


class ChatCompletionsClient:
    """Model backend: `complete(system_prompt, user_message, ...) -> text`."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None,
        model: str,
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    @property
    def model(self) -> str:
        return self._model

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, *, body: Any | None = None) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, json=body)
            resp.raise_for_status()
            return resp
        except httpx.TimeoutException as e:
            raise ModelBackendError(f"Model backend timed out ({method} {path})") from e
        except httpx.RequestError as e:
            raise ModelBackendError(f"Model backend request failed ({method} {path}): {e}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            text = e.response.text
            raise ModelBackendError(f"Model backend error {status} ({method} {path}): {text}") from e

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        *,
        temperature: float,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        body: dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        resp = await self._request("POST", "/chat/completions", body=body)
        try:
            data = resp.json()
        except ValueError as e:
            raise ModelBackendError("Malformed model response: body is not JSON") from e
        return _extract_content(data)


def get_chat_client() -> ChatCompletionsClient:
    """Build a client from settings."""
    return ChatCompletionsClient(
        base_url=settings.llm_api_url,
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        timeout_seconds=float(settings.llm_timeout),
    )
