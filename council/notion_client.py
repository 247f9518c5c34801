"""Async client for the Notion REST API (search for pages and databases)."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from .config import settings


class NotionAPIError(RuntimeError):
    """Raised when the Notion API returns an error."""


def _plain_text(rich_text: Any) -> str:
    if not isinstance(rich_text, list):
        return ""
    return "".join(
        part.get("plain_text", "") for part in rich_text if isinstance(part, dict)
    ).strip()


def extract_title(item: dict[str, Any]) -> str:
    """Title of a page or database search result."""
    if item.get("object") == "database":
        title = _plain_text(item.get("title"))
    else:
        title = ""
        properties = item.get("properties")
        if isinstance(properties, dict):
            for prop in properties.values():
                if isinstance(prop, dict) and prop.get("type") == "title":
                    title = _plain_text(prop.get("title"))
                    break
    return title or "Untitled"


def normalize_item(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": item.get("id"),
        "title": extract_title(item),
        "url": item.get("url"),
        "last_edited_time": item.get("last_edited_time"),
    }


class NotionClient:
    """Minimal async Notion client authenticated with an integration token."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str | None = None,
        notion_version: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.notion_api_url).rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Notion-Version": notion_version or settings.notion_version,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout_seconds or float(settings.source_fetch_timeout)),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, *, body: Any | None = None) -> Any:
        try:
            resp = await self._client.request(method, path, json=body)
            resp.raise_for_status()
            return resp.json()
        except httpx.RequestError as e:
            raise NotionAPIError(f"Notion request failed ({method} {path}): {e}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise NotionAPIError(f"Notion API error {status} ({method} {path}): {e.response.text}") from e

    async def search(self, object_type: str, *, limit: int) -> list[dict[str, Any]]:
        """Search the workspace for objects of one type ('page' or 'database')."""
        data = await self._request(
            "POST",
            "/search",
            body={
                "filter": {"property": "object", "value": object_type},
                "page_size": limit,
            },
        )
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            return []
        return [normalize_item(item) for item in results[:limit] if isinstance(item, dict)]


async def fetch_notion_snapshot(
    token: str,
    *,
    limit: int | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Fetch pages and databases concurrently; any API failure propagates."""
    limit = limit or settings.context_item_limit
    client = NotionClient(token, transport=transport)
    try:
        pages, databases = await asyncio.gather(
            client.search("page", limit=limit),
            client.search("database", limit=limit),
        )
    finally:
        await client.aclose()
    return {"pages": pages, "databases": databases}
