"""External context gathering across a project's connected data sources."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from . import db
from .config import settings
from .errors import NotFoundError, ValidationError
from .models import DataSource, RunType
from .notion_client import fetch_notion_snapshot
from .runs import bracketed_run

logger = logging.getLogger(__name__)

Snapshot = dict[str, list[dict[str, Any]]]
GatheredContext = dict[str, Snapshot]
Fetcher = Callable[[str], Awaitable[Snapshot]]

# Source type -> fetcher taking the stored token.
FETCHERS: dict[str, Fetcher] = {
    "notion": fetch_notion_snapshot,
}


class UnsupportedSourceError(RuntimeError):
    """Raised when no fetcher is registered for a source type."""


async def fetch_source(source_type: str, token: str | None) -> Snapshot:
    """Fetch one source's bounded snapshot; raises on any failure."""
    fetcher = FETCHERS.get(source_type)
    if fetcher is None:
        raise UnsupportedSourceError(f"Unsupported data source type: {source_type}")
    if not token:
        raise UnsupportedSourceError(f"Data source {source_type} has no access token")

    snapshot = await asyncio.wait_for(fetcher(token), timeout=settings.source_fetch_timeout)
    limit = settings.context_item_limit
    return {category: list(items)[:limit] for category, items in snapshot.items()}


async def _fetch_or_none(source_type: str, token: str | None) -> Snapshot | None:
    try:
        return await fetch_source(source_type, token)
    except TimeoutError:
        logger.warning(
            "Fetching %s timed out after %ss; continuing without it",
            source_type,
            settings.source_fetch_timeout,
        )
    except Exception as exc:
        logger.warning("Fetching %s failed; continuing without it: %s", source_type, exc)
    return None


async def gather_context(sources: Sequence[DataSource]) -> GatheredContext:
    """Best-effort snapshot of every connected source, fetched concurrently.

    A failing or unsupported source is logged and omitted; this never raises.
    """
    connected = [s for s in sources if s.status == "connected"]
    if not connected:
        return {}

    snapshots = await asyncio.gather(
        *[_fetch_or_none(s.type, s.oauth_token) for s in connected]
    )
    return {
        source.type: snapshot
        for source, snapshot in zip(connected, snapshots, strict=True)
        if snapshot is not None
    }


async def gather_project_context(project_id: str) -> GatheredContext:
    async with db.get_session() as session:
        sources = await db.get_connected_data_sources(session, project_id)
    return await gather_context(sources)


@dataclass
class RefreshResult:
    run_id: str
    counts: dict[str, dict[str, int]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


async def refresh_project_data(project_id: str) -> RefreshResult:
    """Run a data_refresh: fetch every connected source and report per-source counts.

    Unlike gather_context, fetch errors are collected and fail the run.
    """
    async with db.get_session() as session:
        project = await db.get_project(session, project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        sources = await db.get_connected_data_sources(session, project_id)

    if not sources:
        raise ValidationError("No connected data sources found")

    async with bracketed_run(project_id, RunType.DATA_REFRESH) as run:
        result = RefreshResult(run_id=run.id)

        async def refresh_one(source: DataSource) -> None:
            try:
                snapshot = await fetch_source(source.type, source.oauth_token)
            except TimeoutError:
                result.errors.append(f"Error refreshing {source.type}: timed out")
                return
            except Exception as exc:
                result.errors.append(f"Error refreshing {source.type}: {exc}")
                return
            result.counts[source.type] = {
                category: len(items) for category, items in snapshot.items()
            }

        await asyncio.gather(*[refresh_one(s) for s in sources])

        if result.errors:
            for error in result.errors:
                logger.warning(error)
            run.fail("; ".join(result.errors))

    return result
