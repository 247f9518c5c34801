import asyncio

import pytest

from council import db, gatherer
from council.config import settings
from council.errors import ValidationError
from council.gatherer import gather_context, refresh_project_data
from council.models import DataSource, RunStatus


def _source(source_type: str, token: str | None = "token", status: str = "connected") -> DataSource:
    return DataSource(project_id="p", type=source_type, oauth_token=token, status=status)


async def _good_fetch(token: str) -> dict:
    return {"pages": [{"title": "Roadmap"}], "databases": []}


async def _broken_fetch(token: str) -> dict:
    raise RuntimeError("token expired")


@pytest.mark.asyncio
async def test_gather_collects_connected_sources(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(gatherer.FETCHERS, "notion", _good_fetch)

    result = await gather_context([_source("notion")])
    assert result == {"notion": {"pages": [{"title": "Roadmap"}], "databases": []}}


@pytest.mark.asyncio
async def test_gather_omits_failing_source(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(gatherer.FETCHERS, "notion", _broken_fetch)
    monkeypatch.setitem(gatherer.FETCHERS, "jira", _good_fetch)

    result = await gather_context([_source("notion"), _source("jira")])
    assert list(result) == ["jira"]


@pytest.mark.asyncio
async def test_gather_omits_unsupported_and_tokenless_sources(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setitem(gatherer.FETCHERS, "notion", _good_fetch)

    result = await gather_context([_source("slack"), _source("notion", token=None)])
    assert result == {}


@pytest.mark.asyncio
async def test_gather_skips_disconnected_sources(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []

    async def fetch(token: str) -> dict:
        calls.append(token)
        return {"pages": []}

    monkeypatch.setitem(gatherer.FETCHERS, "notion", fetch)
    assert await gather_context([_source("notion", status="disconnected")]) == {}
    assert calls == []


@pytest.mark.asyncio
async def test_gather_times_out_slow_source(monkeypatch: pytest.MonkeyPatch) -> None:
    async def slow(token: str) -> dict:
        await asyncio.sleep(5)
        return {"pages": []}

    monkeypatch.setitem(gatherer.FETCHERS, "notion", slow)
    monkeypatch.setitem(gatherer.FETCHERS, "jira", _good_fetch)
    monkeypatch.setattr(settings, "source_fetch_timeout", 0.05)

    result = await gather_context([_source("notion"), _source("jira")])
    assert list(result) == ["jira"]


@pytest.mark.asyncio
async def test_gather_bounds_items_per_category(monkeypatch: pytest.MonkeyPatch) -> None:
    async def many(token: str) -> dict:
        return {"pages": [{"title": str(i)} for i in range(50)]}

    monkeypatch.setitem(gatherer.FETCHERS, "notion", many)
    result = await gather_context([_source("notion")])
    assert len(result["notion"]["pages"]) == settings.context_item_limit


@pytest.mark.asyncio
async def test_gather_runs_sources_concurrently(monkeypatch: pytest.MonkeyPatch) -> None:
    running = 0
    peak = 0

    async def fetch(token: str) -> dict:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.05)
        running -= 1
        return {"pages": []}

    monkeypatch.setitem(gatherer.FETCHERS, "notion", fetch)
    monkeypatch.setitem(gatherer.FETCHERS, "jira", fetch)
    await gather_context([_source("notion"), _source("jira")])
    assert peak == 2


@pytest.mark.asyncio
async def test_refresh_requires_connected_source(project) -> None:
    with pytest.raises(ValidationError, match="No connected data sources found"):
        await refresh_project_data(project.id)

    async with db.get_session() as session:
        assert await db.list_runs(session, project.id) == []


@pytest.mark.asyncio
async def test_refresh_reports_counts(project, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(gatherer.FETCHERS, "notion", _good_fetch)
    async with db.get_session() as session:
        await db.connect_data_source(session, project.id, "notion", "token")

    result = await refresh_project_data(project.id)

    assert result.success
    assert result.counts == {"notion": {"pages": 1, "databases": 0}}
    async with db.get_session() as session:
        run = await db.get_run(session, result.run_id)
    assert run.run_type == "data_refresh"
    assert run.status == RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_refresh_fails_run_with_joined_errors(project, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(gatherer.FETCHERS, "notion", _broken_fetch)
    async with db.get_session() as session:
        await db.connect_data_source(session, project.id, "notion", "token")
        await db.connect_data_source(session, project.id, "slack", "token")

    result = await refresh_project_data(project.id)

    assert not result.success
    assert len(result.errors) == 2
    async with db.get_session() as session:
        run = await db.get_run(session, result.run_id)
    assert run.status == RunStatus.FAILED
    assert "Error refreshing notion: token expired" in run.error_message
    assert "; " in run.error_message
