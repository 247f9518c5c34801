import asyncio

import pytest
from sqlalchemy import func, select

from council import db, gatherer, runner
from council.errors import AgentConfigurationError, NotFoundError
from council.fanout import (
    OUTPUTS_NOT_RECORDED,
    SOME_AGENTS_FAILED,
    run_all_agents,
    run_single_agent,
)
from council.models import AgentOutput, AgentRun, RunStatus


async def _count(model) -> int:
    async with db.get_session() as session:
        return int((await session.execute(select(func.count()).select_from(model))).scalar_one())


@pytest.mark.asyncio
async def test_every_agent_gets_an_output_even_when_some_fail(project, add_agent, fake_model) -> None:
    await add_agent(project.id, "Marketing Expert", "marketing", "You are a marketing expert.")
    await add_agent(project.id, "Designer Agent", "designer", "You are a designer.")
    await add_agent(project.id, "Product Analyst", "analyst", "You are an analyst.")
    fake_model.fail_markers.add("designer")

    result = await run_all_agents(project.id)

    assert len(result.outcomes) == 3
    assert result.succeeded == 2
    assert result.failed == 1
    assert result.summary == "2 succeeded, 1 failed"

    async with db.get_session() as session:
        outputs = await db.get_outputs_for_run(session, result.run_id)
        run = await db.get_run(session, result.run_id)
    assert len(outputs) == 3
    failed = [o for o in outputs if o.metadata_["error"]]
    assert len(failed) == 1
    assert failed[0].output_text == "Error: quota exceeded"
    assert failed[0].metadata_["agent_name"] == "Designer Agent"
    assert run.status == RunStatus.FAILED
    assert run.error_message == SOME_AGENTS_FAILED


@pytest.mark.asyncio
async def test_successful_fan_out_completes_run(project, add_agent, fake_model) -> None:
    await add_agent(project.id, "Marketing Expert", "marketing")
    await add_agent(project.id, "User Researcher", "researcher")

    result = await run_all_agents(project.id)

    async with db.get_session() as session:
        run = await db.get_run(session, result.run_id)
    assert run.status == RunStatus.COMPLETED
    assert run.run_type == "agent_analysis"
    assert run.error_message is None
    assert result.failed == 0


@pytest.mark.asyncio
async def test_synthesis_agent_is_excluded(project, add_agent, fake_model) -> None:
    await add_agent(project.id, "Marketing Expert", "marketing")
    await add_agent(project.id, "CEO/CPO Assistant", "ceo_cpo")

    result = await run_all_agents(project.id)

    assert [o.agent_name for o in result.outcomes] == ["Marketing Expert"]
    assert len(fake_model.calls) == 1


@pytest.mark.asyncio
async def test_context_is_gathered_once_and_shared(
    project, add_agent, fake_model, monkeypatch: pytest.MonkeyPatch
) -> None:
    fetches: list[str] = []

    async def fetch(token: str) -> dict:
        fetches.append(token)
        return {"pages": [{"title": "Roadmap"}]}

    monkeypatch.setitem(gatherer.FETCHERS, "notion", fetch)
    async with db.get_session() as session:
        await db.connect_data_source(session, project.id, "notion", "token")
    for name in ("A", "B", "C"):
        await add_agent(project.id, name, "custom")

    await run_all_agents(project.id)

    assert fetches == ["token"]
    messages = {c["user_message"] for c in fake_model.calls}
    assert len(messages) == 1
    assert "1. Roadmap" in messages.pop()


@pytest.mark.asyncio
async def test_agents_run_concurrently(project, add_agent, monkeypatch: pytest.MonkeyPatch) -> None:
    running = 0
    peak = 0

    async def run_agent(system_prompt: str, user_message: str, **kwargs) -> str:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.05)
        running -= 1
        return "done"

    monkeypatch.setattr(runner, "run_agent", run_agent)
    for name in ("A", "B", "C"):
        await add_agent(project.id, name, "custom")

    await run_all_agents(project.id)
    assert peak == 3


@pytest.mark.asyncio
async def test_no_analysis_agents_creates_no_run(project, add_agent, fake_model) -> None:
    await add_agent(project.id, "CEO/CPO Assistant", "ceo_cpo")

    with pytest.raises(AgentConfigurationError, match="No agents configured for this project"):
        await run_all_agents(project.id)
    assert await _count(AgentRun) == 0


@pytest.mark.asyncio
async def test_unknown_project(database, fake_model) -> None:
    with pytest.raises(NotFoundError):
        await run_all_agents("6f1c2b8e-3d4a-4b5c-9d6e-7f8091a2b3c4")


@pytest.mark.asyncio
async def test_single_agent_run(project, add_agent, fake_model) -> None:
    agent_id = await add_agent(project.id, "CEO/CPO Assistant", "ceo_cpo")

    result = await run_single_agent(agent_id)

    assert len(result.outcomes) == 1
    assert await _count(AgentOutput) == 1
    async with db.get_session() as session:
        run = await db.get_run(session, result.run_id)
        (output,) = await db.get_outputs_for_agent(session, agent_id)
    assert run.status == RunStatus.COMPLETED
    assert output.metadata_["agent_type"] == "ceo_cpo"
    assert output.metadata_["input_message"].startswith("# Project Context")


@pytest.mark.asyncio
async def test_single_agent_failure_fails_run(project, add_agent, fake_model) -> None:
    agent_id = await add_agent(project.id, "Designer Agent", "designer", "You are a designer.")
    fake_model.fail_markers.add("designer")

    result = await run_single_agent(agent_id)

    async with db.get_session() as session:
        run = await db.get_run(session, result.run_id)
    assert run.status == RunStatus.FAILED
    assert run.error_message == "quota exceeded"
    assert result.outcomes[0].output == "Error: quota exceeded"


@pytest.mark.asyncio
async def test_output_write_is_retried_and_answer_kept(
    project, add_agent, fake_model, monkeypatch: pytest.MonkeyPatch
) -> None:
    for name in ("Marketing Expert", "User Researcher", "Product Analyst"):
        await add_agent(project.id, name, "custom")
    real_add_output = db.add_output
    failures = [RuntimeError("transient insert failure")]

    async def flaky_add_output(*args, **kwargs):
        if failures:
            raise failures.pop()
        return await real_add_output(*args, **kwargs)

    monkeypatch.setattr(db, "add_output", flaky_add_output)

    result = await run_all_agents(project.id)

    async with db.get_session() as session:
        rows = await db.get_outputs_for_run(session, result.run_id)
        run = await db.get_run(session, result.run_id)
    assert len(rows) == len(result.outcomes) == 3
    assert result.failed == 0
    assert all(o.recorded for o in result.outcomes)
    assert not any(o.output.startswith("Error:") for o in result.outcomes)
    assert run.status == RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_unrecordable_output_fails_run_but_keeps_answer(
    project, add_agent, fake_model, monkeypatch: pytest.MonkeyPatch
) -> None:
    await add_agent(project.id, "Marketing Expert", "marketing")

    async def broken_add_output(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(db, "add_output", broken_add_output)

    result = await run_all_agents(project.id)

    (outcome,) = result.outcomes
    assert not outcome.failed
    assert not outcome.recorded
    assert outcome.output.startswith("## Findings")
    async with db.get_session() as session:
        run = await db.get_run(session, result.run_id)
    assert run.status == RunStatus.FAILED
    assert run.error_message == OUTPUTS_NOT_RECORDED
