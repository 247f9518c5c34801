import pytest

from council import db
from council.fanout import run_all_agents
from council.lifecycle import accept_action, reject_action, update_tracking
from council.metrics import compute_project_metrics


async def _metrics(project_id: str) -> dict:
    async with db.get_session() as session:
        return await compute_project_metrics(session, project_id)


@pytest.mark.asyncio
async def test_empty_project(project) -> None:
    metrics = await _metrics(project.id)

    assert metrics["actions"] == {
        "total": 0,
        "accepted": 0,
        "rejected": 0,
        "pending": 0,
        "approval_rate": 0.0,
        "rejection_rate": 0.0,
    }
    assert metrics["success_scores"]["average"] is None
    assert metrics["success_scores"]["total_scored"] == 0
    assert list(metrics["success_scores"]["distribution"]) == [str(i) for i in range(-5, 6)]
    assert metrics["agent_performance"] == []
    assert metrics["recent_runs"] == []


@pytest.mark.asyncio
async def test_review_outcomes_and_scores(project, add_actions) -> None:
    first, second, third = await add_actions(project.id, 3)
    tracking_a = await accept_action(first)
    tracking_b = await accept_action(second)
    await reject_action(third, "too expensive")
    await update_tracking(tracking_a.id, success_score=5, status="completed")
    await update_tracking(tracking_b.id, success_score=-1)

    metrics = await _metrics(project.id)

    assert metrics["actions"]["total"] == 3
    assert metrics["actions"]["accepted"] == 2
    assert metrics["actions"]["rejected"] == 1
    assert metrics["actions"]["approval_rate"] == 66.67
    assert metrics["actions"]["rejection_rate"] == 33.33

    scores = metrics["success_scores"]
    assert scores["distribution"]["5"] == 1
    assert scores["distribution"]["-1"] == 1
    assert scores["distribution"]["0"] == 0
    assert scores["average"] == 2.0
    assert scores["total_scored"] == 2

    assert metrics["tracking"] == {"completed": 1, "active": 1}
    assert [r["rejection_reason"] for r in metrics["recent_rejections"]] == ["too expensive"]


@pytest.mark.asyncio
async def test_zero_scores_average_to_zero(project, add_actions) -> None:
    (action_id,) = await add_actions(project.id, 1)
    tracking = await accept_action(action_id)
    await update_tracking(tracking.id, success_score=0)

    metrics = await _metrics(project.id)
    assert metrics["success_scores"]["average"] == 0.0
    assert metrics["success_scores"]["total_scored"] == 1


@pytest.mark.asyncio
async def test_agent_performance_counts_analysis_outputs(project, add_agent, fake_model) -> None:
    await add_agent(project.id, "Marketing Expert", "marketing")
    await add_agent(project.id, "Product Analyst", "analyst")
    await run_all_agents(project.id)
    await run_all_agents(project.id)

    metrics = await _metrics(project.id)

    performance = {p["name"]: p["count"] for p in metrics["agent_performance"]}
    assert performance == {"Marketing Expert": 2, "Product Analyst": 2}
    assert len(metrics["recent_runs"]) == 2
    assert all(r["run_type"] == "agent_analysis" for r in metrics["recent_runs"])


@pytest.mark.asyncio
async def test_metrics_are_scoped_to_project(project, add_actions) -> None:
    async with db.get_session() as session:
        other = await db.create_project(session, "user-2", "Other", "Unrelated work")
    await add_actions(other.id, 2)

    metrics = await _metrics(project.id)
    assert metrics["actions"]["total"] == 0
