"""Project metrics: review outcomes, success scores and agent activity."""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from . import db
from .models import (
    SUCCESS_SCORE_MAX,
    SUCCESS_SCORE_MIN,
    ActionStatus,
    ActionTracking,
    Agent,
    AgentOutput,
    AgentRun,
    ProposedAction,
    RunType,
    TrackingStatus,
)

RECENT_LIMIT = 10


def _rate(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total else 0.0


async def _action_counts(session: AsyncSession, project_id: str) -> dict[str, int]:
    result = await session.execute(
        select(ProposedAction.status, func.count(ProposedAction.id))
        .where(ProposedAction.project_id == project_id)
        .group_by(ProposedAction.status)
    )
    counts = {status.value: 0 for status in ActionStatus}
    for status, count in result.all():
        counts[status] = int(count)
    return counts


async def _tracking_rows(session: AsyncSession, project_id: str) -> list[tuple[str, int | None]]:
    result = await session.execute(
        select(ActionTracking.status, ActionTracking.success_score)
        .join(ProposedAction, ProposedAction.id == ActionTracking.proposed_action_id)
        .where(ProposedAction.project_id == project_id)
    )
    return [(row[0], row[1]) for row in result.all()]


async def _agent_performance(session: AsyncSession, project_id: str) -> list[dict[str, Any]]:
    result = await session.execute(
        select(Agent.id, Agent.name, Agent.type, func.count(AgentOutput.id))
        .join(AgentOutput, AgentOutput.agent_id == Agent.id)
        .join(AgentRun, AgentRun.id == AgentOutput.agent_run_id)
        .where(
            AgentRun.project_id == project_id,
            AgentRun.run_type == RunType.AGENT_ANALYSIS.value,
        )
        .group_by(Agent.id, Agent.name, Agent.type)
        .order_by(func.count(AgentOutput.id).desc(), Agent.name)
    )
    return [
        {"agent_id": agent_id, "name": name, "type": agent_type, "count": int(count)}
        for agent_id, name, agent_type, count in result.all()
    ]


async def compute_project_metrics(session: AsyncSession, project_id: str) -> dict[str, Any]:
    """Aggregate a project's review and run history."""
    counts = await _action_counts(session, project_id)
    total = sum(counts.values())

    tracking = await _tracking_rows(session, project_id)
    scores = [score for _, score in tracking if score is not None]
    distribution = {
        str(value): sum(1 for s in scores if s == value)
        for value in range(SUCCESS_SCORE_MIN, SUCCESS_SCORE_MAX + 1)
    }
    average = round(sum(scores) / len(scores), 2) if scores else None

    rejections = await db.list_recent_rejections(session, project_id, RECENT_LIMIT)
    runs = await db.list_runs(session, project_id, limit=RECENT_LIMIT)

    return {
        "actions": {
            "total": total,
            "accepted": counts[ActionStatus.ACCEPTED.value],
            "rejected": counts[ActionStatus.REJECTED.value],
            "pending": counts[ActionStatus.PENDING.value],
            "approval_rate": _rate(counts[ActionStatus.ACCEPTED.value], total),
            "rejection_rate": _rate(counts[ActionStatus.REJECTED.value], total),
        },
        "success_scores": {
            "distribution": distribution,
            "average": average,
            "total_scored": len(scores),
        },
        "tracking": {
            "completed": sum(1 for status, _ in tracking if status == TrackingStatus.COMPLETED),
            "active": sum(1 for status, _ in tracking if status == TrackingStatus.ACTIVE),
        },
        "agent_performance": await _agent_performance(session, project_id),
        "recent_rejections": [
            {"rejection_reason": r.rejection_reason, "created_at": r.created_at} for r in rejections
        ],
        "recent_runs": [
            {
                "id": run.id,
                "run_type": run.run_type,
                "status": run.status,
                "started_at": run.started_at,
                "completed_at": run.completed_at,
                "error_message": run.error_message,
            }
            for run in runs
        ],
    }
