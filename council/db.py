"""Async database connection and operations for the agent council."""

from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings
from .errors import (
    InvalidTransitionError,
    SchemaNotInitializedError,
    is_schema_missing_error,
    schema_not_initialized_message,
)
from .models import (
    ActionRejection,
    ActionStatus,
    ActionTracking,
    Agent,
    AgentOutput,
    AgentRun,
    Base,
    DataSource,
    Project,
    ProposedAction,
    RunEvent,
    RunStatus,
    SourceStatus,
    TrackingStatus,
)

# Create async engine and session factory
engine = create_async_engine(settings.async_database_url, echo=False, pool_pre_ping=True)
async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def init_db() -> None:
    """Create all tables (for development/testing)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession]:
    """Async context manager for database sessions."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as exc:
            await session.rollback()
            if isinstance(exc, SQLAlchemyError) and is_schema_missing_error(exc):
                raise SchemaNotInitializedError(schema_not_initialized_message(exc)) from exc
            raise


def _now() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Project Operations
# =============================================================================


async def create_project(
    session: AsyncSession,
    user_id: str,
    name: str,
    description: str | None = None,
    image_url: str | None = None,
) -> Project:
    """Create a new project."""
    project = Project(user_id=user_id, name=name, description=description, image_url=image_url)
    session.add(project)
    await session.flush()
    return project


async def get_project(session: AsyncSession, project_id: str) -> Project | None:
    """Get a project by its ID."""
    result = await session.execute(select(Project).where(Project.id == project_id))
    return result.scalar_one_or_none()


async def list_projects(session: AsyncSession, user_id: str) -> list[Project]:
    """List an owner's projects, newest first."""
    result = await session.execute(
        select(Project).where(Project.user_id == user_id).order_by(Project.created_at.desc())
    )
    return list(result.scalars().all())


async def delete_project(session: AsyncSession, project: Project) -> None:
    """Delete a project and everything it owns."""
    action_ids = select(ProposedAction.id).where(ProposedAction.project_id == project.id)
    run_ids = select(AgentRun.id).where(AgentRun.project_id == project.id)

    await session.execute(
        delete(ActionTracking).where(ActionTracking.proposed_action_id.in_(action_ids))
    )
    await session.execute(
        delete(ActionRejection).where(ActionRejection.proposed_action_id.in_(action_ids))
    )
    await session.execute(delete(ProposedAction).where(ProposedAction.project_id == project.id))
    await session.execute(delete(RunEvent).where(RunEvent.project_id == project.id))
    await session.execute(delete(AgentOutput).where(AgentOutput.agent_run_id.in_(run_ids)))
    await session.execute(delete(AgentRun).where(AgentRun.project_id == project.id))
    await session.execute(delete(Agent).where(Agent.project_id == project.id))
    await session.execute(delete(DataSource).where(DataSource.project_id == project.id))
    await session.execute(delete(Project).where(Project.id == project.id))


# =============================================================================
# Data Source Operations
# =============================================================================


async def get_data_source(
    session: AsyncSession, project_id: str, source_type: str
) -> DataSource | None:
    result = await session.execute(
        select(DataSource).where(
            DataSource.project_id == project_id, DataSource.type == source_type
        )
    )
    return result.scalar_one_or_none()


async def get_connected_data_sources(session: AsyncSession, project_id: str) -> list[DataSource]:
    """Get the connected data sources of a project."""
    result = await session.execute(
        select(DataSource)
        .where(
            DataSource.project_id == project_id,
            DataSource.status == SourceStatus.CONNECTED.value,
        )
        .order_by(DataSource.type)
    )
    return list(result.scalars().all())


async def connect_data_source(
    session: AsyncSession,
    project_id: str,
    source_type: str,
    token: str,
    credentials: dict[str, Any] | None = None,
) -> DataSource:
    """Store a token for a source, creating the row on first connection."""
    source = await get_data_source(session, project_id, source_type)
    if source is None:
        source = DataSource(project_id=project_id, type=source_type)
        session.add(source)

    source.oauth_token = token
    source.credentials = credentials
    source.status = SourceStatus.CONNECTED.value
    source.connected_at = _now()
    await session.flush()
    return source


async def disconnect_data_source(session: AsyncSession, source: DataSource) -> DataSource:
    source.status = SourceStatus.DISCONNECTED.value
    source.oauth_token = None
    return source


# =============================================================================
# Agent Operations
# =============================================================================


async def get_agent(session: AsyncSession, agent_id: str) -> Agent | None:
    """Get an agent by its ID."""
    result = await session.execute(select(Agent).where(Agent.id == agent_id))
    return result.scalar_one_or_none()


async def get_agents(session: AsyncSession, project_id: str) -> list[Agent]:
    """Get all agents for a project in creation order."""
    result = await session.execute(
        select(Agent)
        .where(Agent.project_id == project_id)
        .order_by(Agent.created_at, Agent.name)
    )
    return list(result.scalars().all())


async def count_default_agents(session: AsyncSession, project_id: str) -> int:
    result = await session.execute(
        select(func.count(Agent.id)).where(
            Agent.project_id == project_id, Agent.is_default.is_(True)
        )
    )
    return int(result.scalar_one())


async def add_agents(
    session: AsyncSession, project_id: str, agents: Sequence[dict[str, Any]]
) -> list[Agent]:
    """Insert agents from plain dicts (name, type, system_prompt, is_default)."""
    result: list[Agent] = []
    for template in agents:
        agent = Agent(
            project_id=project_id,
            name=template["name"],
            type=template["type"],
            system_prompt=template["system_prompt"],
            is_default=bool(template.get("is_default", False)),
        )
        session.add(agent)
        result.append(agent)
    await session.flush()
    return result


async def delete_agent(session: AsyncSession, agent: Agent) -> None:
    await session.execute(delete(AgentOutput).where(AgentOutput.agent_id == agent.id))
    await session.execute(delete(Agent).where(Agent.id == agent.id))


# =============================================================================
# Agent Run Operations
# =============================================================================


async def create_run(session: AsyncSession, project_id: str, run_type: str) -> AgentRun:
    """Create a run already in the running state."""
    run = AgentRun(
        project_id=project_id,
        run_type=run_type,
        status=RunStatus.RUNNING.value,
        started_at=_now(),
    )
    session.add(run)
    await session.flush()
    return run


async def get_run(session: AsyncSession, run_id: str) -> AgentRun | None:
    result = await session.execute(select(AgentRun).where(AgentRun.id == run_id))
    return result.scalar_one_or_none()


async def finish_run(
    session: AsyncSession,
    run: AgentRun,
    status: RunStatus,
    error_message: str | None = None,
) -> AgentRun:
    """Move a run to a terminal status; runs are never reopened."""
    if not status.is_terminal:
        raise InvalidTransitionError(f"Cannot finish run with non-terminal status {status}")
    if RunStatus(run.status).is_terminal:
        raise InvalidTransitionError(f"Run {run.id} already {run.status}")

    run.status = status.value
    run.completed_at = _now()
    run.error_message = error_message
    return run


async def list_runs(
    session: AsyncSession,
    project_id: str,
    *,
    run_type: str | None = None,
    limit: int = 10,
) -> list[AgentRun]:
    """List a project's runs, most recent first."""
    query = select(AgentRun).where(AgentRun.project_id == project_id)
    if run_type:
        query = query.where(AgentRun.run_type == run_type)
    query = query.order_by(AgentRun.started_at.desc()).limit(limit)
    result = await session.execute(query)
    return list(result.scalars().all())


# =============================================================================
# Agent Output Operations
# =============================================================================


async def add_output(
    session: AsyncSession,
    run_id: str,
    agent_id: str,
    output_text: str,
    metadata: dict[str, Any] | None = None,
) -> AgentOutput:
    """Append an agent's output to a run."""
    output = AgentOutput(
        agent_run_id=run_id,
        agent_id=agent_id,
        output_text=output_text,
        metadata_=metadata or {},
    )
    session.add(output)
    await session.flush()
    return output


async def get_outputs_for_run(session: AsyncSession, run_id: str) -> list[AgentOutput]:
    result = await session.execute(
        select(AgentOutput)
        .where(AgentOutput.agent_run_id == run_id)
        .order_by(AgentOutput.created_at)
    )
    return list(result.scalars().all())


async def get_outputs_for_agent(
    session: AsyncSession, agent_id: str, limit: int = 20
) -> list[AgentOutput]:
    result = await session.execute(
        select(AgentOutput)
        .where(AgentOutput.agent_id == agent_id)
        .order_by(AgentOutput.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


# =============================================================================
# Proposed Action Operations
# =============================================================================


async def add_proposed_actions(
    session: AsyncSession,
    project_id: str,
    actions: Sequence[dict[str, str]],
) -> list[ProposedAction]:
    """Insert a batch of pending actions."""
    result: list[ProposedAction] = []
    for item in actions:
        action = ProposedAction(
            project_id=project_id,
            title=item["title"],
            description=item["description"],
            justification=item["justification"],
            status=ActionStatus.PENDING.value,
        )
        session.add(action)
        result.append(action)
    await session.flush()
    return result


async def get_proposed_action(session: AsyncSession, action_id: str) -> ProposedAction | None:
    result = await session.execute(select(ProposedAction).where(ProposedAction.id == action_id))
    return result.scalar_one_or_none()


async def list_proposed_actions(
    session: AsyncSession,
    project_id: str,
    status: str | None = None,
) -> list[ProposedAction]:
    """List a project's actions, newest first, optionally filtered by status."""
    query = select(ProposedAction).where(ProposedAction.project_id == project_id)
    if status:
        query = query.where(ProposedAction.status == status)
    query = query.order_by(ProposedAction.created_at.desc())
    result = await session.execute(query)
    return list(result.scalars().all())


# =============================================================================
# Rejection Operations
# =============================================================================


async def add_rejection(
    session: AsyncSession, action: ProposedAction, reason: str
) -> ActionRejection:
    rejection = ActionRejection(proposed_action_id=action.id, rejection_reason=reason)
    session.add(rejection)
    await session.flush()
    return rejection


async def get_rejection(session: AsyncSession, action_id: str) -> ActionRejection | None:
    result = await session.execute(
        select(ActionRejection).where(ActionRejection.proposed_action_id == action_id)
    )
    return result.scalar_one_or_none()


async def list_recent_rejections(
    session: AsyncSession,
    project_id: str,
    limit: int = 10,
) -> list[ActionRejection]:
    """Most recent rejections of a project's actions, newest first."""
    result = await session.execute(
        select(ActionRejection)
        .join(ProposedAction, ProposedAction.id == ActionRejection.proposed_action_id)
        .where(ProposedAction.project_id == project_id)
        .order_by(ActionRejection.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_recent_rejection_reasons(
    session: AsyncSession,
    project_id: str,
    limit: int = 10,
) -> list[str]:
    rejections = await list_recent_rejections(session, project_id, limit)
    return [r.rejection_reason for r in rejections]


# =============================================================================
# Tracking Operations
# =============================================================================


async def get_tracking(session: AsyncSession, tracking_id: str) -> ActionTracking | None:
    result = await session.execute(select(ActionTracking).where(ActionTracking.id == tracking_id))
    return result.scalar_one_or_none()


async def get_tracking_for_action(
    session: AsyncSession, action_id: str
) -> ActionTracking | None:
    result = await session.execute(
        select(ActionTracking).where(ActionTracking.proposed_action_id == action_id)
    )
    return result.scalar_one_or_none()


async def get_or_create_tracking(
    session: AsyncSession, action: ProposedAction
) -> tuple[ActionTracking, bool]:
    """Get the tracking row of an action, creating an active one if missing."""
    tracking = await get_tracking_for_action(session, action.id)
    if tracking is not None:
        return tracking, False

    tracking = ActionTracking(
        proposed_action_id=action.id,
        status=TrackingStatus.ACTIVE.value,
    )
    session.add(tracking)
    await session.flush()
    await session.refresh(tracking)
    return tracking, True


# =============================================================================
# Run Event Operations
# =============================================================================


async def log_event(
    session: AsyncSession,
    project_id: str,
    event: str,
    *,
    run_id: str | None = None,
    agent: str | None = None,
    message: str | None = None,
    details: dict[str, Any] | None = None,
    duration_ms: int | None = None,
) -> RunEvent:
    """Log a run or review event."""
    log = RunEvent(
        project_id=project_id,
        agent_run_id=run_id,
        event=event,
        agent=agent,
        message=message,
        details=details,
        duration_ms=duration_ms,
    )
    session.add(log)
    await session.flush()
    return log


async def get_events(session: AsyncSession, project_id: str, limit: int = 50) -> list[RunEvent]:
    result = await session.execute(
        select(RunEvent)
        .where(RunEvent.project_id == project_id)
        .order_by(RunEvent.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
