"""SQLAlchemy models for the agent council database."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")

SUCCESS_SCORE_MIN = -5
SUCCESS_SCORE_MAX = 5


class SourceStatus(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class RunType(StrEnum):
    DATA_REFRESH = "data_refresh"
    AGENT_ANALYSIS = "agent_analysis"
    FINAL_SYNTHESIS = "final_synthesis"


class RunStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


class ActionStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TrackingStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"


class Base(DeclarativeBase):
    """Base class for all models."""

    type_annotation_map = {
        dict[str, Any]: JSONType,
    }


def _uuid_pk() -> Mapped[str]:
    return mapped_column(Uuid(as_uuid=False), primary_key=True, default=lambda: str(uuid4()))


# =============================================================================
# PROJECT-SCOPED TABLES
# =============================================================================


class Project(Base):
    """A product manager's workspace; owns sources, agents, runs and actions."""

    __tablename__ = "projects"

    id: Mapped[str] = _uuid_pk()
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    data_sources: Mapped[list[DataSource]] = relationship(
        back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    agents: Mapped[list[Agent]] = relationship(
        back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    runs: Mapped[list[AgentRun]] = relationship(
        back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    actions: Mapped[list[ProposedAction]] = relationship(
        back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )


class DataSource(Base):
    """An external integration connected to a project (one row per type)."""

    __tablename__ = "data_sources"

    id: Mapped[str] = _uuid_pk()
    project_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE")
    )
    type: Mapped[str] = mapped_column(String, nullable=False)  # 'notion', 'jira', ...
    credentials: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    oauth_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, default=SourceStatus.DISCONNECTED.value)
    connected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (UniqueConstraint("project_id", "type"),)

    project: Mapped[Project] = relationship(back_populates="data_sources")


class Agent(Base):
    """A role-specialized agent configuration."""

    __tablename__ = "agents"

    id: Mapped[str] = _uuid_pk()
    project_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE")
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    project: Mapped[Project] = relationship(back_populates="agents")


class AgentRun(Base):
    """One coordinated invocation: a refresh, a fan-out batch or a synthesis call."""

    __tablename__ = "agent_runs"

    id: Mapped[str] = _uuid_pk()
    project_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE")
    )
    run_type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, default=RunStatus.PENDING.value)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    project: Mapped[Project] = relationship(back_populates="runs")
    outputs: Mapped[list[AgentOutput]] = relationship(
        back_populates="run", cascade="all, delete-orphan", passive_deletes=True
    )


class AgentOutput(Base):
    """Raw model text produced by one agent within one run (append-only)."""

    __tablename__ = "agent_outputs"

    id: Mapped[str] = _uuid_pk()
    agent_run_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("agent_runs.id", ondelete="CASCADE")
    )
    agent_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("agents.id", ondelete="CASCADE")
    )
    output_text: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    run: Mapped[AgentRun] = relationship(back_populates="outputs")


class ProposedAction(Base):
    """A synthesized recommendation awaiting review."""

    __tablename__ = "proposed_actions"

    id: Mapped[str] = _uuid_pk()
    project_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE")
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    justification: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String, default=ActionStatus.PENDING.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    project: Mapped[Project] = relationship(back_populates="actions")
    rejection: Mapped[ActionRejection | None] = relationship(
        back_populates="action", cascade="all, delete-orphan", passive_deletes=True
    )
    tracking: Mapped[ActionTracking | None] = relationship(
        back_populates="action", cascade="all, delete-orphan", passive_deletes=True
    )


class ActionRejection(Base):
    """Reason an action was rejected; fed back into later synthesis calls."""

    __tablename__ = "action_rejections"

    id: Mapped[str] = _uuid_pk()
    proposed_action_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("proposed_actions.id", ondelete="CASCADE"),
        unique=True,
    )
    rejection_reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    action: Mapped[ProposedAction] = relationship(back_populates="rejection")


class ActionTracking(Base):
    """Post-acceptance progress of an action."""

    __tablename__ = "action_tracking"

    id: Mapped[str] = _uuid_pk()
    proposed_action_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("proposed_actions.id", ondelete="CASCADE"),
        unique=True,
    )
    status: Mapped[str] = mapped_column(String, default=TrackingStatus.ACTIVE.value)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    success_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            f"success_score IS NULL OR success_score BETWEEN {SUCCESS_SCORE_MIN} AND {SUCCESS_SCORE_MAX}",
            name="ck_action_tracking_success_score",
        ),
    )

    action: Mapped[ProposedAction] = relationship(back_populates="tracking")


class RunEvent(Base):
    """Audit trail of run and review events."""

    __tablename__ = "run_events"

    id: Mapped[str] = _uuid_pk()
    project_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE")
    )
    agent_run_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("agent_runs.id", ondelete="CASCADE"), nullable=True
    )
    event: Mapped[str] = mapped_column(String, nullable=False)
    agent: Mapped[str | None] = mapped_column(String, nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
