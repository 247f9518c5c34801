"""Agent types, the analysis/synthesis roster and agent management rules."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession

from . import db
from .default_agents import DEFAULT_AGENTS
from .errors import AgentConfigurationError, NotFoundError, ValidationError
from .models import Agent


class AgentType(StrEnum):
    """Supported agent type tags."""

    USER_PERSONA = "user_persona"
    MARKETING = "marketing"
    COMPETITIVE_INTEL = "competitive_intel"
    RESEARCHER = "researcher"
    DESIGNER = "designer"
    ANALYST = "analyst"
    CEO_CPO = "ceo_cpo"
    CUSTOM = "custom"


SYNTHESIS_TYPE = AgentType.CEO_CPO


@dataclass(frozen=True)
class AnalysisAgent:
    """An agent that reads project context and writes a free-text analysis."""

    id: str
    name: str
    type: AgentType
    system_prompt: str


@dataclass(frozen=True)
class SynthesisAgent:
    """The single agent that turns analyses into proposed actions."""

    id: str
    name: str
    system_prompt: str


RosterAgent = AnalysisAgent | SynthesisAgent


def classify(agent: Agent) -> RosterAgent:
    """Tag a stored agent as analysis or synthesis."""
    agent_type = parse_agent_type(agent.type)
    if agent_type == SYNTHESIS_TYPE:
        return SynthesisAgent(id=agent.id, name=agent.name, system_prompt=agent.system_prompt)
    return AnalysisAgent(
        id=agent.id, name=agent.name, type=agent_type, system_prompt=agent.system_prompt
    )


@dataclass(frozen=True)
class AgentRoster:
    analysis: tuple[AnalysisAgent, ...]
    synthesis: SynthesisAgent | None

    def require_analysis(self) -> tuple[AnalysisAgent, ...]:
        if not self.analysis:
            raise AgentConfigurationError("No agents configured for this project")
        return self.analysis

    def require_synthesis(self) -> SynthesisAgent:
        if self.synthesis is None:
            raise AgentConfigurationError("CEO/CPO agent not configured")
        return self.synthesis


def resolve_roster(agents: Sequence[Agent]) -> AgentRoster:
    """Split a project's agents; more than one synthesis agent is a configuration error."""
    analysis: list[AnalysisAgent] = []
    synthesis: list[SynthesisAgent] = []
    for agent in agents:
        tagged = classify(agent)
        if isinstance(tagged, SynthesisAgent):
            synthesis.append(tagged)
        else:
            analysis.append(tagged)

    if len(synthesis) > 1:
        raise AgentConfigurationError(
            f"Project has {len(synthesis)} {SYNTHESIS_TYPE} agents; expected at most one"
        )
    return AgentRoster(analysis=tuple(analysis), synthesis=synthesis[0] if synthesis else None)


async def load_roster(session: AsyncSession, project_id: str) -> AgentRoster:
    return resolve_roster(await db.get_agents(session, project_id))


def parse_agent_type(value: str) -> AgentType:
    try:
        return AgentType(value)
    except ValueError as e:
        allowed = ", ".join(t.value for t in AgentType)
        raise ValidationError(f"Unknown agent type '{value}' (expected one of: {allowed})") from e


# =============================================================================
# Agent management
# =============================================================================


async def _require_project(session: AsyncSession, project_id: str) -> None:
    if await db.get_project(session, project_id) is None:
        raise NotFoundError(f"Project not found: {project_id}")


async def _require_agent(session: AsyncSession, agent_id: str) -> Agent:
    agent = await db.get_agent(session, agent_id)
    if agent is None:
        raise NotFoundError(f"Agent not found: {agent_id}")
    return agent


async def _ensure_no_other_synthesis(
    session: AsyncSession, project_id: str, exclude_id: str | None = None
) -> None:
    for agent in await db.get_agents(session, project_id):
        if agent.type == SYNTHESIS_TYPE and agent.id != exclude_id:
            raise AgentConfigurationError(
                f"Project already has a {SYNTHESIS_TYPE} agent ({agent.name})"
            )


async def seed_default_agents(session: AsyncSession, project_id: str) -> list[Agent]:
    """Create the default agent set; refuses if defaults already exist."""
    await _require_project(session, project_id)
    if await db.count_default_agents(session, project_id) > 0:
        raise AgentConfigurationError("Default agents already exist for this project")
    await _ensure_no_other_synthesis(session, project_id)

    return await db.add_agents(
        session,
        project_id,
        [{**template, "is_default": True} for template in DEFAULT_AGENTS],
    )


async def create_agent(
    session: AsyncSession,
    project_id: str,
    name: str,
    agent_type: str,
    system_prompt: str,
) -> Agent:
    await _require_project(session, project_id)
    parsed = parse_agent_type(agent_type)
    if not name.strip():
        raise ValidationError("Agent name is required")
    if not system_prompt.strip():
        raise ValidationError("Agent system prompt is required")
    if parsed == SYNTHESIS_TYPE:
        await _ensure_no_other_synthesis(session, project_id)

    (agent,) = await db.add_agents(
        session,
        project_id,
        [{"name": name.strip(), "type": parsed.value, "system_prompt": system_prompt}],
    )
    return agent


async def update_agent(
    session: AsyncSession,
    agent_id: str,
    *,
    name: str | None = None,
    agent_type: str | None = None,
    system_prompt: str | None = None,
) -> Agent:
    """Edit an agent. A default agent's type cannot change."""
    agent = await _require_agent(session, agent_id)

    parsed: AgentType | None = None
    if agent_type is not None:
        parsed = parse_agent_type(agent_type)
        if agent.is_default and parsed != agent.type:
            raise AgentConfigurationError("Cannot change the type of a default agent")
        if parsed == SYNTHESIS_TYPE:
            await _ensure_no_other_synthesis(session, agent.project_id, exclude_id=agent.id)
    if name is not None and not name.strip():
        raise ValidationError("Agent name is required")
    if system_prompt is not None and not system_prompt.strip():
        raise ValidationError("Agent system prompt is required")

    if name is not None:
        agent.name = name.strip()
    if parsed is not None:
        agent.type = parsed.value
    if system_prompt is not None:
        agent.system_prompt = system_prompt
    await session.flush()
    return agent


async def delete_agent(session: AsyncSession, agent_id: str) -> None:
    agent = await _require_agent(session, agent_id)
    if agent.is_default:
        raise AgentConfigurationError("Cannot delete default agents")
    await db.delete_agent(session, agent)
