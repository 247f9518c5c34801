"""Run fan-out - runs a project's analysis agents concurrently against shared context."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from . import db, runner
from .agents import AnalysisAgent, classify, load_roster
from .context import format_context
from .errors import NotFoundError
from .events import EventType, emit
from .gatherer import GatheredContext, gather_project_context
from .models import Project, RunType
from .runs import RunHandle, bracketed_run

logger = logging.getLogger(__name__)

SOME_AGENTS_FAILED = "Some agents failed"
OUTPUTS_NOT_RECORDED = "Some agent outputs could not be recorded"
OUTPUT_WRITE_ATTEMPTS = 2


@dataclass(frozen=True)
class AgentInvocation:
    """What the fan-out needs to run one agent."""

    id: str
    name: str
    type: str
    system_prompt: str


@dataclass
class AgentOutcome:
    agent_id: str
    agent_name: str
    agent_type: str
    output: str
    error: str | None = None
    output_id: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def recorded(self) -> bool:
        return self.output_id is not None


@dataclass
class FanOutResult:
    run_id: str
    outcomes: list[AgentOutcome] = field(default_factory=list)
    gathered: GatheredContext = field(default_factory=dict)
    input_message: str = ""

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if not o.failed)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def summary(self) -> str:
        return f"{self.succeeded} succeeded, {self.failed} failed"


def _invocation(agent: AnalysisAgent) -> AgentInvocation:
    return AgentInvocation(
        id=agent.id, name=agent.name, type=agent.type.value, system_prompt=agent.system_prompt
    )


async def _record_output(
    run: RunHandle, agent: AgentInvocation, outcome: AgentOutcome, user_message: str
) -> str | None:
    """Store the outcome as the agent's AgentOutput, retrying once in a fresh session."""
    metadata = {
        "agent_name": agent.name,
        "agent_type": agent.type,
        "input_message": user_message,
        "error": outcome.error,
    }
    for attempt in range(1, OUTPUT_WRITE_ATTEMPTS + 1):
        try:
            async with db.get_session() as session:
                record = await db.add_output(
                    session, run.id, agent.id, outcome.output, metadata=metadata
                )
                output_id = record.id
            return output_id
        except Exception as e:
            logger.warning(
                "Recording output of agent %s in run %s failed (attempt %d/%d): %s",
                agent.name,
                run.id,
                attempt,
                OUTPUT_WRITE_ATTEMPTS,
                e,
            )
    return None


async def _run_and_record(
    run: RunHandle, agent: AgentInvocation, user_message: str
) -> AgentOutcome:
    started = time.monotonic()
    try:
        output = await runner.run_agent(agent.system_prompt, user_message)
        outcome = AgentOutcome(agent.id, agent.name, agent.type, output)
    except Exception as e:
        message = str(e) or type(e).__name__
        logger.warning("Agent %s failed in run %s: %s", agent.name, run.id, message)
        outcome = AgentOutcome(agent.id, agent.name, agent.type, f"Error: {message}", error=message)

    # The model's answer is kept on the outcome even if it cannot be stored.
    outcome.output_id = await _record_output(run, agent, outcome, user_message)

    duration_ms = int((time.monotonic() - started) * 1000)
    if outcome.failed:
        await emit(
            EventType.AGENT_FAILED,
            run.project_id,
            f"Agent {agent.name} failed",
            run_id=run.id,
            agent=agent.name,
            data={"error": outcome.error},
            duration_ms=duration_ms,
        )
    else:
        await emit(
            EventType.AGENT_COMPLETED,
            run.project_id,
            f"Agent {agent.name} completed",
            run_id=run.id,
            agent=agent.name,
            duration_ms=duration_ms,
        )
    return outcome


async def invoke_agents(
    run: RunHandle,
    agents: Sequence[AgentInvocation],
    user_message: str,
) -> list[AgentOutcome]:
    """Run every agent concurrently and wait for all of them.

    Each agent's output (or error text) is persisted as it finishes.
    """
    results = await asyncio.gather(
        *[_run_and_record(run, agent, user_message) for agent in agents],
        return_exceptions=True,
    )

    outcomes: list[AgentOutcome] = []
    for agent, result in zip(agents, results, strict=True):
        if isinstance(result, BaseException):
            # Unexpected failure outside the model call; the run still reports the agent.
            logger.error("Agent %s failed unexpectedly: %s", agent.name, result)
            outcomes.append(
                AgentOutcome(
                    agent.id, agent.name, agent.type, f"Error: {result}", error=str(result)
                )
            )
        else:
            outcomes.append(result)
    return outcomes


async def execute_fan_out(project: Project, agents: Sequence[AgentInvocation]) -> FanOutResult:
    """One agent_analysis run: gather once, format once, run all agents, join.

    Context is gathered inside the run. The run fails with "Some agents failed"
    when any agent errored, and also when an output could not be recorded.
    """
    async with bracketed_run(project.id, RunType.AGENT_ANALYSIS) as run:
        gathered = await gather_project_context(project.id)
        user_message = format_context(project.name, project.description, gathered)

        outcomes = await invoke_agents(run, agents, user_message)
        result = FanOutResult(
            run_id=run.id, outcomes=outcomes, gathered=gathered, input_message=user_message
        )
        if result.failed:
            run.fail(SOME_AGENTS_FAILED if len(outcomes) > 1 else outcomes[0].error)
        elif not all(o.recorded for o in outcomes):
            run.fail(OUTPUTS_NOT_RECORDED)

    logger.info("Analysis run %s finished: %s", result.run_id, result.summary)
    return result


async def _load_project(session, project_id: str) -> Project:
    project = await db.get_project(session, project_id)
    if project is None:
        raise NotFoundError(f"Project not found: {project_id}")
    return project


async def run_all_agents(project_id: str) -> FanOutResult:
    """Run every analysis agent of a project (the synthesis agent is never included)."""
    async with db.get_session() as session:
        project = await _load_project(session, project_id)
        roster = await load_roster(session, project_id)
    agents = roster.require_analysis()
    return await execute_fan_out(project, [_invocation(a) for a in agents])


async def run_single_agent(agent_id: str) -> FanOutResult:
    """Run one agent of any type through the same bracket, formatter and runner."""
    async with db.get_session() as session:
        agent = await db.get_agent(session, agent_id)
        if agent is None:
            raise NotFoundError(f"Agent not found: {agent_id}")
        project = await _load_project(session, agent.project_id)

    tagged = classify(agent)
    invocation = AgentInvocation(
        id=tagged.id, name=tagged.name, type=agent.type, system_prompt=tagged.system_prompt
    )
    return await execute_fan_out(project, [invocation])
