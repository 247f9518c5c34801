"""
Run-agents-with-synthesis as a LangGraph state graph.

load_roster -> run_analysis -> load_rejections -> synthesize

Context is gathered inside the analysis run and reused by synthesis.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypedDict

from langgraph.graph import END, StateGraph

from . import db
from .agents import AnalysisAgent, SynthesisAgent, load_roster
from .config import settings
from .errors import NotFoundError
from .fanout import AgentInvocation, FanOutResult, execute_fan_out
from .gatherer import GatheredContext
from .models import Project
from .synthesis import SynthesisResult, synthesize


class PipelineState(TypedDict, total=False):
    project_id: str

    project: Project
    analysis_agents: tuple[AnalysisAgent, ...]
    synthesis_agent: SynthesisAgent

    gathered: GatheredContext
    fan_out: FanOutResult
    rejections: list[str]
    synthesis: SynthesisResult


@dataclass
class PipelineResult:
    fan_out: FanOutResult
    synthesis: SynthesisResult


async def node_load_roster(state: PipelineState) -> PipelineState:
    project_id = state["project_id"]
    async with db.get_session() as session:
        project = await db.get_project(session, project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        roster = await load_roster(session, project_id)

    # Both halves must exist before any run is opened.
    analysis = roster.require_analysis()
    synthesis_agent = roster.require_synthesis()
    return {"project": project, "analysis_agents": analysis, "synthesis_agent": synthesis_agent}


async def node_run_analysis(state: PipelineState) -> PipelineState:
    invocations = [
        AgentInvocation(id=a.id, name=a.name, type=a.type.value, system_prompt=a.system_prompt)
        for a in state["analysis_agents"]
    ]
    result = await execute_fan_out(state["project"], invocations)
    return {"fan_out": result, "gathered": result.gathered}


async def node_load_rejections(state: PipelineState) -> PipelineState:
    async with db.get_session() as session:
        reasons = await db.list_recent_rejection_reasons(
            session, state["project_id"], settings.rejection_history_limit
        )
    return {"rejections": reasons}


async def node_synthesize(state: PipelineState) -> PipelineState:
    analyses = [(o.agent_name, o.output) for o in state["fan_out"].outcomes]
    result = await synthesize(
        state["project"],
        state["synthesis_agent"],
        analyses,
        state["rejections"],
        state["gathered"],
    )
    return {"synthesis": result}


def build_graph():
    graph = StateGraph(PipelineState)
    graph.add_node("load_roster", node_load_roster)
    graph.add_node("run_analysis", node_run_analysis)
    graph.add_node("load_rejections", node_load_rejections)
    graph.add_node("synthesize", node_synthesize)

    graph.set_entry_point("load_roster")
    graph.add_edge("load_roster", "run_analysis")
    graph.add_edge("run_analysis", "load_rejections")
    graph.add_edge("load_rejections", "synthesize")
    graph.add_edge("synthesize", END)
    return graph.compile()


async def run_agents_with_synthesis(project_id: str) -> PipelineResult:
    """Analysis fan-out followed by one synthesis call; synthesis failure raises."""
    app = build_graph()
    final_state = await app.ainvoke({"project_id": project_id})
    return PipelineResult(fan_out=final_state["fan_out"], synthesis=final_state["synthesis"])
