"""
Agent Council

Role-specialized AI agents analyze a project's external context in parallel;
a synthesis agent turns their analyses into a few proposed actions that a
product manager accepts, rejects or tracks to completion.
"""

__version__ = "0.1.0"

# Configuration
from council.config import Settings

# Agents
from council.agents import AgentRoster, AgentType, AnalysisAgent, SynthesisAgent

# Models
from council.models import (
    ActionRejection,
    ActionStatus,
    ActionTracking,
    Agent,
    AgentOutput,
    AgentRun,
    DataSource,
    Project,
    ProposedAction,
    RunStatus,
    RunType,
    TrackingStatus,
)

# Orchestration
from council.fanout import FanOutResult, run_all_agents, run_single_agent
from council.pipeline import PipelineResult, run_agents_with_synthesis
from council.synthesis import SynthesisResult

# Proposal lifecycle
from council.lifecycle import accept_action, reject_action, update_tracking

__all__ = [
    # Version
    "__version__",
    # Config
    "Settings",
    # Models
    "Project",
    "DataSource",
    "Agent",
    "AgentRun",
    "AgentOutput",
    "ProposedAction",
    "ActionRejection",
    "ActionTracking",
    "RunType",
    "RunStatus",
    "ActionStatus",
    "TrackingStatus",
    # Agents
    "AgentType",
    "AgentRoster",
    "AnalysisAgent",
    "SynthesisAgent",
    # Orchestration
    "FanOutResult",
    "SynthesisResult",
    "PipelineResult",
    "run_all_agents",
    "run_single_agent",
    "run_agents_with_synthesis",
    # Lifecycle
    "accept_action",
    "reject_action",
    "update_tracking",
]
